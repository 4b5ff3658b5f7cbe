"""
podstack — CLI entrypoint.

Usage:
    podstack --help
    podstack install stack --user podman_user --subnet 10.89.0.0/24
    podstack uninstall crun
    podstack check --user podman_user
"""

from __future__ import annotations

import os
from pathlib import Path

import click

from podstack import __version__
from podstack.core.observability.logging_config import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="podstack")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option("--json", "json_output", is_flag=True, help="Machine-readable output where supported.")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to podstack.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    json_output: bool,
    config_path: str | None,
) -> None:
    """podstack — build and manage a rootless podman stack from source."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["json_output"] = json_output
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("PODSTACK_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("PODSTACK_LOG_FILE"),
        log_file_level=os.environ.get("PODSTACK_LOG_FILE_LEVEL"),
    )


# ── Register command groups ─────────────────────────────────────

from podstack.ui.cli.check import check
from podstack.ui.cli.install import install
from podstack.ui.cli.uninstall import uninstall

cli.add_command(install)
cli.add_command(uninstall)
cli.add_command(check)


if __name__ == "__main__":
    cli()
