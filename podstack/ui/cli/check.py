"""
CLI command for read-only diagnostics.

Thin wrapper over ``podstack.core.services.diagnostics``.
"""

from __future__ import annotations

import json
import sys

import click

from podstack.core.errors import PodstackError
from podstack.ui.cli.common import (
    CheckFlags,
    accounts_from,
    capability_from,
    check_flagset,
    fail,
    parse_flags,
)

_PASSTHROUGH = {"ignore_unknown_options": True, "allow_interspersed_args": False, "help_option_names": []}

_FLAGS = check_flagset("podstack check")
_FLAGS.bind(CheckFlags)


def _print_report(report) -> None:
    click.secho(f"\n🔍 {report.title}", fg="cyan", bold=True)
    for item in report.items:
        if item.ok:
            click.secho(f"   ✓ {item.name}", fg="green", nl=False)
        elif item.critical:
            click.secho(f"   ✗ {item.name}", fg="red", nl=False)
        else:
            click.secho(f"   ⚠ {item.name}", fg="yellow", nl=False)
        click.echo(f"  ({item.detail})" if item.detail else "")


@click.command("check", context_settings=_PASSTHROUGH)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def check(ctx: click.Context, args: tuple[str, ...]) -> None:
    """Report podman permissions and prerequisites for a user."""
    from podstack.core.config.loader import load_config
    from podstack.core.identity import Identity, resolve_identity
    from podstack.core.services.diagnostics import check_permissions, check_prerequisites

    flags = parse_flags(_FLAGS, args, CheckFlags)
    try:
        config = load_config(ctx.obj.get("config_path"))
        accounts = accounts_from(ctx)
        operator_name = accounts.current_name()
        record = accounts.lookup(operator_name)
        if record is None:
            raise PodstackError(f"Invoking user '{operator_name}' is not in the account database")
        name, home, uid, gid = record
        operator = Identity(name=name, home=home, uid=uid, gid=gid)
        target = resolve_identity(flags.user or operator.name, accounts=accounts, min_uid=config.min_target_uid)
    except PodstackError as e:
        fail(e)

    runtime_dir = config.runtime_root / str(target.uid)
    cap = capability_from(ctx, operator, target, runtime_dir)

    permissions = check_permissions(cap, target, prefix=config.system_prefix, runtime_dir=runtime_dir)
    prerequisites = check_prerequisites(
        cap,
        operator,
        target,
        operator_groups=accounts.groups_of(operator.name, operator.gid),
        privileged_group=config.privileged_group,
        euid=accounts.effective_uid(),
    )

    passed = permissions.ok and prerequisites.ok
    if ctx.obj.get("json_output"):
        click.echo(json.dumps({
            "ok": passed,
            "permissions": permissions.to_dict(),
            "prerequisites": prerequisites.to_dict(),
        }, indent=2))
        sys.exit(0 if passed else 1)

    _print_report(permissions)
    _print_report(prerequisites)
    click.echo()

    if not passed:
        failed = permissions.critical_failures + prerequisites.critical_failures
        click.secho(f"❌ {len(failed)} critical check(s) failed", fg="red", bold=True)
        sys.exit(1)

    click.secho("✅ All critical checks passed", fg="green", bold=True)
