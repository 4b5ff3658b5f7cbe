"""
CLI commands for removing the stack or one component.
"""

from __future__ import annotations

import click

from podstack.core.services.stack import UNINSTALL_TARGETS
from podstack.ui.cli.common import (
    ComponentFlags,
    StackUninstallFlags,
    component_flagset,
    execute_run,
    parse_flags,
    stack_uninstall_flagset,
)

_PASSTHROUGH = {"ignore_unknown_options": True, "allow_interspersed_args": False, "help_option_names": []}

_DESCRIPTIONS = {
    "crun": "Remove crun from ~/.local.",
    "passt": "Remove passt/pasta from ~/.local/bin.",
    "conmon": "Remove the system-wide conmon.",
    "compose": "Remove podman-compose and its link.",
}


@click.group()
def uninstall() -> None:
    """Uninstall — the full stack or a single component."""


_STACK_FLAGS = stack_uninstall_flagset("podstack uninstall stack")
_STACK_FLAGS.bind(StackUninstallFlags)


@uninstall.command("stack", context_settings=_PASSTHROUGH)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def uninstall_stack(ctx: click.Context, args: tuple[str, ...]) -> None:
    """Remove the rootless podman stack; safe on a host where it never ran."""
    flags = parse_flags(_STACK_FLAGS, args, StackUninstallFlags)
    build, default_to_operator = UNINSTALL_TARGETS["stack"]
    execute_run(
        ctx,
        title="Uninstall stack",
        build_phases=build,
        user=flags.user,
        default_to_operator=default_to_operator,
        assume_yes=flags.yes,
        keep_system=flags.keep_system,
    )


def _component_command(name: str) -> click.Command:
    flagset = component_flagset(f"podstack uninstall {name}", _DESCRIPTIONS[name])
    flagset.bind(ComponentFlags)
    build, default_to_operator = UNINSTALL_TARGETS[name]

    @click.pass_context
    def command(ctx: click.Context, args: tuple[str, ...]) -> None:
        flags = parse_flags(flagset, args, ComponentFlags)
        execute_run(
            ctx,
            title=f"Uninstall {name}",
            build_phases=build,
            user=flags.user,
            default_to_operator=default_to_operator,
            assume_yes=flags.yes,
        )

    return click.Command(
        name,
        callback=command,
        params=[click.Argument(["args"], nargs=-1, type=click.UNPROCESSED)],
        context_settings=_PASSTHROUGH,
        help=_DESCRIPTIONS[name],
    )


for _name in _DESCRIPTIONS:
    uninstall.add_command(_component_command(_name))
