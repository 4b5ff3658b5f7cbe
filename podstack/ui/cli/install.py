"""
CLI commands for installing the stack or one component.

Thin wrappers over ``podstack.core.services.stack``.
"""

from __future__ import annotations

import click

from podstack.core.services.stack import INSTALL_TARGETS
from podstack.ui.cli.common import (
    ComponentFlags,
    StackInstallFlags,
    component_flagset,
    execute_run,
    parse_flags,
    stack_install_flagset,
)

_PASSTHROUGH = {"ignore_unknown_options": True, "allow_interspersed_args": False, "help_option_names": []}

_DESCRIPTIONS = {
    "crun": "Build crun from source into ~/.local/bin.",
    "passt": "Build passt/pasta from source into ~/.local/bin.",
    "conmon": "Build conmon from source and install it system-wide.",
    "compose": "Install podman-compose into ~/bin.",
    "go": "Install the pinned Go toolchain.",
}


@click.group()
def install() -> None:
    """Install — the full rootless stack or a single component."""


_STACK_FLAGS = stack_install_flagset("podstack install stack")
_STACK_FLAGS.bind(StackInstallFlags)


@install.command("stack", context_settings=_PASSTHROUGH)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def install_stack(ctx: click.Context, args: tuple[str, ...]) -> None:
    """Build and install the whole rootless podman stack."""
    flags = parse_flags(_STACK_FLAGS, args, StackInstallFlags)
    build, default_to_operator = INSTALL_TARGETS["stack"]
    execute_run(
        ctx,
        title="Install stack",
        build_phases=build,
        user=flags.user,
        default_to_operator=default_to_operator,
        assume_yes=flags.yes,
        subnet=flags.subnet,
        socket_timeout=flags.socket_timeout,
    )


def _component_command(name: str) -> click.Command:
    flagset = component_flagset(f"podstack install {name}", _DESCRIPTIONS[name])
    flagset.bind(ComponentFlags)
    build, default_to_operator = INSTALL_TARGETS[name]

    @click.pass_context
    def command(ctx: click.Context, args: tuple[str, ...]) -> None:
        flags = parse_flags(flagset, args, ComponentFlags)
        execute_run(
            ctx,
            title=f"Install {name}",
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
    install.add_command(_component_command(_name))
