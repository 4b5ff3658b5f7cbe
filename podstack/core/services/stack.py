"""
Phase lists for every install and uninstall entry point.

The stack install runs components in dependency order (Go before
podman, crun and conmon before the socket).  The stack uninstall runs
the same machine over the mirror list, in reverse component order,
and every step tolerates absence.
"""

from __future__ import annotations

from typing import Callable

from podstack.core.context import Session
from podstack.core.orchestration.orchestrator import FailurePolicy, Phase
from podstack.core.services import templates
from podstack.core.services.components import compose, conmon, crun, go, passt, podman, system


def write_configuration(session: Session) -> None:
    templates.write_documents(session)


def configuration_phase() -> Phase:
    return Phase("Write container configuration", write_configuration)


def install_stack_phases() -> list[Phase]:
    return [
        system.cleanup_phase(),
        system.dependencies_phase(),
        *go.install_phases(),
        *crun.install_phases(),
        *passt.install_phases(),
        *conmon.install_phases(),
        *podman.install_phases(),
        configuration_phase(),
        *system.runtime_phases(),
        *compose.install_phases(),
        system.path_phase(),
    ]


def remove_system_wide(session: Session) -> None:
    podman.uninstall_podman(session)
    conmon.uninstall_conmon(session)
    go.uninstall_go(session)


def _system_wide_wanted(session: Session) -> bool:
    return not session.ctx.keep_system


def uninstall_stack_phases() -> list[Phase]:
    return [
        system.stop_services_phase(),
        *compose.uninstall_phases(),
        *crun.uninstall_phases(),
        *passt.uninstall_phases(),
        Phase(
            "Remove system-wide podman, conmon and Go",
            remove_system_wide,
            FailurePolicy.FATAL,
            when=_system_wide_wanted,
        ),
        *system.teardown_phases(),
    ]


# Entry point name → (phase builder, default target is the operator)
INSTALL_TARGETS: dict[str, tuple[Callable[[], list[Phase]], bool]] = {
    "stack": (install_stack_phases, False),
    "crun": (lambda: [system.dependencies_phase(), *crun.install_phases()], True),
    "passt": (lambda: [system.dependencies_phase(), *passt.install_phases()], True),
    "conmon": (lambda: [system.dependencies_phase(), *conmon.install_phases()], True),
    "compose": (compose.install_phases, True),
    "go": (go.install_phases, True),
}

UNINSTALL_TARGETS: dict[str, tuple[Callable[[], list[Phase]], bool]] = {
    "stack": (uninstall_stack_phases, False),
    "crun": (crun.uninstall_phases, True),
    "passt": (passt.uninstall_phases, True),
    "conmon": (conmon.uninstall_phases, True),
    "compose": (compose.uninstall_phases, True),
}
