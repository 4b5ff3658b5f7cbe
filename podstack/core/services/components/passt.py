"""
passt/pasta — rootless network helper, copied into ~target/.local/bin.
"""

from __future__ import annotations

import logging

from podstack.core.context import Session
from podstack.core.errors import PodstackError
from podstack.core.orchestration.orchestrator import Phase
from podstack.core.services.components.common import BUILD_TIMEOUT, fetch_source, remove_paths, run_checked

logger = logging.getLogger(__name__)

BINARIES = ("passt", "pasta")


def install_passt(session: Session) -> None:
    config = session.config
    src = fetch_source(session, "passt", config.sources.passt, version=config.versions.passt)
    run_checked(session, "passt build", ["make"], cwd=src, timeout=BUILD_TIMEOUT)

    local_bin = session.mutator.home_path(".local/bin")
    for name in BINARIES:
        built = src / name
        if not session.cap.exists(built):
            raise PodstackError(f"passt build did not produce {built}")
        session.mutator.install_file(built, local_bin / name, mode=0o755)

    result = run_checked(session, "pasta --version", [str(local_bin / "pasta"), "--version"], as_target=True, timeout=30)
    logger.info("Installed %s", result["stdout"].splitlines()[0] if result["stdout"] else "passt")


def uninstall_passt(session: Session) -> None:
    local_bin = session.mutator.home_path(".local/bin")
    names = [*BINARIES, *(f"{b}.avx2" for b in BINARIES)]
    remove_paths(session, [local_bin / n for n in names])


def install_phases() -> list[Phase]:
    return [Phase("Build and install passt", install_passt)]


def uninstall_phases() -> list[Phase]:
    return [Phase("Remove passt", uninstall_passt)]
