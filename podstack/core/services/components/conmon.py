"""
conmon — container monitor, installed system-wide under <prefix>.
"""

from __future__ import annotations

from podstack.core.context import Session
from podstack.core.errors import PodstackError
from podstack.core.orchestration.orchestrator import Phase
from podstack.core.services.components.common import BUILD_TIMEOUT, fetch_source, remove_paths, run_checked


def install_conmon(session: Session) -> None:
    config, prefix = session.config, session.ctx.prefix
    src = fetch_source(session, "conmon", config.sources.conmon, version=config.versions.conmon)
    run_checked(session, "conmon build", ["make"], cwd=src, timeout=BUILD_TIMEOUT)
    run_checked(
        session, "conmon install", ["make", "install", f"PREFIX={prefix}"],
        cwd=src, elevate=True, timeout=BUILD_TIMEOUT,
    )
    binary = prefix / "bin" / "conmon"
    if not session.cap.exists(binary):
        raise PodstackError(f"conmon binary missing after install: {binary}")
    run_checked(session, "conmon --version", [str(binary), "--version"], timeout=30)


def uninstall_conmon(session: Session) -> None:
    prefix = session.ctx.prefix
    remove_paths(session, [
        prefix / "bin" / "conmon",
        prefix / "libexec" / "podman" / "conmon",
        prefix / "share" / "man" / "man8" / "conmon.8",
    ])


def install_phases() -> list[Phase]:
    return [Phase("Build and install conmon", install_conmon)]


def uninstall_phases() -> list[Phase]:
    return [Phase("Remove conmon", uninstall_conmon)]
