"""
crun — the OCI runtime, installed under ~target/.local.
"""

from __future__ import annotations

import logging
from pathlib import Path

from podstack.core.context import Session
from podstack.core.errors import PodstackError
from podstack.core.orchestration.orchestrator import Phase
from podstack.core.services.components.common import BUILD_TIMEOUT, fetch_source, remove_paths, run_checked

logger = logging.getLogger(__name__)


def _installed_files(session: Session) -> list[Path]:
    local = session.mutator.home_path(".local")
    paths = [
        local / "bin" / "crun",
        local / "share" / "man" / "man1" / "crun.1",
        local / "include" / "crun.h",
    ]
    # Versioned library names vary per release
    for directory in (local / "lib", local / "lib" / "pkgconfig"):
        paths.extend(directory / name for name in session.cap.list_dir(directory) if name.startswith("libcrun"))
    return paths


def install_crun(session: Session) -> None:
    config = session.config
    src = fetch_source(session, "crun", config.sources.crun, version=config.versions.crun)
    local = session.mutator.home_path(".local")

    run_checked(session, "crun autogen", ["./autogen.sh"], cwd=src, timeout=BUILD_TIMEOUT)
    run_checked(session, "crun configure", ["./configure", f"--prefix={local}"], cwd=src, timeout=BUILD_TIMEOUT)
    run_checked(session, "crun build", ["make"], cwd=src, timeout=BUILD_TIMEOUT)

    session.mutator.ensure_dir(local)
    run_checked(session, "crun install", ["make", "install"], cwd=src, elevate=True, timeout=BUILD_TIMEOUT)
    # make install runs as root and may add files anywhere under the prefix
    session.mutator.register(local, recursive=True)

    binary = session.target.local_bin / "crun"
    if not session.cap.exists(binary):
        raise PodstackError(f"crun binary missing after install: {binary}")
    result = run_checked(session, "crun --version", [str(binary), "--version"], as_target=True, timeout=30)
    logger.info("Installed %s", result["stdout"].splitlines()[0] if result["stdout"] else "crun")


def uninstall_crun(session: Session) -> None:
    removed = remove_paths(session, _installed_files(session))
    logger.info("crun: removed %d file(s)", len(removed))


def install_phases() -> list[Phase]:
    return [Phase("Build and install crun", install_crun)]


def uninstall_phases() -> list[Phase]:
    return [Phase("Remove crun", uninstall_crun)]
