"""
podman-compose — single-file script in ~target/bin, linked into <prefix>/bin.
"""

from __future__ import annotations

import logging
from pathlib import Path

from podstack.core.context import Session
from podstack.core.orchestration.orchestrator import Phase
from podstack.core.services.components.common import fetch_file, run_best_effort

logger = logging.getLogger(__name__)


def script_path(session: Session) -> Path:
    return session.mutator.home_path("bin/podman-compose")


def link_path(session: Session) -> Path:
    return session.ctx.prefix / "bin" / "podman-compose"


def install_compose(session: Session) -> None:
    config = session.config
    download = fetch_file(session, config.sources.compose_script, config.build_dir / "podman-compose.py")
    dest = script_path(session)
    session.mutator.install_file(download, dest, mode=0o755)
    session.mutator.symlink(dest, link_path(session))
    if not run_best_effort(session, "podman-compose --version", [str(dest), "--version"], as_target=True):
        session.note("podman-compose is installed but did not report a version; check python3 for the target user")


def uninstall_compose(session: Session) -> None:
    dest = script_path(session)
    link = link_path(session)
    # Only our own link; a packaged podman-compose is left alone
    if session.cap.readlink(link) == str(dest):
        session.mutator.remove(link)
    session.mutator.remove(dest)


def install_phases() -> list[Phase]:
    return [Phase("Install podman-compose", install_compose)]


def uninstall_phases() -> list[Phase]:
    return [Phase("Remove podman-compose", uninstall_compose)]
