"""
podman — the container engine, built with the pinned Go toolchain and
installed system-wide under <prefix>.
"""

from __future__ import annotations

import logging

from podstack.core.context import Session
from podstack.core.errors import PodstackError
from podstack.core.orchestration.orchestrator import Phase
from podstack.core.services.components.common import (
    BUILD_TIMEOUT,
    fetch_source,
    go_env,
    remove_paths,
    run_checked,
)

logger = logging.getLogger(__name__)


def install_podman(session: Session) -> None:
    config, prefix = session.config, session.ctx.prefix
    src = fetch_source(session, "podman", config.sources.podman, version=config.versions.podman)
    env = go_env(session)
    run_checked(
        session, "podman build",
        ["make", f"BUILDTAGS={config.podman_buildtags}", f"PREFIX={prefix}"],
        cwd=src, env=env, timeout=BUILD_TIMEOUT,
        hint="Make sure the Go toolchain phase completed and build dependencies are installed.",
    )
    run_checked(
        session, "podman install", ["make", "install", f"PREFIX={prefix}"],
        cwd=src, env=env, elevate=True, timeout=BUILD_TIMEOUT,
    )

    binary = prefix / "bin" / "podman"
    if not session.cap.exists(binary):
        raise PodstackError(f"podman binary missing after install: {binary}")
    result = run_checked(session, "podman --version", [str(binary), "--version"], as_target=True, timeout=30)
    logger.info("Installed %s", result["stdout"].strip() or "podman")


def uninstall_podman(session: Session) -> None:
    prefix = session.ctx.prefix
    remove_paths(session, [
        prefix / "bin" / "podman",
        prefix / "bin" / "podman-remote",
        prefix / "libexec" / "podman",
        prefix / "lib" / "systemd" / "user" / "podman.socket",
        prefix / "lib" / "systemd" / "user" / "podman.service",
        prefix / "lib" / "systemd" / "system" / "podman.socket",
        prefix / "lib" / "systemd" / "system" / "podman.service",
        prefix / "lib" / "tmpfiles.d" / "podman.conf",
    ])


def install_phases() -> list[Phase]:
    return [Phase("Build and install podman", install_podman)]


def uninstall_phases() -> list[Phase]:
    return [Phase("Remove podman", uninstall_podman)]
