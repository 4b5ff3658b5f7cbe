"""
Go toolchain — build prerequisite for podman, unpacked into <prefix>/go.
"""

from __future__ import annotations

import logging
import re

from podstack.core.context import Session
from podstack.core.errors import PodstackError
from podstack.core.orchestration.orchestrator import Phase
from podstack.core.services.components.common import fetch_file, host_arch, run_checked

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"go version go(\S+)")


def installed_version(session: Session) -> str | None:
    go = session.ctx.prefix / "go" / "bin" / "go"
    if not session.cap.exists(go):
        return None
    result = session.cap.run([str(go), "version"], timeout=30)
    m = _VERSION_RE.search(result.get("stdout", "")) if result["ok"] else None
    return m.group(1) if m else None


def install_go(session: Session) -> None:
    config, prefix = session.config, session.ctx.prefix
    wanted = config.versions.go
    current = installed_version(session)
    if current == wanted:
        logger.info("Go %s already installed", wanted)
    else:
        url = config.sources.go_tarball.format(version=wanted, arch=host_arch())
        tarball = fetch_file(session, url, config.build_dir / f"go{wanted}.tar.gz")
        session.mutator.remove(prefix / "go")
        run_checked(
            session, "extract Go toolchain",
            ["tar", "-C", str(prefix), "-xzf", str(tarball)],
            elevate=True, timeout=600,
        )

    for tool in ("go", "gofmt"):
        session.mutator.symlink(prefix / "go" / "bin" / tool, prefix / "bin" / tool)

    if installed_version(session) != wanted:
        raise PodstackError(
            f"Go {wanted} is not usable at {prefix / 'go'}",
            hint=f"Check the tarball URL: {config.sources.go_tarball}",
        )


def uninstall_go(session: Session) -> None:
    prefix = session.ctx.prefix
    for tool in ("go", "gofmt"):
        link = prefix / "bin" / tool
        target = session.cap.readlink(link)
        if target and target.startswith(str(prefix / "go")):
            session.mutator.remove(link)
    session.mutator.remove(prefix / "go")


def install_phases() -> list[Phase]:
    return [Phase("Install Go toolchain", install_go)]


def uninstall_phases() -> list[Phase]:
    return [Phase("Remove Go toolchain", uninstall_go)]
