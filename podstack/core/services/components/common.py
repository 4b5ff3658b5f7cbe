"""
Shared helpers for component phase bodies.

Three kinds of external command:

    run_checked      native builds, installs — non-zero is fatal
    run_best_effort  package removal, service stop — non-zero is logged
    fetch_*          network fetches — retried with backoff
"""

from __future__ import annotations

import logging
import platform
from pathlib import Path
from typing import Any

from podstack.core.context import Session
from podstack.core.errors import ExternalCommandFailed
from podstack.core.reliability.retry import require_success

logger = logging.getLogger(__name__)

# Builds can take a long time
BUILD_TIMEOUT = 1800

_ARCH_MAP = {"x86_64": "amd64", "aarch64": "arm64", "armv7l": "armv6l"}


def host_arch() -> str:
    machine = platform.machine().lower()
    return _ARCH_MAP.get(machine, machine)


def run_checked(
    session: Session,
    what: str,
    cmd: list[str],
    *,
    elevate: bool = False,
    as_target: bool = False,
    cwd: Path | None = None,
    env: dict[str, str] | None = None,
    timeout: int = 600,
    hint: str = "",
) -> dict[str, Any]:
    """Run a command whose failure fails the phase.

    Raises:
        ExternalCommandFailed: Non-zero exit, carrying the output tail.
    """
    result = session.cap.run(cmd, elevate=elevate, as_target=as_target, cwd=cwd, env=env, timeout=timeout)
    if not result["ok"]:
        raise ExternalCommandFailed.from_result(what, cmd, result, hint=hint)
    return result


def run_best_effort(
    session: Session,
    what: str,
    cmd: list[str],
    *,
    elevate: bool = False,
    as_target: bool = False,
    timeout: int = 120,
) -> bool:
    """Run a command whose failure is tolerated.  Returns success."""
    result = session.cap.run(cmd, elevate=elevate, as_target=as_target, timeout=timeout)
    if not result["ok"]:
        logger.debug("%s (ignored): %s", what, result.get("stderr") or result.get("error", ""))
        return False
    return True


def fetch_source(session: Session, component: str, url: str, *, version: str = "") -> Path:
    """Fresh clone into the build dir (retried), then check out ``version``.

    A previous checkout is removed first, so re-runs start clean.
    """
    dest = session.config.build_path(component)
    session.mutator.remove(dest)

    def attempt() -> dict[str, Any]:
        result = session.cap.run(["git", "clone", url, str(dest)], timeout=BUILD_TIMEOUT)
        if not result["ok"]:
            session.mutator.remove(dest)
        return result

    require_success(attempt, session.ctx.retry_policy, sleep=session.sleep, description=f"git clone {url}")

    if version:
        run_checked(
            session,
            f"checkout {component} {version}",
            ["git", "-C", str(dest), "checkout", version],
            hint=f"Check that '{version}' exists in {url}.",
        )
    return dest


def fetch_file(session: Session, url: str, dest: Path) -> Path:
    """Download ``url`` to ``dest`` with curl (retried)."""
    session.mutator.ensure_dir(dest.parent)

    def attempt() -> dict[str, Any]:
        return session.cap.run(["curl", "-fsSL", "-o", str(dest), url], timeout=600)

    require_success(attempt, session.ctx.retry_policy, sleep=session.sleep, description=f"download {url}")
    return dest


def remove_paths(session: Session, paths: list[Path]) -> list[Path]:
    """Remove each path that exists.  Returns the ones removed."""
    return [p for p in paths if session.mutator.remove(p)]


def go_env(session: Session) -> dict[str, str]:
    """PATH with the Go toolchain first, for builds that need ``go``."""
    prefix = session.ctx.prefix
    return {"PATH": f"{prefix}/go/bin:{prefix}/bin:/usr/local/sbin:/usr/sbin:/usr/bin:/sbin:/bin"}
