"""
L1 Execution — Core subprocess runner.

The SINGLE PLACE where ``subprocess.run`` is called.  Privilege
elevation is not decided here: callers pass an already-prefixed
command (see ``podstack.core.privilege.capability``).

Never raises for command failure: the result dict says what happened.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from typing import Any, Protocol

logger = logging.getLogger(__name__)

# Output tail kept in results
_TAIL = 2000


class Runner(Protocol):
    """Anything that runs a command list and returns a result dict."""

    def __call__(
        self,
        cmd: list[str],
        *,
        timeout: int = ...,
        env_overrides: dict[str, str] | None = ...,
        cwd: str | None = ...,
        output_limit: int | None = ...,
    ) -> dict[str, Any]: ...


def run_command(
    cmd: list[str],
    *,
    timeout: int = 120,
    env_overrides: dict[str, str] | None = None,
    cwd: str | None = None,
    output_limit: int | None = _TAIL,
) -> dict[str, Any]:
    """Run a command and capture its output.

    Args:
        cmd: Command list for ``subprocess.run()``.
        timeout: Seconds before ``TimeoutExpired``.
        env_overrides: Extra env vars.
        cwd: Working directory for the command.
        output_limit: Keep only the last N characters of stdout/stderr
            (None keeps everything).

    Returns:
        ``{"ok": True, "returncode": 0, "stdout": "...", "elapsed_ms": N}`` on success,
        ``{"ok": False, "returncode": N, "error": "...", "stderr": "...", ...}`` on failure.
    """
    env = os.environ.copy()
    if env_overrides:
        env.update(env_overrides)

    logger.debug("$ %s%s", " ".join(cmd), f"  (cwd={cwd})" if cwd else "")

    start = time.monotonic()
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
            cwd=cwd,
            stdin=subprocess.DEVNULL,
        )
    except subprocess.TimeoutExpired:
        return {"ok": False, "returncode": None, "error": f"Command timed out ({timeout}s)"}
    except (OSError, ValueError) as e:
        logger.debug("Subprocess error for %s: %s", cmd, e)
        return {"ok": False, "returncode": None, "error": str(e)}

    elapsed_ms = int((time.monotonic() - start) * 1000)
    stdout = _tail(result.stdout, output_limit)

    if result.returncode == 0:
        return {
            "ok": True,
            "returncode": 0,
            "stdout": stdout,
            "elapsed_ms": elapsed_ms,
        }

    stderr = _tail(result.stderr, output_limit)
    last_line = stderr.strip().rsplit("\n", 1)[-1] if stderr.strip() else ""
    logger.debug("exit %d: %s", result.returncode, last_line)
    return {
        "ok": False,
        "returncode": result.returncode,
        "error": f"Command failed (exit {result.returncode})",
        "stderr": stderr,
        "stdout": stdout,
        "elapsed_ms": elapsed_ms,
    }


def _tail(text: str | None, limit: int | None) -> str:
    if not text:
        return ""
    return text if limit is None else text[-limit:]
