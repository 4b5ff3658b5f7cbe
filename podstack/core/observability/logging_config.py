"""
Logging configuration — central setup for the podstack CLI.

Called once at startup by main.py.  Every module that does
``logger = logging.getLogger(__name__)`` inherits this config.

Levels are resolved in precedence order:
    CLI flag  >  PODSTACK_LOG_LEVEL env var  >  WARNING (default)

Optional extra file output via PODSTACK_LOG_FILE / PODSTACK_LOG_FILE_LEVEL.

Independently, each install/uninstall run attaches a *session log*
(``debug_YYYYmmdd_HHMMSS.log``) at DEBUG.  It is best-effort: an
unwritable log directory skips it silently.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path

# ── Format strings ──────────────────────────────────────────────

# WARNING level: minimal, no noise
_FMT_MINIMAL = "%(message)s"

# INFO level: timestamped with module context
_FMT_VERBOSE = "%(asctime)s [%(name)s] %(message)s"
_DATEFMT_VERBOSE = "%H:%M:%S"

# DEBUG level: full diagnostic with file:line
_FMT_DEBUG = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_DEBUG = "%H:%M:%S"

# File output: always full detail
_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

SESSION_LOG_PREFIX = "debug_"

# Handler tag so a second session log replaces the first
_SESSION_HANDLER_NAME = "podstack-session"


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Configure Python logging for the entire process.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path to a log file.
        log_file_level: Optional separate level for the log file.
            Defaults to the same as ``level``.
    """
    numeric_level = _parse_level(level)

    # ── Console handler (stderr) ────────────────────────────────
    if numeric_level <= logging.DEBUG:
        fmt, datefmt = _FMT_DEBUG, _DATEFMT_DEBUG
    elif numeric_level <= logging.INFO:
        fmt, datefmt = _FMT_VERBOSE, _DATEFMT_VERBOSE
    else:
        fmt, datefmt = _FMT_MINIMAL, None

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    # ── Root logger ─────────────────────────────────────────────
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)

    effective_level = numeric_level

    # ── File handler (optional) ─────────────────────────────────
    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else numeric_level
        effective_level = min(effective_level, file_level)

        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
        root.addHandler(fh)

    root.setLevel(effective_level)

    # Don't propagate exceptions from logging itself
    logging.raiseExceptions = False


def session_log_path(log_dir: Path, now: datetime | None = None) -> Path:
    """``<log_dir>/debug_YYYYmmdd_HHMMSS.log``."""
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return log_dir / f"{SESSION_LOG_PREFIX}{stamp}.log"


def attach_session_log(log_dir: Path, now: datetime | None = None) -> Path | None:
    """Add a DEBUG file handler for this run.

    Returns:
        The session log path, or None when the directory cannot be
        created or the file cannot be opened.
    """
    path = session_log_path(log_dir, now)
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(path, mode="a", encoding="utf-8")
    except OSError:
        return None

    fh.set_name(_SESSION_HANDLER_NAME)
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))

    root = logging.getLogger()
    detach_session_log()
    root.addHandler(fh)
    root.setLevel(logging.DEBUG)
    # Keep the console at its configured level
    for handler in root.handlers:
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
            if handler.level == logging.NOTSET:
                handler.setLevel(logging.WARNING)
    return path


def detach_session_log() -> None:
    """Remove and close the session handler, if any."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        if handler.get_name() == _SESSION_HANDLER_NAME:
            root.removeHandler(handler)
            handler.close()


def _parse_level(level: str | None) -> int:
    """Convert a level name string to its numeric constant."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
