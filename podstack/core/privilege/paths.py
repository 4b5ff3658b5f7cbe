"""
Directory-traversal guard.
"""

from __future__ import annotations

import os
from pathlib import Path

from podstack.core.errors import PathEscape


def resolve_under(root: Path, fragment: str | Path) -> Path:
    """Canonicalize ``root / fragment`` and require it to stay under ``root``.

    Symlinks are resolved on both sides, so a link pointing out of the
    root is rejected as well.

    Raises:
        PathEscape: The canonical path is outside ``root``.
    """
    base = Path(os.path.realpath(root))
    candidate = Path(os.path.realpath(base / fragment))
    if candidate != base and base not in candidate.parents:
        raise PathEscape(str(fragment), str(base))
    return candidate


def is_under(root: Path, path: Path) -> bool:
    """Lexical containment check for already-absolute paths."""
    base = Path(os.path.normpath(root))
    target = Path(os.path.normpath(path))
    return target == base or base in target.parents
