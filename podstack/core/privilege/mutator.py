"""
Privilege-separated mutator — filesystem changes that end up owned by
the target account although the operator performs them.

Every mutation under the target's home registers the path in the
``OwnershipLedger``.  After the last phase, ``finalize_ownership()``
walks the ledger once and chowns each entry to the target.  Paths
outside the home (``/usr/local``) are left root-owned.

Mutations are idempotent: writes compare content first, symlinks
compare their target, removals check existence.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from podstack.core.identity import Identity
from podstack.core.privilege.capability import Capability
from podstack.core.privilege.paths import is_under, resolve_under

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OwnershipTarget:
    path: Path
    uid: int
    gid: int
    recursive: bool = False


class OwnershipLedger:
    """Ordered set of paths awaiting chown to the target."""

    def __init__(self) -> None:
        self._entries: dict[Path, OwnershipTarget] = {}

    def register(self, target: OwnershipTarget) -> None:
        existing = self._entries.get(target.path)
        if existing is not None and existing.recursive and not target.recursive:
            return
        self._entries[target.path] = target

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries.values()))

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def clear(self) -> None:
        self._entries.clear()


class Mutator:
    """Filesystem mutations through a ``Capability`` on behalf of ``target``."""

    def __init__(self, capability: Capability, target: Identity) -> None:
        self.cap = capability
        self.target = target
        self.ledger = OwnershipLedger()
        # home_path() yields canonical paths, callers may also use the recorded home
        self._home_roots = (target.home, Path(os.path.realpath(target.home)))

    # ── Paths ───────────────────────────────────────────────────

    def home_path(self, fragment: str | Path) -> Path:
        """Resolve a relative fragment under the target's home.

        Raises:
            PathEscape: The fragment leaves the home directory.
        """
        return resolve_under(self.target.home, fragment)

    def _in_home(self, path: Path) -> bool:
        return any(is_under(root, path) for root in self._home_roots)

    def register(self, path: Path, *, recursive: bool = False) -> None:
        """Queue ``path`` for the ownership pass if it lies under the home."""
        if self._in_home(path):
            self.ledger.register(
                OwnershipTarget(path=path, uid=self.target.uid, gid=self.target.gid, recursive=recursive)
            )

    # ── Mutations ───────────────────────────────────────────────

    def ensure_dir(self, path: Path, mode: int | None = None) -> bool:
        """Create ``path`` with parents.  Returns True if anything was created."""
        created = False
        if not self.cap.is_dir(path):
            # Intermediate dirs are created too and each needs chowning
            missing = [path]
            while not self.cap.exists(missing[-1].parent) and missing[-1].parent != missing[-1]:
                missing.append(missing[-1].parent)
            self.cap.make_dirs(path)
            for created_dir in reversed(missing):
                self.register(created_dir)
            created = True
            logger.debug("Created %s", path)
        if mode is not None:
            self.cap.chmod(path, mode)
        self.register(path)
        return created

    def write_file(self, path: Path, content: str, mode: int = 0o644) -> bool:
        """Atomically write ``content`` unless the file already holds it.

        Returns True when the file changed.
        """
        self.ensure_dir(path.parent)
        changed = self.cap.read_text(path) != content
        if changed:
            self.cap.write_atomic(path, content, mode)
            logger.debug("Wrote %s (%d bytes)", path, len(content))
        self.register(path)
        return changed

    def install_file(self, src: Path, dest: Path, mode: int = 0o755) -> None:
        """Copy ``src`` to ``dest`` (atomic) with ``mode``."""
        self.ensure_dir(dest.parent)
        self.cap.copy_file(src, dest, mode)
        self.register(dest)
        logger.debug("Installed %s -> %s", src, dest)

    def symlink(self, target: Path, link: Path) -> bool:
        """Point ``link`` at ``target``.  Returns True when it changed."""
        if self.cap.readlink(link) == str(target):
            return False
        self.ensure_dir(link.parent)
        self.cap.symlink(target, link)
        self.register(link)
        return True

    def chmod(self, path: Path, mode: int) -> None:
        self.cap.chmod(path, mode)

    def chown(self, path: Path, *, recursive: bool = False) -> None:
        """Chown to the target immediately."""
        self.cap.chown(path, self.target.uid, self.target.gid, recursive=recursive)

    def rewrite_lines(
        self,
        path: Path,
        *,
        drop: Callable[[str], bool] | None = None,
        append: list[str] | None = None,
    ) -> bool:
        """Drop matching lines and append missing ones in one atomic write.

        A missing file is treated as empty; nothing is written when the
        result equals the current content.
        """
        current = self.cap.read_text(path)
        lines = (current or "").splitlines()
        kept = [ln for ln in lines if not (drop and drop(ln))]
        for line in append or []:
            if line not in kept:
                kept.append(line)

        content = "\n".join(kept) + "\n" if kept else ""
        if current is None and not kept:
            return False
        if content == (current or ""):
            return False
        self.write_file(path, content)
        return True

    def ensure_line(self, path: Path, line: str) -> bool:
        return self.rewrite_lines(path, append=[line])

    def remove_lines(self, path: Path, drop: Callable[[str], bool]) -> bool:
        if self.cap.read_text(path) is None:
            return False
        return self.rewrite_lines(path, drop=drop)

    def remove(self, path: Path) -> bool:
        """Remove if present.  Returns True when something was removed."""
        if not self.cap.exists(path):
            return False
        self.cap.remove(path)
        logger.debug("Removed %s", path)
        return True

    def remove_empty_dir(self, path: Path) -> bool:
        return self.cap.is_dir(path) and self.cap.remove_empty_dir(path)

    # ── Ownership ───────────────────────────────────────────────

    def finalize_ownership(self) -> int:
        """Chown every registered path to the target, then clear the ledger.

        Entries that vanished meanwhile are skipped; non-recursive
        entries already owned by the target are left alone.  Calling
        it again is a no-op.

        Returns:
            Number of chown calls made.
        """
        applied = 0
        for entry in self.ledger:
            if not self.cap.exists(entry.path):
                continue
            if not entry.recursive and self.cap.owner_of(entry.path) == (entry.uid, entry.gid):
                continue
            self.cap.chown(entry.path, entry.uid, entry.gid, recursive=entry.recursive)
            applied += 1
        if applied:
            logger.info("Ownership finalized on %d path(s) for %s", applied, self.target.name)
        self.ledger.clear()
        return applied
