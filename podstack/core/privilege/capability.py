"""
Capability — the one seam through which podstack elevates or acts as
the target account.

Nothing else in the code base prefixes ``sudo``.  Phase bodies ask the
capability to run a command *as the operator*, *elevated*, or *as the
target*; filesystem operations always go through it as well, because
the target's home is usually unreadable to the operator.

    SudoCapability   real host — each elevated call is ``sudo …``
    LocalCapability  in-process filesystem calls, no elevation (tests,
                     sandboxed roots)
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from podstack.core.errors import ExternalCommandFailed
from podstack.core.execution.subprocess_runner import Runner, run_command
from podstack.core.identity import Identity

logger = logging.getLogger(__name__)


class Capability(ABC):
    """Command execution plus filesystem access on behalf of two identities."""

    def __init__(
        self,
        operator: Identity,
        target: Identity,
        *,
        runtime_dir: Path,
        runner: Runner = run_command,
    ) -> None:
        self.operator = operator
        self.target = target
        self.runtime_dir = runtime_dir
        self.runner = runner

    @property
    def same_account(self) -> bool:
        return self.operator.uid == self.target.uid

    # ── Commands ────────────────────────────────────────────────

    @abstractmethod
    def run(
        self,
        cmd: list[str],
        *,
        elevate: bool = False,
        as_target: bool = False,
        timeout: int = 120,
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Run a command; returns the runner's result dict."""

    # ── Filesystem ──────────────────────────────────────────────

    @abstractmethod
    def exists(self, path: Path) -> bool:
        """True for files, directories and (even dangling) symlinks."""

    @abstractmethod
    def is_dir(self, path: Path) -> bool: ...

    @abstractmethod
    def read_text(self, path: Path) -> str | None:
        """File content, or None when absent."""

    @abstractmethod
    def readlink(self, path: Path) -> str | None:
        """Symlink target, or None when ``path`` is not a symlink."""

    @abstractmethod
    def list_dir(self, path: Path) -> list[str]:
        """Entry names in ``path``; empty when it is not a directory."""

    @abstractmethod
    def make_dirs(self, path: Path) -> None: ...

    @abstractmethod
    def write_atomic(self, path: Path, content: str, mode: int = 0o644) -> None:
        """Write ``content`` to ``path.partial`` then rename over ``path``."""

    @abstractmethod
    def copy_file(self, src: Path, dest: Path, mode: int = 0o644) -> None: ...

    @abstractmethod
    def symlink(self, target: Path, link: Path) -> None: ...

    @abstractmethod
    def chmod(self, path: Path, mode: int) -> None: ...

    @abstractmethod
    def chown(self, path: Path, uid: int, gid: int, *, recursive: bool = False) -> None: ...

    @abstractmethod
    def owner_of(self, path: Path) -> tuple[int, int] | None: ...

    @abstractmethod
    def remove(self, path: Path) -> None:
        """Remove a file, symlink or directory tree."""

    @abstractmethod
    def remove_empty_dir(self, path: Path) -> bool:
        """Remove ``path`` only if it is an empty directory."""


class SudoCapability(Capability):
    """Real-host capability: elevated calls via ``sudo``."""

    def _wrap(
        self, cmd: list[str], *, elevate: bool, as_target: bool, env: dict[str, str] | None = None,
    ) -> list[str]:
        """Prefix ``cmd``; sudo resets the environment, so extra vars go through ``env``."""
        assignments = [f"{k}={v}" for k, v in (env or {}).items()]
        if as_target:
            env_prefix = ["env", f"XDG_RUNTIME_DIR={self.runtime_dir}", *assignments]
            if self.same_account:
                return env_prefix + cmd
            return ["sudo", "-u", self.target.name] + env_prefix + cmd
        if elevate:
            return ["sudo"] + (["env", *assignments] if assignments else []) + cmd
        return cmd

    def run(self, cmd, *, elevate=False, as_target=False, timeout=120, cwd=None, env=None):
        full = self._wrap(list(cmd), elevate=elevate, as_target=as_target, env=env)
        return self.runner(
            full,
            timeout=timeout,
            env_overrides=env if not (elevate or as_target) else None,
            cwd=str(cwd) if cwd else None,
        )

    def _sudo(self, *args: str, timeout: int = 60) -> dict[str, Any]:
        return self.runner(["sudo", *args], timeout=timeout)

    def _checked(self, *args: str, timeout: int = 60) -> dict[str, Any]:
        result = self._sudo(*args, timeout=timeout)
        if not result["ok"]:
            raise ExternalCommandFailed.from_result(args[0], ["sudo", *args], result)
        return result

    def exists(self, path):
        return self._sudo("test", "-e", str(path))["ok"] or self._sudo("test", "-L", str(path))["ok"]

    def is_dir(self, path):
        return self._sudo("test", "-d", str(path))["ok"]

    def read_text(self, path):
        if not self._sudo("test", "-f", str(path))["ok"]:
            return None
        result = self.runner(["sudo", "cat", str(path)], timeout=30, output_limit=None)
        if not result["ok"]:
            raise ExternalCommandFailed.from_result("read", ["sudo", "cat", str(path)], result)
        return result.get("stdout", "")

    def readlink(self, path):
        result = self._sudo("readlink", str(path))
        return result["stdout"].strip() if result["ok"] else None

    def list_dir(self, path):
        cmd = ["sudo", "find", str(path), "-mindepth", "1", "-maxdepth", "1", "-printf", "%f\n"]
        result = self.runner(cmd, timeout=60, output_limit=None)
        return sorted(result.get("stdout", "").splitlines()) if result["ok"] else []

    def make_dirs(self, path):
        self._checked("mkdir", "-p", str(path))

    def write_atomic(self, path, content, mode=0o644):
        partial = f"{path}.partial"
        fd, tmp = tempfile.mkstemp(prefix="podstack-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            self._checked("install", "-m", f"{mode:o}", tmp, partial)
            self._checked("mv", "-f", partial, str(path))
        finally:
            os.unlink(tmp)

    def copy_file(self, src, dest, mode=0o644):
        partial = f"{dest}.partial"
        self._checked("install", "-m", f"{mode:o}", str(src), partial)
        self._checked("mv", "-f", partial, str(dest))

    def symlink(self, target, link):
        self._checked("ln", "-sfn", str(target), str(link))

    def chmod(self, path, mode):
        self._checked("chmod", f"{mode:o}", str(path))

    def chown(self, path, uid, gid, *, recursive=False):
        args = ["chown", "-h"]
        if recursive:
            args.append("-R")
        self._checked(*args, f"{uid}:{gid}", str(path), timeout=300)

    def owner_of(self, path):
        result = self._sudo("stat", "-c", "%u:%g", str(path))
        if not result["ok"]:
            return None
        uid, gid = result["stdout"].strip().split(":")
        return int(uid), int(gid)

    def remove(self, path):
        self._checked("rm", "-rf", "--", str(path), timeout=600)

    def remove_empty_dir(self, path):
        return self._sudo("rmdir", str(path))["ok"]


class LocalCapability(Capability):
    """In-process filesystem access; commands run without elevation."""

    def run(self, cmd, *, elevate=False, as_target=False, timeout=120, cwd=None, env=None):
        env = dict(env or {})
        if as_target:
            env["XDG_RUNTIME_DIR"] = str(self.runtime_dir)
        return self.runner(
            list(cmd),
            timeout=timeout,
            env_overrides=env or None,
            cwd=str(cwd) if cwd else None,
        )

    def exists(self, path):
        return path.exists() or path.is_symlink()

    def is_dir(self, path):
        return path.is_dir()

    def read_text(self, path):
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def readlink(self, path):
        if not path.is_symlink():
            return None
        return os.readlink(path)

    def list_dir(self, path):
        if not path.is_dir() or path.is_symlink():
            return []
        return sorted(os.listdir(path))

    def make_dirs(self, path):
        path.mkdir(parents=True, exist_ok=True)

    def write_atomic(self, path, content, mode=0o644):
        partial = path.with_name(path.name + ".partial")
        partial.write_text(content, encoding="utf-8")
        os.chmod(partial, mode)
        os.replace(partial, path)

    def copy_file(self, src, dest, mode=0o644):
        partial = dest.with_name(dest.name + ".partial")
        shutil.copyfile(src, partial)
        os.chmod(partial, mode)
        os.replace(partial, dest)

    def symlink(self, target, link):
        if link.is_symlink() or link.exists():
            link.unlink()
        link.symlink_to(target)

    def chmod(self, path, mode):
        os.chmod(path, mode)

    def chown(self, path, uid, gid, *, recursive=False):
        os.lchown(path, uid, gid)
        if recursive and path.is_dir() and not path.is_symlink():
            for dirpath, dirnames, filenames in os.walk(path):
                for name in dirnames + filenames:
                    os.lchown(os.path.join(dirpath, name), uid, gid)

    def owner_of(self, path):
        try:
            st = os.lstat(path)
        except FileNotFoundError:
            return None
        return st.st_uid, st.st_gid

    def remove(self, path):
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        elif path.exists() or path.is_symlink():
            path.unlink()

    def remove_empty_dir(self, path):
        if not path.is_dir() or any(path.iterdir()):
            return False
        path.rmdir()
        return True
