"""
Identity resolver — who the installer acts *for* and who it acts *as*.

Two accounts are involved in every run:

    - the **operator**: the invoking, non-root account that elevates
      per command through sudo;
    - the **target**: the unprivileged account that ends up owning the
      rootless stack.

Both are resolved fresh on each invocation from the account database.
Lookups have no side effects and are safe to repeat.
"""

from __future__ import annotations

import grp
import logging
import os
import pwd
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from podstack.core.errors import (
    InsufficientPrivilege,
    NoHomeDirectory,
    SystemAccount,
    UnknownAccount,
)

logger = logging.getLogger(__name__)

DEFAULT_MIN_UID = 1000


class Identity(BaseModel):
    """A resolved account."""

    model_config = ConfigDict(frozen=True)

    name: str
    home: Path
    uid: int
    gid: int

    @property
    def config_dir(self) -> Path:
        return self.home / ".config" / "containers"

    @property
    def local_bin(self) -> Path:
        return self.home / ".local" / "bin"

    @property
    def user_bin(self) -> Path:
        return self.home / "bin"

    @property
    def owner(self) -> str:
        """``uid:gid`` for chown."""
        return f"{self.uid}:{self.gid}"


class AccountDatabase:
    """Read-only view of the host's accounts.

    Tests substitute a subclass with in-memory records.
    """

    def lookup(self, name: str) -> tuple[str, str, int, int] | None:
        """Return ``(name, home, uid, gid)`` or None when unknown."""
        try:
            entry = pwd.getpwnam(name)
        except KeyError:
            return None
        return entry.pw_name, entry.pw_dir, entry.pw_uid, entry.pw_gid

    def current_name(self) -> str:
        return pwd.getpwuid(os.getuid()).pw_name

    def effective_uid(self) -> int:
        return os.geteuid()

    def groups_of(self, name: str, primary_gid: int) -> set[str]:
        names = {g.gr_name for g in grp.getgrall() if name in g.gr_mem}
        try:
            names.add(grp.getgrgid(primary_gid).gr_name)
        except KeyError:
            pass
        return names

    def is_dir(self, path: Path) -> bool:
        return path.is_dir()


def _home_of(name: str, home: str, accounts: AccountDatabase) -> Path:
    path = Path(home) if home else Path("/")
    if path == Path("/") or not accounts.is_dir(path):
        raise NoHomeDirectory(
            f"Home directory for '{name}' does not exist: {path}",
            hint=f"Create it with: sudo mkhomedir_helper {name}",
        )
    return path


def resolve_identity(
    name: str,
    *,
    accounts: AccountDatabase | None = None,
    min_uid: int = DEFAULT_MIN_UID,
) -> Identity:
    """Resolve a target account name.

    Raises:
        UnknownAccount: No such account.
        NoHomeDirectory: Home is missing or is ``/``.
        SystemAccount: uid 0 or below ``min_uid``.
    """
    accounts = accounts or AccountDatabase()
    record = accounts.lookup(name)
    if record is None:
        raise UnknownAccount(
            f"User '{name}' does not exist",
            hint=f"Create the account first: sudo useradd -m {name}",
        )

    acct_name, home, uid, gid = record
    if uid == 0 or uid < min_uid:
        raise SystemAccount(
            f"User '{acct_name}' (uid {uid}) is a system account; rootless podman needs uid >= {min_uid}",
            hint="Pick a regular login account for --user.",
        )

    identity = Identity(name=acct_name, home=_home_of(acct_name, home, accounts), uid=uid, gid=gid)
    logger.debug("Resolved target %s uid=%d home=%s", identity.name, identity.uid, identity.home)
    return identity


def assert_operator_privilege(
    *,
    accounts: AccountDatabase | None = None,
    group: str = "sudo",
) -> Identity:
    """Check the invoking account may drive an install, and return it.

    Raises:
        InsufficientPrivilege: Running as root, or not in ``group``.
        NoHomeDirectory: The operator's home is missing or ``/``.
    """
    accounts = accounts or AccountDatabase()
    if accounts.effective_uid() == 0:
        raise InsufficientPrivilege(
            "This command must not be run as root",
            hint="Run it as a regular user with sudo rights; it elevates per command.",
        )

    name = accounts.current_name()
    record = accounts.lookup(name)
    if record is None:
        raise UnknownAccount(f"Invoking user '{name}' is not in the account database")

    acct_name, home, uid, gid = record
    if group not in accounts.groups_of(acct_name, gid):
        raise InsufficientPrivilege(
            f"User '{acct_name}' is not in the '{group}' group",
            hint=f"Add it with: sudo usermod -aG {group} {acct_name} (then log in again)",
        )

    return Identity(name=acct_name, home=_home_of(acct_name, home, accounts), uid=uid, gid=gid)
