"""
Tests for identity resolution and the operator privilege check.
"""

from pathlib import Path

import pytest

from podstack.core.errors import (
    InsufficientPrivilege,
    NoHomeDirectory,
    SystemAccount,
    UnknownAccount,
)
from podstack.core.identity import Identity, assert_operator_privilege, resolve_identity


@pytest.fixture
def db(tmp_path: Path, make_accounts):
    (tmp_path / "alice").mkdir()
    (tmp_path / "op").mkdir()
    return make_accounts({
        "alice": ("alice", str(tmp_path / "alice"), 1001, 1001),
        "op": ("op", str(tmp_path / "op"), 1000, 1000),
        "daemon": ("daemon", "/usr/sbin", 1, 1),
        "root": ("root", "/root", 0, 0),
        "ghost": ("ghost", str(tmp_path / "missing"), 1002, 1002),
        "slash": ("slash", "/", 1003, 1003),
    }, current="op", euid=1000)


class TestIdentity:
    def test_derived_paths(self):
        ident = Identity(name="alice", home=Path("/home/alice"), uid=1001, gid=1002)
        assert ident.config_dir == Path("/home/alice/.config/containers")
        assert ident.local_bin == Path("/home/alice/.local/bin")
        assert ident.user_bin == Path("/home/alice/bin")
        assert ident.owner == "1001:1002"

    def test_frozen(self):
        ident = Identity(name="alice", home=Path("/home/alice"), uid=1001, gid=1001)
        with pytest.raises(Exception):
            ident.uid = 0


class TestResolveIdentity:
    def test_resolves_regular_account(self, db, tmp_path):
        ident = resolve_identity("alice", accounts=db)
        assert ident.name == "alice"
        assert ident.home == tmp_path / "alice"
        assert (ident.uid, ident.gid) == (1001, 1001)

    def test_repeatable(self, db):
        assert resolve_identity("alice", accounts=db) == resolve_identity("alice", accounts=db)

    def test_unknown_account(self, db):
        with pytest.raises(UnknownAccount) as exc:
            resolve_identity("nobody-here", accounts=db)
        assert "useradd" in exc.value.hint

    def test_missing_home(self, db):
        with pytest.raises(NoHomeDirectory) as exc:
            resolve_identity("ghost", accounts=db)
        assert "mkhomedir_helper ghost" in exc.value.hint

    def test_root_home_rejected(self, db):
        with pytest.raises(NoHomeDirectory):
            resolve_identity("slash", accounts=db)

    @pytest.mark.parametrize("name", ["root", "daemon"])
    def test_system_accounts_rejected(self, db, name):
        with pytest.raises(SystemAccount):
            resolve_identity(name, accounts=db)

    def test_threshold_configurable(self, db):
        with pytest.raises(SystemAccount):
            resolve_identity("alice", accounts=db, min_uid=2000)


class TestOperatorPrivilege:
    def test_sudo_member_passes(self, db, tmp_path):
        op = assert_operator_privilege(accounts=db)
        assert op.name == "op"
        assert op.home == tmp_path / "op"

    def test_root_rejected(self, db):
        db.euid = 0
        with pytest.raises(InsufficientPrivilege, match="must not be run as root"):
            assert_operator_privilege(accounts=db)

    def test_not_in_group(self, db):
        db.groups = {"users"}
        with pytest.raises(InsufficientPrivilege) as exc:
            assert_operator_privilege(accounts=db)
        assert "usermod -aG sudo op" in exc.value.hint

    def test_custom_group(self, db):
        db.groups = {"wheel"}
        assert assert_operator_privilege(accounts=db, group="wheel").name == "op"

    def test_unknown_invoker(self, db):
        db.current = "stranger"
        with pytest.raises(UnknownAccount):
            assert_operator_privilege(accounts=db)
