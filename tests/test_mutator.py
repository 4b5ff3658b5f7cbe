"""
Tests for the privilege-separated mutator — path guard, idempotent
writes, the ownership ledger.
"""

from pathlib import Path

import pytest

from podstack.core.errors import PathEscape
from podstack.core.identity import Identity
from podstack.core.privilege.capability import LocalCapability
from podstack.core.privilege.mutator import Mutator, OwnershipLedger, OwnershipTarget
from podstack.core.privilege.paths import is_under, resolve_under


class RecordingCapability(LocalCapability):
    """LocalCapability that records chown calls instead of making them."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.chowned: list[tuple[Path, bool]] = []
        self.owners: dict[Path, tuple[int, int]] = {}

    def chown(self, path, uid, gid, *, recursive=False):
        self.chowned.append((path, recursive))
        self.owners[path] = (uid, gid)

    def owner_of(self, path):
        if not self.exists(path):
            return None
        return self.owners.get(path, (0, 0))


@pytest.fixture
def mutator(operator, target, runner, host) -> Mutator:
    cap = RecordingCapability(operator, target, runtime_dir=host / "run" / "user" / "1000", runner=runner)
    return Mutator(cap, target)


class TestPathGuard:
    def test_resolves_inside(self, target):
        assert resolve_under(target.home, ".config/containers") == target.home / ".config" / "containers"

    def test_traversal_rejected(self, mutator):
        with pytest.raises(PathEscape) as exc:
            mutator.home_path("../../etc/passwd")
        assert exc.value.fragment == "../../etc/passwd"

    def test_symlink_out_rejected(self, target, tmp_path):
        (target.home / "escape").symlink_to(tmp_path)
        with pytest.raises(PathEscape):
            resolve_under(target.home, "escape/x")

    def test_is_under(self):
        assert is_under(Path("/home/a"), Path("/home/a/.local/bin"))
        assert is_under(Path("/home/a"), Path("/home/a"))
        assert not is_under(Path("/home/a"), Path("/home/ab"))
        assert not is_under(Path("/home/a"), Path("/usr/local/bin"))


class TestLedger:
    def test_deduplicates(self):
        ledger = OwnershipLedger()
        entry = OwnershipTarget(Path("/h/x"), 1000, 1000)
        ledger.register(entry)
        ledger.register(entry)
        assert len(ledger) == 1

    def test_recursive_not_downgraded(self):
        ledger = OwnershipLedger()
        ledger.register(OwnershipTarget(Path("/h/x"), 1000, 1000, recursive=True))
        ledger.register(OwnershipTarget(Path("/h/x"), 1000, 1000))
        assert next(iter(ledger)).recursive is True


class TestMutations:
    def test_ensure_dir_registers_each_created_dir(self, mutator, target):
        deep = target.home / ".local" / "share" / "man"
        assert mutator.ensure_dir(deep) is True
        assert deep.is_dir()
        for path in (target.home / ".local", target.home / ".local" / "share", deep):
            assert path in mutator.ledger
        assert target.home not in mutator.ledger
        assert mutator.ensure_dir(deep) is False

    def test_outside_home_not_registered(self, mutator, host):
        prefix_bin = host / "usr" / "local" / "bin"
        mutator.ensure_dir(prefix_bin)
        assert prefix_bin not in mutator.ledger

    def test_write_file_idempotent(self, mutator, target):
        path = target.home / ".config" / "containers" / "registries.conf"
        assert mutator.write_file(path, "a = 1\n") is True
        assert mutator.write_file(path, "a = 1\n") is False
        assert path.read_text() == "a = 1\n"
        assert not path.with_name("registries.conf.partial").exists()

    def test_symlink_idempotent(self, mutator, host, target):
        script = target.home / "bin" / "podman-compose"
        mutator.write_file(script, "#!/bin/sh\n")
        link = host / "usr" / "local" / "bin" / "podman-compose"
        assert mutator.symlink(script, link) is True
        assert mutator.symlink(script, link) is False
        assert link.resolve() == script

    def test_rewrite_lines(self, mutator, target):
        bashrc = target.home / ".bashrc"
        bashrc.write_text("alias ll='ls -l'\nexport PATH=$HOME/.local/bin:$PATH\n")
        changed = mutator.rewrite_lines(
            bashrc, drop=lambda ln: ln.startswith("export PATH="), append=["# managed", "export PATH=/new"],
        )
        assert changed is True
        assert bashrc.read_text() == "alias ll='ls -l'\n# managed\nexport PATH=/new\n"
        assert mutator.rewrite_lines(bashrc, append=["# managed", "export PATH=/new"]) is False

    def test_remove_lines_missing_file(self, mutator, target):
        assert mutator.remove_lines(target.home / ".bashrc", lambda ln: True) is False
        assert not (target.home / ".bashrc").exists()

    def test_remove_absent(self, mutator, target):
        assert mutator.remove(target.home / "nothing") is False

    def test_remove_empty_dir_only(self, mutator, target):
        full = target.home / "bin"
        full.mkdir()
        (full / "keep").write_text("x")
        assert mutator.remove_empty_dir(full) is False
        empty = target.home / "empty"
        empty.mkdir()
        assert mutator.remove_empty_dir(empty) is True
        assert not empty.exists()


class TestFinalizeOwnership:
    def test_chowns_registered_paths_once(self, mutator, target):
        mutator.write_file(target.home / ".config" / "containers" / "policy.json", "{}\n")
        applied = mutator.finalize_ownership()
        assert applied == 3  # .config, .config/containers, policy.json
        assert len(mutator.ledger) == 0
        assert mutator.finalize_ownership() == 0

    def test_already_owned_skipped(self, mutator, target):
        path = target.home / "owned"
        mutator.write_file(path, "x")
        mutator.cap.owners[target.home] = (target.uid, target.gid)
        mutator.cap.owners[path] = (target.uid, target.gid)
        assert mutator.finalize_ownership() == 0

    def test_vanished_paths_skipped(self, mutator, target):
        path = target.home / "gone"
        mutator.write_file(path, "x")
        mutator.cap.owners[target.home] = (target.uid, target.gid)
        path.unlink()
        assert mutator.finalize_ownership() == 0

    def test_recursive_entries_always_applied(self, mutator, target):
        storage = target.home / ".local" / "share" / "containers"
        storage.mkdir(parents=True)
        mutator.register(storage, recursive=True)
        mutator.cap.owners[storage] = (target.uid, target.gid)
        mutator.finalize_ownership()
        assert (storage, True) in mutator.cap.chowned


class TestSymlinkedHome:
    @pytest.fixture
    def linked(self, operator, target, runner, host) -> Mutator:
        real = host / "data" / "podman_user"
        real.mkdir(parents=True)
        link = host / "home" / "linked"
        link.symlink_to(real)
        home = Identity(name=target.name, home=link, uid=target.uid, gid=target.gid)
        cap = RecordingCapability(operator, home, runtime_dir=host / "run" / "user" / "1000", runner=runner)
        return Mutator(cap, home)

    def test_canonical_paths_registered(self, linked, host):
        path = linked.home_path(".config/containers/containers.conf")
        assert path == host / "data" / "podman_user" / ".config" / "containers" / "containers.conf"
        linked.write_file(path, "x\n")
        assert path in linked.ledger
        assert path.parent in linked.ledger

    def test_recorded_home_paths_registered(self, linked):
        bashrc = linked.target.home / ".bashrc"
        linked.write_file(bashrc, "export X=1\n")
        assert bashrc in linked.ledger

    def test_finalize_chowns_through_link(self, linked):
        path = linked.home_path("bin/podman-compose")
        linked.write_file(path, "#!/bin/sh\n")
        linked.finalize_ownership()
        assert (path, False) in linked.cap.chowned
