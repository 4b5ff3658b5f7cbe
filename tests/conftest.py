"""
Shared test fixtures — a fake host behind a LocalCapability.

``FakeRunner`` stands in for ``run_command``: it records every command
and simulates the side effects the phase bodies look for (a clone
leaves a checkout, ``make install`` leaves a binary, ``podman ps``
reports a healthy smoke container).  Everything lands under tmp_path.
"""

import os
import textwrap
from pathlib import Path

import pytest

from podstack.core.context import RunContext, Session
from podstack.core.identity import AccountDatabase, Identity
from podstack.core.models.stack import StackConfig
from podstack.core.privilege.capability import LocalCapability
from podstack.core.privilege.mutator import Mutator

# As root, files may be chowned to an arbitrary regular account
_ROOT = os.getuid() == 0
TEST_UID = 1000 if _ROOT else os.getuid()
TEST_GID = 1000 if _ROOT else os.getgid()


def _ok(stdout: str = "") -> dict:
    return {"ok": True, "returncode": 0, "stdout": stdout, "elapsed_ms": 1}


def _fail(code: int = 1, stderr: str = "") -> dict:
    return {
        "ok": False,
        "returncode": code,
        "error": f"Command failed (exit {code})",
        "stderr": stderr,
        "stdout": "",
        "elapsed_ms": 1,
    }


def _touch(path: Path, content: str = "#!/bin/sh\n") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    path.chmod(0o755)


class FakeRunner:
    """Records commands; simulates builds, installs and podman."""

    def __init__(self, go_version: str = "1.23.4") -> None:
        self.calls: list[list[str]] = []
        self.envs: list[dict | None] = []
        self.go_version = go_version
        self.crun_prefix: Path | None = None
        self.fail_on: dict[str, int] = {}  # substring → remaining failures
        self.podman_ps = "podstack-smoke Up 3 seconds (healthy)"

    def __call__(self, cmd, *, timeout=120, env_overrides=None, cwd=None, output_limit=2000):
        cmd = list(cmd)
        self.calls.append(cmd)
        self.envs.append(env_overrides)
        line = " ".join(cmd)
        for needle, remaining in self.fail_on.items():
            if remaining and needle in line:
                self.fail_on[needle] = remaining - 1
                return _fail(stderr=f"simulated failure: {needle}")
        return self._simulate(cmd, Path(cwd) if cwd else None)

    def ran(self, needle: str) -> bool:
        return any(needle in " ".join(c) for c in self.calls)

    def count(self, needle: str) -> int:
        return sum(1 for c in self.calls if needle in " ".join(c))

    def _simulate(self, cmd: list[str], cwd: Path | None) -> dict:
        prog = os.path.basename(cmd[0])

        if prog == "git" and cmd[1] == "clone":
            (Path(cmd[3]) / ".git").mkdir(parents=True, exist_ok=True)
            return _ok()

        if prog == "curl":
            _touch(Path(cmd[cmd.index("-o") + 1]), "downloaded\n")
            return _ok()

        if prog == "tar":
            prefix = Path(cmd[cmd.index("-C") + 1])
            for tool in ("go", "gofmt"):
                _touch(prefix / "go" / "bin" / tool)
            return _ok()

        if prog == "go" and cmd[1:] == ["version"]:
            return _ok(f"go version go{self.go_version} linux/amd64\n")

        if prog == "configure":
            self.crun_prefix = Path(cmd[1].split("=", 1)[1])
            return _ok()

        if prog == "make" and cwd is not None:
            return self._make(cmd, cwd)

        if prog == "dpkg-query":
            return _fail(stderr="dpkg-query: no packages found")

        if prog == "podman":
            return self._podman(cmd)

        if cmd[1:] == ["--version"]:
            return _ok(f"{prog} version 1.0\n")

        return _ok()

    def _make(self, cmd: list[str], cwd: Path) -> dict:
        component = cwd.name
        if "install" not in cmd:
            if component == "passt":
                _touch(cwd / "passt")
                _touch(cwd / "pasta")
            return _ok()
        if component == "crun" and self.crun_prefix is not None:
            prefix = self.crun_prefix
            _touch(prefix / "bin" / "crun")
            _touch(prefix / "lib" / "libcrun.so.1.0.0", "")
            _touch(prefix / "lib" / "libcrun.la", "")
            if not (prefix / "lib" / "libcrun.so").is_symlink():
                (prefix / "lib" / "libcrun.so").symlink_to("libcrun.so.1.0.0")
            _touch(prefix / "include" / "crun.h", "")
            _touch(prefix / "share" / "man" / "man1" / "crun.1", "")
            return _ok()
        prefix = next((Path(a.split("=", 1)[1]) for a in cmd if a.startswith("PREFIX=")), None)
        if prefix is not None and component in ("conmon", "podman"):
            _touch(prefix / "bin" / component)
        return _ok()

    def _podman(self, cmd: list[str]) -> dict:
        if cmd[1] == "--version":
            return _ok("podman version 5.3.1\n")
        if cmd[1] == "ps":
            return _ok(self.podman_ps + "\n")
        if cmd[1] == "info":
            return _ok("crun\n")
        return _ok()


class VirtualClock:
    """``clock`` and ``sleep`` sharing one timeline; sleeping advances it."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def clock(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeAccounts(AccountDatabase):
    """In-memory account database."""

    def __init__(self, records=None, *, current="operator", euid=TEST_UID, groups=None):
        self.records = dict(records or {})
        self.current = current
        self.euid = euid
        self.groups = groups if groups is not None else {"sudo"}

    def lookup(self, name):
        return self.records.get(name)

    def current_name(self):
        return self.current

    def effective_uid(self):
        return self.euid

    def groups_of(self, name, primary_gid):
        return set(self.groups)

    def is_dir(self, path):
        return Path(path).is_dir()


# ── Fixtures ────────────────────────────────────────────────────


@pytest.fixture
def host(tmp_path: Path) -> Path:
    """A resolved root for homes, prefix, build and runtime dirs."""
    root = tmp_path.resolve()
    for name in ("home/operator", "home/podman_user", "usr/local", "build", "run/user", "logs"):
        (root / name).mkdir(parents=True)
    return root


@pytest.fixture
def config(host: Path) -> StackConfig:
    return StackConfig(
        build_dir=host / "build",
        system_prefix=host / "usr" / "local",
        runtime_root=host / "run" / "user",
        log_dir=host / "logs",
        min_target_uid=1,
        retry={"max_attempts": 3, "initial_wait": 0.01, "multiplier": 2},
        readiness={"interval": 0.01, "socket_timeout": 0.05, "healthy_timeout": 0.05, "running_timeout": 0.05},
    )


@pytest.fixture
def config_file(host: Path) -> Path:
    """podstack.yml equivalent to the ``config`` fixture."""
    path = host / "podstack.yml"
    path.write_text(textwrap.dedent(f"""\
        build_dir: {host / "build"}
        system_prefix: {host / "usr" / "local"}
        runtime_root: {host / "run" / "user"}
        log_dir: {host / "logs"}
        min_target_uid: 1
        retry:
          max_attempts: 3
          initial_wait: 0.01
        readiness:
          interval: 0.01
          socket_timeout: 0.05
          healthy_timeout: 0.05
          running_timeout: 0.05
    """))
    return path


@pytest.fixture
def operator(host: Path) -> Identity:
    return Identity(name="operator", home=host / "home" / "operator", uid=TEST_UID, gid=TEST_GID)


@pytest.fixture
def target(host: Path) -> Identity:
    return Identity(name="podman_user", home=host / "home" / "podman_user", uid=TEST_UID, gid=TEST_GID)


@pytest.fixture
def accounts(operator: Identity, target: Identity) -> FakeAccounts:
    return FakeAccounts({
        i.name: (i.name, str(i.home), i.uid, i.gid) for i in (operator, target)
    })


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def make_session(config, operator, target, runner):
    """Factory: ``make_session(assume_yes=True, subnet=...)`` → Session."""

    def factory(**overrides) -> Session:
        ctx = RunContext(target=target, operator=operator, config=config, **overrides)
        cap = LocalCapability(operator, target, runtime_dir=ctx.runtime_dir, runner=runner)
        clock = VirtualClock()
        return Session(ctx, Mutator(cap, target), sleep=clock.sleep, clock=clock.clock)

    return factory


@pytest.fixture
def session(make_session) -> Session:
    return make_session(assume_yes=True)


@pytest.fixture
def cli_obj(accounts, runner) -> dict:
    """``CliRunner.invoke(..., obj=cli_obj)`` wiring to the fake host."""
    clock = VirtualClock()
    return {
        "accounts": accounts,
        "capability_factory": lambda op, tgt, runtime_dir: LocalCapability(
            op, tgt, runtime_dir=runtime_dir, runner=runner,
        ),
        "sleep": clock.sleep,
        "clock": clock.clock,
    }


@pytest.fixture
def make_accounts():
    """Factory for an in-memory account database."""
    return FakeAccounts
