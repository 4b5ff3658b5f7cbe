"""
Diagnostics — read-only checks behind ``podstack check``.

Two reports:

    permissions    are the binaries, config and runtime paths in place
                   with sensible ownership and modes?
    prerequisites  can this operator drive a rootless podman for the
                   target (podman >= 5.0, crun runtime, pasta)?

Nothing here mutates the host.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from podstack.core.identity import Identity
from podstack.core.privilege.capability import Capability

logger = logging.getLogger(__name__)

MIN_PODMAN_MAJOR = 5

_PODMAN_VERSION_RE = re.compile(r"podman version (\d+)\.(\d+)")


@dataclass
class CheckItem:
    name: str
    ok: bool
    detail: str = ""
    critical: bool = False

    def to_dict(self) -> dict:
        return {"name": self.name, "ok": self.ok, "detail": self.detail, "critical": self.critical}


@dataclass
class CheckReport:
    title: str
    items: list[CheckItem] = field(default_factory=list)

    def add(self, name: str, ok: bool, detail: str = "", *, critical: bool = False) -> CheckItem:
        item = CheckItem(name, ok, detail, critical)
        self.items.append(item)
        return item

    @property
    def critical_failures(self) -> list[CheckItem]:
        return [i for i in self.items if i.critical and not i.ok]

    @property
    def ok(self) -> bool:
        return not self.critical_failures

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "ok": self.ok,
            "items": [i.to_dict() for i in self.items],
        }


def _owner_detail(cap: Capability, path: Path, target: Identity) -> tuple[bool, str]:
    owner = cap.owner_of(path)
    if owner is None:
        return False, "missing"
    if owner == (0, 0):
        return True, "owned by root"
    if owner == (target.uid, target.gid):
        return True, f"owned by {target.name}"
    return False, f"owned by {owner[0]}:{owner[1]}, expected {target.owner}"


def check_permissions(cap: Capability, target: Identity, *, prefix: Path, runtime_dir: Path) -> CheckReport:
    """Binaries, config dir, runtime dir and socket for ``target``."""
    report = CheckReport(f"Podman permissions for {target.name}")

    binaries: list[tuple[Path, bool]] = [
        (prefix / "bin" / "podman", True),
        (prefix / "bin" / "conmon", True),
        (target.local_bin / "crun", True),
        (target.local_bin / "passt", False),
        (target.local_bin / "pasta", False),
        (target.user_bin / "podman-compose", True),
        (prefix / "bin" / "podman-compose", False),
    ]
    for path, critical in binaries:
        present = cap.exists(path)
        if present:
            ok, detail = _owner_detail(cap, path, target)
        else:
            ok, detail = False, "missing"
        report.add(str(path), ok, detail, critical=critical)

    config_dir = target.config_dir
    if cap.is_dir(config_dir):
        ok, detail = _owner_detail(cap, config_dir, target)
        report.add(str(config_dir), ok, detail)
        conf = config_dir / "containers.conf"
        report.add(str(conf), cap.exists(conf), "present" if cap.exists(conf) else "missing")
    else:
        report.add(str(config_dir), False, "missing")

    if cap.is_dir(runtime_dir):
        ok, detail = _owner_detail(cap, runtime_dir, target)
        report.add(str(runtime_dir), ok, detail)
    else:
        report.add(str(runtime_dir), False, "missing (is linger enabled?)")

    socket = runtime_dir / "podman" / "podman.sock"
    report.add(str(socket), cap.exists(socket), "present" if cap.exists(socket) else "not listening")
    return report


def parse_podman_version(output: str) -> tuple[int, int] | None:
    m = _PODMAN_VERSION_RE.search(output)
    return (int(m.group(1)), int(m.group(2))) if m else None


def check_prerequisites(
    cap: Capability,
    operator: Identity,
    target: Identity,
    *,
    operator_groups: set[str],
    privileged_group: str = "sudo",
    euid: int,
) -> CheckReport:
    """Can ``operator`` run a rootless podman stack for ``target``?"""
    report = CheckReport(f"Prerequisites for {target.name}")

    report.add("not running as root", euid != 0, f"euid {euid}", critical=True)
    report.add(
        f"{operator.name} in '{privileged_group}' group",
        privileged_group in operator_groups,
        ", ".join(sorted(operator_groups)) or "no groups",
        critical=True,
    )
    report.add("target home directory", cap.is_dir(target.home), str(target.home), critical=True)

    version = cap.run(["podman", "--version"], as_target=True, timeout=30)
    parsed = parse_podman_version(version.get("stdout", "")) if version["ok"] else None
    if parsed is None:
        report.add("podman available", False, "podman --version failed", critical=True)
    else:
        report.add(
            f"podman >= {MIN_PODMAN_MAJOR}.0",
            parsed[0] >= MIN_PODMAN_MAJOR,
            f"found {parsed[0]}.{parsed[1]}",
            critical=True,
        )

    compose = cap.run(["podman-compose", "--version"], as_target=True, timeout=30)
    report.add("podman-compose available", bool(compose["ok"]), "" if compose["ok"] else "not found")

    runtime = cap.run(["podman", "info", "--format", "{{.Host.OCIRuntime.Name}}"], as_target=True, timeout=60)
    name = runtime.get("stdout", "").strip() if runtime["ok"] else ""
    report.add("OCI runtime is crun", name == "crun", name or "podman info failed", critical=True)

    pasta = cap.exists(target.local_bin / "pasta") or cap.run(["which", "pasta"], timeout=10)["ok"]
    report.add("pasta available", pasta, "" if pasta else "not found in ~/.local/bin or PATH")
    return report
