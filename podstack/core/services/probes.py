"""
Readiness probes — side-effect-free checks fed to the poller.

Each factory returns a zero-argument callable bound to a capability,
so ``PollCondition(probe=...)`` stays oblivious to sudo and identities.
"""

from __future__ import annotations

from typing import Callable

from podstack.core.privilege.capability import Capability

PS_FORMAT = "{{.Names}} {{.Status}}"


def _container_status(cap: Capability, name: str) -> str | None:
    """Status column for ``name`` from ``podman ps``, or None."""
    result = cap.run(["podman", "ps", "--format", PS_FORMAT], as_target=True, timeout=30)
    if not result["ok"]:
        return None
    for line in result.get("stdout", "").splitlines():
        parts = line.strip().split(" ", 1)
        if parts and parts[0] == name:
            return parts[1] if len(parts) > 1 else ""
    return None


def container_running(cap: Capability, name: str) -> Callable[[], bool]:
    """True once ``podman ps`` lists the container as Up."""

    def probe() -> bool:
        status = _container_status(cap, name)
        return status is not None and status.startswith("Up")

    return probe


def container_healthy(cap: Capability, name: str) -> Callable[[], bool]:
    """True once the container's status string reports ``(healthy)``."""

    def probe() -> bool:
        status = _container_status(cap, name)
        return status is not None and "(healthy)" in status

    return probe


def user_unit_active(cap: Capability, unit: str) -> Callable[[], bool]:
    """True once ``systemctl --user is-active`` reports the unit active."""

    def probe() -> bool:
        result = cap.run(["systemctl", "--user", "is-active", "--quiet", unit], as_target=True, timeout=15)
        return bool(result["ok"])

    return probe
