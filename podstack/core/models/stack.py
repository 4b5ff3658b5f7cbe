"""
Stack configuration model — what gets built, from where, and how long to wait.

Loaded from podstack.yml by ``podstack.core.config.loader``.  Every field
has a default, so an absent file yields a working configuration.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator


class ComponentVersions(BaseModel):
    """Pinned versions — empty string means the default branch."""

    go: str = "1.23.4"
    crun: str = "1.22"
    podman: str = "v5.3.1"
    conmon: str = ""
    passt: str = ""


class ComponentSources(BaseModel):
    """Where each component's source is fetched from."""

    crun: str = "https://github.com/containers/crun.git"
    conmon: str = "https://github.com/containers/conmon.git"
    podman: str = "https://github.com/containers/podman.git"
    passt: str = "https://passt.top/passt"
    compose_script: str = (
        "https://raw.githubusercontent.com/containers/podman-compose/main/podman_compose.py"
    )
    # {version} and {arch} are substituted
    go_tarball: str = "https://go.dev/dl/go{version}.linux-{arch}.tar.gz"


class ReadinessSettings(BaseModel):
    """Poll bounds in seconds."""

    interval: float = 2
    socket_timeout: float = 30
    healthy_timeout: float = 120
    running_timeout: float = 60

    @model_validator(mode="after")
    def _bounds(self) -> ReadinessSettings:
        if self.interval <= 0:
            raise ValueError("readiness.interval must be positive")
        for name in ("socket_timeout", "healthy_timeout", "running_timeout"):
            if getattr(self, name) < self.interval:
                raise ValueError(f"readiness.{name} must be >= readiness.interval")
        return self


class RetrySettings(BaseModel):
    """Backoff for network fetches."""

    max_attempts: int = Field(default=5, ge=1)
    initial_wait: float = Field(default=3, gt=0)
    multiplier: float = Field(default=2, gt=1)


class StackConfig(BaseModel):
    """Top-level podstack.yml."""

    versions: ComponentVersions = Field(default_factory=ComponentVersions)
    sources: ComponentSources = Field(default_factory=ComponentSources)
    build_dir: Path = Path("/tmp")
    system_prefix: Path = Path("/usr/local")
    runtime_root: Path = Path("/run/user")
    podman_buildtags: str = "seccomp apparmor systemd pasta"
    readiness: ReadinessSettings = Field(default_factory=ReadinessSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    privileged_group: str = "sudo"
    min_target_uid: int = Field(default=1000, ge=1)
    log_dir: Path | None = None  # None → ~operator/.local/state/podstack/logs

    @field_validator("build_dir", "system_prefix", "runtime_root")
    @classmethod
    def _absolute(cls, v: Path) -> Path:
        if not v.is_absolute():
            raise ValueError("must be an absolute path")
        return v

    def build_path(self, component: str) -> Path:
        """Checkout directory for a component (``/tmp/crun``)."""
        return self.build_dir / component
