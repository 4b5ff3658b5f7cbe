"""
Run context — everything one invocation decided before the first phase.

Built ONCE by the CLI after flags, config and identities are resolved,
then passed to every phase.  Read-only afterwards.

``Session`` adds the live collaborators (mutator, clock, sleep) that a
phase body needs next to the context.  Tests build one around a
``LocalCapability`` and a fake runner.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from pydantic import BaseModel, ConfigDict

from podstack.core.identity import Identity
from podstack.core.models.stack import StackConfig
from podstack.core.privilege.capability import Capability
from podstack.core.privilege.mutator import Mutator
from podstack.core.reliability.polling import PollCondition
from podstack.core.reliability.retry import RetryPolicy


class RunContext(BaseModel):
    """Immutable per-invocation settings."""

    model_config = ConfigDict(frozen=True)

    target: Identity
    operator: Identity
    config: StackConfig
    assume_yes: bool = False
    subnet: str | None = None
    socket_timeout: float | None = None
    keep_system: bool = False
    session_log: Path | None = None

    @property
    def runtime_dir(self) -> Path:
        """``/run/user/<uid>`` of the target."""
        return self.config.runtime_root / str(self.target.uid)

    @property
    def prefix(self) -> Path:
        return self.config.system_prefix

    @property
    def retry_policy(self) -> RetryPolicy:
        r = self.config.retry
        return RetryPolicy(max_attempts=r.max_attempts, initial_wait=r.initial_wait, multiplier=r.multiplier)

    def poll(self, probe: Callable[[], bool], *, timeout: float, description: str) -> PollCondition:
        """A PollCondition at the configured interval."""
        interval = self.config.readiness.interval
        return PollCondition(
            probe=probe,
            interval=interval,
            timeout=max(timeout, interval),
            description=description,
        )

    @property
    def effective_socket_timeout(self) -> float:
        return self.socket_timeout if self.socket_timeout is not None else self.config.readiness.socket_timeout


@dataclass
class Session:
    """A RunContext plus the collaborators phase bodies act through."""

    ctx: RunContext
    mutator: Mutator
    sleep: Callable[[float], None] = time.sleep
    clock: Callable[[], float] = time.monotonic
    notes: list[str] = field(default_factory=list)

    @property
    def cap(self) -> Capability:
        return self.mutator.cap

    @property
    def target(self) -> Identity:
        return self.ctx.target

    @property
    def config(self) -> StackConfig:
        return self.ctx.config

    def note(self, message: str) -> None:
        """Record a user-facing remark for the final report."""
        self.notes.append(message)
