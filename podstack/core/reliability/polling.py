"""
Readiness poller — wait for an observable condition with a hard bound.

The probe is called immediately and then every ``interval`` seconds.
The poller never sleeps past ``timeout``: when the next probe would land
after the bound, it gives up.  A probe that first succeeds after ``k``
intervals is therefore READY exactly when ``timeout >= k * interval``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import Callable

from podstack.core.errors import Timeout

logger = logging.getLogger(__name__)


class PollOutcome(StrEnum):
    READY = "ready"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class PollCondition:
    """A side-effect-free probe plus its cadence."""

    probe: Callable[[], bool]
    interval: float
    timeout: float
    description: str = "condition"

    def __post_init__(self) -> None:
        if self.interval <= 0:
            raise ValueError(f"interval must be positive, got {self.interval}")
        if self.timeout < self.interval:
            raise ValueError(f"timeout ({self.timeout}) must be >= interval ({self.interval})")


def poll_until(
    condition: PollCondition,
    *,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> PollOutcome:
    """Probe until true or until the next probe would exceed the timeout."""
    start = clock()
    attempt = 0
    while True:
        attempt += 1
        if condition.probe():
            logger.debug("%s ready after %d probe(s)", condition.description, attempt)
            return PollOutcome.READY

        elapsed = clock() - start
        if elapsed + condition.interval > condition.timeout:
            logger.debug(
                "%s not ready after %.1fs (%d probes)", condition.description, elapsed, attempt,
            )
            return PollOutcome.TIMED_OUT
        sleep(condition.interval)


def require_ready(condition: PollCondition, **kwargs) -> None:
    """Poll and raise ``Timeout`` instead of returning TIMED_OUT."""
    if poll_until(condition, **kwargs) is PollOutcome.TIMED_OUT:
        raise Timeout(
            f"Timed out after {condition.timeout:g}s waiting for {condition.description}",
            hint="Increase the timeout (--socket-timeout or podstack.yml readiness) or inspect the service logs.",
        )
