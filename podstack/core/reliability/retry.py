"""
Retry with exponential backoff — for network fetches only.

Local, idempotent operations are not retried; a failed phase is
re-run by re-running the installer.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Callable

from podstack.core.errors import RetriesExhausted

logger = logging.getLogger(__name__)


class RetryOutcome(StrEnum):
    SUCCESS = "success"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    initial_wait: float = 3.0
    multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.initial_wait <= 0:
            raise ValueError(f"initial_wait must be positive, got {self.initial_wait}")
        if self.multiplier <= 1:
            raise ValueError(f"multiplier must be > 1, got {self.multiplier}")

    def delay(self, attempt: int) -> float:
        """Wait after failed attempt number ``attempt`` (1-based)."""
        return self.initial_wait * (self.multiplier ** (attempt - 1))


def _succeeded(result: Any) -> bool:
    if isinstance(result, dict):
        return bool(result.get("ok"))
    return bool(result)


def retry(
    op: Callable[[], Any],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
    description: str = "operation",
) -> RetryOutcome:
    """Call ``op`` until it succeeds or attempts run out.

    ``op`` returns a bool or a runner result dict (``{"ok": ...}``).
    No sleep follows the final attempt.
    """
    for attempt in range(1, policy.max_attempts + 1):
        if _succeeded(op()):
            if attempt > 1:
                logger.info("%s succeeded on attempt %d", description, attempt)
            return RetryOutcome.SUCCESS

        if attempt == policy.max_attempts:
            break
        wait = policy.delay(attempt)
        logger.warning(
            "%s failed (attempt %d/%d), retrying in %gs",
            description,
            attempt,
            policy.max_attempts,
            wait,
        )
        sleep(wait)

    logger.error("%s failed after %d attempts", description, policy.max_attempts)
    return RetryOutcome.EXHAUSTED


def require_success(op: Callable[[], Any], policy: RetryPolicy, **kwargs) -> None:
    """Retry and raise ``RetriesExhausted`` instead of returning EXHAUSTED."""
    if retry(op, policy, **kwargs) is RetryOutcome.EXHAUSTED:
        what = kwargs.get("description", "operation")
        raise RetriesExhausted(
            f"{what} failed after {policy.max_attempts} attempts",
            hint="Check network access to the source host and re-run.",
        )
