"""
Phase orchestrator — the linear state machine every run goes through.

    not started → phase 1 → phase 2 → … → completed
                        ↘ aborted(at k)

Each phase: log entry → (gate) → body → on failure consult the policy.
``fatal`` stops the run and records where; ``warn`` logs and advances.
A gated phase asks the operator first unless ``--yes`` was given; a
decline aborts before the phase body touches anything.

After a completed run the mutator's ownership ledger is finalized.
Uninstall runs through the same machine with its own phase list.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Callable

from podstack.core.context import Session
from podstack.core.errors import PhaseAborted, PodstackError

logger = logging.getLogger(__name__)


class FailurePolicy(StrEnum):
    FATAL = "fatal"
    WARN = "warn"


class PhaseStatus(StrEnum):
    OK = "ok"
    SKIPPED = "skipped"
    WARNED = "warned"
    FAILED = "failed"


class RunStatus(StrEnum):
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class Phase:
    """One ordered, idempotent unit of work.

    ``when`` returning False skips the phase (recorded as ``skipped``).
    """

    name: str
    body: Callable[[Session], None]
    policy: FailurePolicy = FailurePolicy.FATAL
    gate: bool = False
    when: Callable[[Session], bool] | None = None
    ordinal: int = 0


def number_phases(phases: list[Phase]) -> list[Phase]:
    """Assign ordinals 1..N in list order."""
    return [replace(p, ordinal=i) for i, p in enumerate(phases, start=1)]


@dataclass
class PhaseResult:
    ordinal: int
    name: str
    status: PhaseStatus
    error: str = ""
    hint: str = ""
    duration_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "ordinal": self.ordinal,
            "name": self.name,
            "status": str(self.status),
            "error": self.error,
            "hint": self.hint,
            "duration_ms": self.duration_ms,
        }


@dataclass
class RunReport:
    """Outcome of one orchestrated run."""

    title: str = ""
    target: str = ""
    status: RunStatus = RunStatus.COMPLETED
    results: list[PhaseResult] = field(default_factory=list)
    aborted_at: tuple[int, str] | None = None
    declined: bool = False
    cause: BaseException | None = None
    ownership_applied: int = 0
    notes: list[str] = field(default_factory=list)
    started_at: str = ""
    ended_at: str = ""

    @property
    def warnings(self) -> list[str]:
        return [f"{r.name}: {r.error}" for r in self.results if r.status is PhaseStatus.WARNED]

    @property
    def completed(self) -> bool:
        return self.status is RunStatus.COMPLETED

    def raise_for_status(self) -> None:
        """Raise ``PhaseAborted`` for an aborted run."""
        if self.status is RunStatus.ABORTED and self.aborted_at is not None:
            ordinal, name = self.aborted_at
            raise PhaseAborted(ordinal, name, target=self.target, cause=self.cause, declined=self.declined)

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "target": self.target,
            "status": str(self.status),
            "aborted_at": list(self.aborted_at) if self.aborted_at else None,
            "declined": self.declined,
            "warnings": self.warnings,
            "notes": self.notes,
            "ownership_applied": self.ownership_applied,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "phases": [r.to_dict() for r in self.results],
        }


class PhaseOrchestrator:
    """Runs a phase list against one Session."""

    def __init__(
        self,
        session: Session,
        *,
        confirm: Callable[[str], bool] | None = None,
        on_phase: Callable[[Phase, int], None] | None = None,
        on_result: Callable[[PhaseResult], None] | None = None,
    ) -> None:
        """
        Args:
            session: Context plus mutator for this run.
            confirm: Asked before each gated phase; None declines
                every gate unless the context says ``assume_yes``.
            on_phase: Progress callback ``(phase, total)`` before a phase runs.
            on_result: Callback after each phase finishes.
        """
        self.session = session
        self.confirm = confirm
        self.on_phase = on_phase
        self.on_result = on_result

    def _gate_open(self, phase: Phase) -> bool:
        if self.session.ctx.assume_yes:
            return True
        if self.confirm is None:
            logger.warning("Gate before '%s' declined: no confirmation available (use --yes)", phase.name)
            return False
        return self.confirm(f"Continue with phase {phase.ordinal} ({phase.name})?")

    def run(self, phases: list[Phase], *, title: str = "") -> RunReport:
        plan = number_phases(phases)
        total = len(plan)
        report = RunReport(
            title=title,
            target=self.session.target.name,
            started_at=datetime.now(UTC).isoformat(),
        )
        logger.info("%s for %s: %d phase(s)", title or "Run", report.target, total)

        for phase in plan:
            if self.on_phase:
                self.on_phase(phase, total)

            if phase.when is not None and not phase.when(self.session):
                logger.info("[%d/%d] %s — skipped", phase.ordinal, total, phase.name)
                self._record(report, PhaseResult(phase.ordinal, phase.name, PhaseStatus.SKIPPED))
                continue

            if phase.gate and not self._gate_open(phase):
                logger.warning("[%d/%d] %s — declined by operator", phase.ordinal, total, phase.name)
                report.status = RunStatus.ABORTED
                report.aborted_at = (phase.ordinal, phase.name)
                report.declined = True
                break

            logger.info("[%d/%d] %s — started", phase.ordinal, total, phase.name)
            start = time.monotonic()
            try:
                phase.body(self.session)
            except PodstackError as e:
                duration = int((time.monotonic() - start) * 1000)
                if phase.policy is FailurePolicy.WARN:
                    logger.warning("[%d/%d] %s — failed, continuing: %s", phase.ordinal, total, phase.name, e)
                    self._record(report, PhaseResult(
                        phase.ordinal, phase.name, PhaseStatus.WARNED, str(e), e.hint, duration,
                    ))
                    continue
                logger.error("[%d/%d] %s — failed: %s", phase.ordinal, total, phase.name, e)
                self._record(report, PhaseResult(
                    phase.ordinal, phase.name, PhaseStatus.FAILED, str(e), e.hint, duration,
                ))
                report.status = RunStatus.ABORTED
                report.aborted_at = (phase.ordinal, phase.name)
                report.cause = e
                break

            duration = int((time.monotonic() - start) * 1000)
            logger.info("[%d/%d] %s — done (%dms)", phase.ordinal, total, phase.name, duration)
            self._record(report, PhaseResult(phase.ordinal, phase.name, PhaseStatus.OK, duration_ms=duration))

        if report.status is RunStatus.COMPLETED:
            report.ownership_applied = self.session.mutator.finalize_ownership()

        report.notes = list(self.session.notes)
        report.ended_at = datetime.now(UTC).isoformat()
        logger.info("%s for %s: %s", title or "Run", report.target, report.status)
        return report

    def _record(self, report: RunReport, result: PhaseResult) -> None:
        report.results.append(result)
        if self.on_result:
            self.on_result(result)
