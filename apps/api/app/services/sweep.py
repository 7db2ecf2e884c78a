"""Periodic recovery sweep.

Catches jobs that no live code path will move forward any more:

- ``processing`` jobs whose webhook never came; re-polled, and declared
  abandoned past ``abandon_after_s``.
- ``retry`` jobs whose backoff has elapsed but whose timer died with the process.
- ``uploaded`` jobs whose first submission never started or never finished.

Each job is handled on its own; one failure is logged and recorded without
stopping the rest of the sweep.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging

from app.core.logging_safety import safe_log_identifier
from app.repositories.base import JobRecord
from app.schemas.job import JobStatus
from app.services.reconciliation import ReconciliationHandler
from app.services.submission import SubmissionService
from app.services.transitions import TransitionEngine

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SweepJobResult:
    job_id: str
    action: str
    status: JobStatus
    detail: str | None = None


@dataclass(slots=True)
class SweepReport:
    started_at: datetime
    results: list[SweepJobResult] = field(default_factory=list)

    def actions(self) -> dict[str, str]:
        return {result.job_id: result.action for result in self.results}


class ReconciliationSweep:
    def __init__(
        self,
        engine: TransitionEngine,
        submission: SubmissionService,
        reconciliation: ReconciliationHandler,
        *,
        stuck_after_s: float = 600.0,
        abandon_after_s: float = 86400.0,
        stranded_after_s: float = 120.0,
    ) -> None:
        self._engine = engine
        self._submission = submission
        self._reconciliation = reconciliation
        self._stuck_after = timedelta(seconds=stuck_after_s)
        self._abandon_after = timedelta(seconds=abandon_after_s)
        self._stranded_after = timedelta(seconds=stranded_after_s)

    def run(self, now: datetime | None = None) -> SweepReport:
        now = now or self._engine.now()
        report = SweepReport(started_at=now)
        store = self._engine.store

        for job in store.list_jobs_by_status(JobStatus.PROCESSING):
            if now - (job.processing_started_at or job.created_at) >= self._stuck_after:
                self._isolate(report, job, lambda record: self._recheck_processing(record, now))

        for job in self._submission.retries.due_jobs(now):
            self._isolate(report, job, self._resubmit)

        for job in store.list_jobs_by_status(JobStatus.UPLOADED):
            if now - job.created_at >= self._stranded_after and not job.has_live_lease(now):
                self._isolate(report, job, self._resubmit)

        logger.info("sweep.finished checked=%s actions=%s", len(report.results), _count_actions(report))
        return report

    def _recheck_processing(self, job: JobRecord, now: datetime) -> SweepJobResult:
        result = self._reconciliation.poll_job(job.id)
        if result.applied:
            action = "completed" if result.job.status is JobStatus.COMPLETED else "failed"
            return SweepJobResult(job_id=job.id, action=action, status=result.job.status)

        if result.job.status is JobStatus.PROCESSING and now - (
            job.processing_started_at or job.created_at
        ) >= self._abandon_after:
            hours = self._abandon_after.total_seconds() / 3600
            abandoned = self._reconciliation.abandon_job(
                job.id,
                f"Abandoned after {hours:g} hours without a completion signal",
            )
            if abandoned.applied:
                return SweepJobResult(job_id=job.id, action="abandoned", status=abandoned.job.status)

        return SweepJobResult(job_id=job.id, action=result.detail or "noop", status=result.job.status)

    def _resubmit(self, job: JobRecord) -> SweepJobResult:
        updated = self._submission.submit_job(job.id, respect_schedule=False)
        action = {
            JobStatus.PROCESSING: "resubmitted",
            JobStatus.RETRY: "retry_scheduled",
            JobStatus.ERROR: "failed",
        }.get(updated.status, "noop")
        if updated.version == job.version:
            action = "noop"
        return SweepJobResult(job_id=job.id, action=action, status=updated.status)

    @staticmethod
    def _isolate(
        report: SweepReport,
        job: JobRecord,
        handler: Callable[[JobRecord], SweepJobResult],
    ) -> None:
        try:
            report.results.append(handler(job))
        except Exception as exc:
            logger.exception("sweep.job_failed job_id=%s", safe_log_identifier(job.id, prefix="jid"))
            report.results.append(
                SweepJobResult(job_id=job.id, action="error", status=job.status, detail=type(exc).__name__)
            )


def _count_actions(report: SweepReport) -> dict[str, int]:
    counts: dict[str, int] = {}
    for result in report.results:
        counts[result.action] = counts.get(result.action, 0) + 1
    return counts
