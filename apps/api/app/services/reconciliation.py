"""Single entry point for applying backend terminal results.

Push notifications, explicit polls and the sweep all end up in
``apply_result``. The terminal write is guarded by the job's current status
and its external job id; only the writer that wins runs the archive and
notifier side effects, so a result delivered twice is applied once.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging

from app.adapters.archive import TranscriptArchive
from app.adapters.backend import TranscriptionGateway
from app.adapters.notify import JobNotifier, fire_and_forget
from app.core.logging_safety import safe_log_identifier, safe_log_text
from app.domain.errors import PollError
from app.errors import JobNotFound
from app.repositories.base import JobRecord
from app.schemas.backend import BackendOutcome, Completed, Failed, StillRunning
from app.schemas.job import JobStatus
from app.services.transitions import TransitionEngine

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ReconciliationResult:
    applied: bool
    job: JobRecord
    detail: str | None = None


class ReconciliationHandler:
    def __init__(
        self,
        engine: TransitionEngine,
        gateway: TranscriptionGateway,
        notifier: JobNotifier,
        archive: TranscriptArchive,
    ) -> None:
        self._engine = engine
        self._gateway = gateway
        self._notifier = notifier
        self._archive = archive

    def apply_result(
        self,
        outcome: BackendOutcome,
        *,
        job_id: str | None = None,
        external_job_id: str | None = None,
    ) -> ReconciliationResult:
        external_job_id = external_job_id or outcome.external_job_id
        record = self._resolve(job_id=job_id, external_job_id=external_job_id)
        safe_job_id = safe_log_identifier(record.id, prefix="jid")

        if isinstance(outcome, StillRunning):
            logger.info(
                "reconcile.still_running job_id=%s backend_status=%s current_status=%s",
                safe_job_id,
                outcome.status.value,
                record.status.value,
            )
            return ReconciliationResult(applied=False, job=record, detail="still_processing")

        def awaiting_same_external_job(current: JobRecord) -> bool:
            return current.external_job_id == external_job_id

        if isinstance(outcome, Completed):
            transition = self._engine.transition(
                record.id,
                JobStatus.COMPLETED,
                {"result": outcome.result, "error_message": None},
                guard=awaiting_same_external_job,
                on_applied=self._on_completed,
            )
        elif isinstance(outcome, Failed):
            message = outcome.message
            transition = self._engine.transition(
                record.id,
                JobStatus.ERROR,
                {"error_message": message},
                guard=awaiting_same_external_job,
                on_applied=lambda job: fire_and_forget(self._notifier.notify_failed, job, message),
            )
        else:
            raise TypeError(f"Unsupported backend outcome: {type(outcome).__name__}")

        if not transition.applied:
            logger.info(
                "reconcile.noop job_id=%s current_status=%s attempted=%s",
                safe_job_id,
                transition.job.status.value,
                type(outcome).__name__,
            )
            return ReconciliationResult(applied=False, job=transition.job, detail="noop")

        logger.info("reconcile.applied job_id=%s new_status=%s", safe_job_id, transition.job.status.value)
        return ReconciliationResult(applied=True, job=transition.job, detail=transition.job.status.value)

    def poll_job(self, job_id: str) -> ReconciliationResult:
        """Pull the backend status for a processing job and reconcile it.

        Poll failures leave the job untouched for the next poll, webhook or sweep.
        """
        record = self._engine.get(job_id)
        safe_job_id = safe_log_identifier(job_id, prefix="jid")
        if record.status is not JobStatus.PROCESSING or record.external_job_id is None:
            return ReconciliationResult(applied=False, job=record, detail="not_processing")

        claimed = self._engine.claim_lease(job_id, {JobStatus.PROCESSING})
        if claimed is None:
            logger.info("poll.skipped job_id=%s reason=in_flight_or_resolved", safe_job_id)
            return ReconciliationResult(applied=False, job=self._engine.get(job_id), detail="in_flight")

        try:
            report = self._gateway.poll_status(record.external_job_id)
        except PollError as exc:
            logger.warning("poll.failed job_id=%s error=%s", safe_job_id, safe_log_text(exc))
            released = self._engine.release_lease(job_id, claimed.lease_id)
            return ReconciliationResult(applied=False, job=released, detail="poll_failed")

        if report.job_id != record.external_job_id:
            logger.warning(
                "poll.mismatched job_id=%s reported_external_job_id=%s",
                safe_job_id,
                safe_log_identifier(report.job_id, prefix="xid"),
            )
            released = self._engine.release_lease(job_id, claimed.lease_id)
            return ReconciliationResult(applied=False, job=released, detail="poll_mismatched")

        result = self.apply_result(report.to_outcome(), job_id=job_id, external_job_id=record.external_job_id)
        if not result.applied:
            result.job = self._engine.release_lease(job_id, claimed.lease_id)
        return result

    def abandon_job(self, job_id: str, message: str) -> ReconciliationResult:
        """Declare a processing job failed after no completion signal ever arrived."""
        record = self._engine.get(job_id)
        if record.external_job_id is None:
            return ReconciliationResult(applied=False, job=record, detail="not_processing")
        return self.apply_result(Failed(external_job_id=record.external_job_id, message=message), job_id=job_id)

    def _on_completed(self, job: JobRecord) -> None:
        if job.result is None:
            return
        fire_and_forget(self._archive.save, job, job.result)
        fire_and_forget(self._notifier.notify_completed, job, job.result)

    def _resolve(self, *, job_id: str | None, external_job_id: str | None) -> JobRecord:
        if job_id is not None:
            return self._engine.get(job_id)
        if external_job_id is not None:
            record = self._engine.store.get_job_by_external_id(external_job_id)
            if record is not None:
                return record
        raise JobNotFound(job_id or external_job_id)
