"""Job creation and submission to the transcription backend."""

from __future__ import annotations

import logging
import random

from app.adapters.backend import TranscriptionGateway
from app.adapters.notify import JobNotifier, fire_and_forget
from app.core.config import Settings
from app.core.logging_safety import safe_log_identifier, safe_log_text
from app.domain.errors import SubmissionError
from app.repositories.base import JobRecord
from app.schemas.job import JobStatus
from app.services.retry import RetryScheduler, TimerFactory, is_retryable, thread_timer
from app.services.transitions import TransitionEngine

logger = logging.getLogger(__name__)

_SUBMITTABLE_STATUSES: set[JobStatus] = {JobStatus.UPLOADED, JobStatus.RETRY}


class SubmissionService:
    def __init__(
        self,
        engine: TransitionEngine,
        gateway: TranscriptionGateway,
        notifier: JobNotifier,
        settings: Settings,
        *,
        rng: random.Random | None = None,
        timer_factory: TimerFactory | None = thread_timer,
    ) -> None:
        self._engine = engine
        self._gateway = gateway
        self._notifier = notifier
        self._media_base_url = (settings.media_base_url or "").rstrip("/")
        self._webhook_url = settings.public_webhook_url
        self.retries = RetryScheduler(
            engine,
            notifier,
            resubmit=lambda job_id: self.submit_job(job_id, respect_schedule=False),
            max_attempts=settings.retry_max_attempts,
            base_delay_s=settings.retry_base_delay_seconds,
            max_delay_s=settings.retry_max_delay_seconds,
            jitter_s=settings.retry_jitter_seconds,
            rng=rng,
            timer_factory=timer_factory if settings.retry_timers_enabled else None,
        )

    def create_job(
        self,
        *,
        media_ref: str,
        filename: str | None = None,
        file_size: int | None = None,
        defer_submission: bool = False,
    ) -> JobRecord:
        record = self._engine.store.create_job(media_ref=media_ref, filename=filename, file_size=file_size)
        logger.info("job.created job_id=%s", safe_log_identifier(record.id, prefix="jid"))
        fire_and_forget(self._notifier.notify_created, record)
        if defer_submission:
            return record
        return self.submit_job(record.id)

    def submit_job(self, job_id: str, *, respect_schedule: bool = True) -> JobRecord:
        """Submit (or resubmit) a job while holding its in-flight lease.

        Jobs in any other status, retries that are not yet due, and jobs whose
        lease is held elsewhere are returned unchanged.
        """
        safe_job_id = safe_log_identifier(job_id, prefix="jid")
        current = self._engine.get(job_id)
        if respect_schedule and not (
            current.status is JobStatus.UPLOADED or self.retries.is_due(current, self._engine.now())
        ):
            return current

        claimed = self._engine.claim_lease(job_id, _SUBMITTABLE_STATUSES)
        if claimed is None:
            logger.info("submission.skipped job_id=%s status=%s", safe_job_id, current.status.value)
            return self._engine.get(job_id)

        try:
            external_job_id = self._gateway.submit(
                self._media_url(claimed.media_ref),
                job_id=claimed.id,
                webhook_url=self._webhook_url,
            )
        except SubmissionError as exc:
            return self._handle_failure(claimed, exc)
        except Exception as exc:
            # Unclassified gateway failures still count against the retry cap.
            logger.exception("submission.unexpected_error job_id=%s", safe_job_id)
            return self._handle_failure(claimed, exc)

        outcome = self._engine.transition(
            job_id,
            JobStatus.PROCESSING,
            {
                "external_job_id": external_job_id,
                "processing_started_at": self._engine.now(),
                "error_message": None,
            },
            guard=lambda record: record.lease_id == claimed.lease_id,
        )
        if outcome.applied:
            logger.info(
                "submission.accepted job_id=%s external_job_id=%s retry_count=%s",
                safe_job_id,
                safe_log_identifier(external_job_id, prefix="xid"),
                outcome.job.retry_count,
            )
        else:
            logger.warning(
                "submission.orphaned job_id=%s external_job_id=%s status=%s",
                safe_job_id,
                safe_log_identifier(external_job_id, prefix="xid"),
                outcome.job.status.value,
            )
        return outcome.job

    def _handle_failure(self, claimed: JobRecord, exc: Exception) -> JobRecord:
        safe_job_id = safe_log_identifier(claimed.id, prefix="jid")
        retryable = is_retryable(exc)
        logger.warning(
            "submission.failed job_id=%s transient=%s status_code=%s error=%s",
            safe_job_id,
            retryable,
            getattr(exc, "status_code", None),
            safe_log_text(exc),
        )
        if retryable:
            return self.retries.schedule_retry(claimed, exc).job

        message = f"Non-retryable error: {exc}"
        outcome = self._engine.transition(
            claimed.id,
            JobStatus.ERROR,
            {"error_message": message},
            guard=lambda record: record.lease_id == claimed.lease_id,
            on_applied=lambda record: fire_and_forget(self._notifier.notify_failed, record, message),
        )
        return outcome.job

    def _media_url(self, media_ref: str) -> str:
        if not self._media_base_url or "://" in media_ref:
            return media_ref
        return f"{self._media_base_url}/{media_ref.lstrip('/')}"
