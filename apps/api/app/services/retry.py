"""Backoff scheduling for transient submission failures.

A scheduled retry lives in the job record itself: status ``retry`` plus
``last_retry_at`` and ``next_retry_at``. The in-process timer is only a fast
path; ``due_jobs`` lets the recovery sweep pick up retries whose timer died
with the process.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
import logging
import random
import threading
from typing import Protocol

from app.adapters.notify import JobNotifier, fire_and_forget
from app.core.logging_safety import safe_log_identifier, safe_log_text
from app.domain.errors import RetriesExhausted, SubmissionError
from app.repositories.base import JobRecord
from app.schemas.job import JobStatus
from app.services.transitions import TransitionEngine, TransitionOutcome

logger = logging.getLogger(__name__)

_RETRYABLE_MESSAGE_MARKERS = (
    "network error",
    "timeout",
    "rate limit",
    "temporarily unavailable",
    "service unavailable",
    "gateway timeout",
    "502",
    "503",
    "504",
)


class Timer(Protocol):
    def start(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], Timer]


def thread_timer(delay_s: float, callback: Callable[[], None]) -> Timer:
    timer = threading.Timer(delay_s, callback)
    timer.daemon = True
    return timer


def is_retryable(error: Exception) -> bool:
    """Network errors, timeouts, rate limits and 5xx are retryable; the rest are terminal."""
    if isinstance(error, SubmissionError):
        return error.transient
    message = str(error).lower()
    return any(marker in message for marker in _RETRYABLE_MESSAGE_MARKERS)


class RetryScheduler:
    def __init__(
        self,
        engine: TransitionEngine,
        notifier: JobNotifier,
        *,
        resubmit: Callable[[str], object],
        max_attempts: int = 3,
        base_delay_s: float = 5.0,
        max_delay_s: float = 300.0,
        jitter_s: float = 1.0,
        rng: random.Random | None = None,
        timer_factory: TimerFactory | None = thread_timer,
    ) -> None:
        self._engine = engine
        self._notifier = notifier
        self._resubmit = resubmit
        self.max_attempts = max_attempts
        self.base_delay_s = base_delay_s
        self.max_delay_s = max_delay_s
        self.jitter_s = jitter_s
        self._rng = rng or random.Random()
        self._timer_factory = timer_factory

    def compute_delay(self, retry_count: int) -> float:
        """Return ``min(base * 2**n + jitter, cap)`` in seconds."""
        jitter = self._rng.uniform(0.0, self.jitter_s) if self.jitter_s > 0 else 0.0
        return min(self.base_delay_s * (2**retry_count) + jitter, self.max_delay_s)

    def schedule_retry(self, job: JobRecord, error: Exception) -> TransitionOutcome:
        """Move a job that just failed submission into retry, or into error once attempts run out.

        ``job`` is the leased snapshot held by the failed submission; the write
        only lands while that lease is still ours.
        """
        safe_job_id = safe_log_identifier(job.id, prefix="jid")
        next_count = 0 if job.status is JobStatus.UPLOADED else job.retry_count + 1

        def holds_lease(record: JobRecord) -> bool:
            return record.lease_id == job.lease_id

        if next_count >= self.max_attempts:
            message = str(RetriesExhausted(attempts=self.max_attempts, last_error=error))
            outcome = self._engine.transition(
                job.id,
                JobStatus.ERROR,
                {"error_message": message},
                guard=holds_lease,
                on_applied=lambda record: fire_and_forget(self._notifier.notify_failed, record, message),
            )
            if outcome.applied:
                logger.warning(
                    "retry.exhausted job_id=%s attempts=%s error=%s",
                    safe_job_id,
                    self.max_attempts,
                    safe_log_text(error),
                )
            return outcome

        delay_s = self.compute_delay(next_count)
        now = self._engine.now()
        outcome = self._engine.transition(
            job.id,
            JobStatus.RETRY,
            {
                "retry_count": next_count,
                "last_retry_at": now,
                "next_retry_at": now + timedelta(seconds=delay_s),
                "error_message": (
                    f"Retrying in {round(delay_s)} seconds (attempt {next_count + 1}/{self.max_attempts})"
                ),
            },
            guard=holds_lease,
        )
        if outcome.applied:
            logger.info(
                "retry.scheduled job_id=%s retry_count=%s delay_s=%.3f error=%s",
                safe_job_id,
                next_count,
                delay_s,
                safe_log_text(error),
            )
            self._arm_timer(outcome.job, delay_s)
        return outcome

    def is_due(self, job: JobRecord, now: datetime) -> bool:
        if job.status is not JobStatus.RETRY:
            return False
        due_at = job.next_retry_at
        if due_at is None and job.last_retry_at is not None:
            due_at = job.last_retry_at + timedelta(seconds=self.max_delay_s)
        return due_at is None or due_at <= now

    def due_jobs(self, now: datetime) -> list[JobRecord]:
        return [job for job in self._engine.store.list_jobs_by_status(JobStatus.RETRY) if self.is_due(job, now)]

    def _arm_timer(self, job: JobRecord, delay_s: float) -> None:
        if self._timer_factory is None:
            return
        self._timer_factory(delay_s, lambda: self._fire(job.id, job.retry_count)).start()

    def _fire(self, job_id: str, retry_count: int) -> None:
        # A timer from an older attempt must not resubmit a job that has moved on.
        record = self._engine.store.get_job(job_id)
        if record is None or record.status is not JobStatus.RETRY or record.retry_count != retry_count:
            return
        try:
            self._resubmit(job_id)
        except Exception:
            logger.exception("retry.timer_failed job_id=%s", safe_log_identifier(job_id, prefix="jid"))
