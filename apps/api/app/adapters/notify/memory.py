"""Notifiers that do not leave the process."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Literal

from app.adapters.notify.base import JobNotifier
from app.core.logging_safety import safe_log_identifier, safe_log_text
from app.repositories.base import JobRecord
from app.schemas.job import TranscriptionResult

logger = logging.getLogger(__name__)


class LoggingNotifier(JobNotifier):
    """Default when no downstream webhook is configured."""

    def notify_created(self, job: JobRecord) -> None:
        logger.info("notify.job_created job_id=%s", safe_log_identifier(job.id, prefix="jid"))

    def notify_completed(self, job: JobRecord, result: TranscriptionResult) -> None:
        logger.info(
            "notify.job_completed job_id=%s word_count=%s",
            safe_log_identifier(job.id, prefix="jid"),
            result.word_count,
        )

    def notify_failed(self, job: JobRecord, error_message: str) -> None:
        logger.info(
            "notify.job_failed job_id=%s error=%s",
            safe_log_identifier(job.id, prefix="jid"),
            safe_log_text(error_message),
        )


@dataclass(slots=True)
class NotificationEvent:
    event_type: Literal["created", "completed", "failed"]
    job_id: str
    detail: str | None = None


class RecordingNotifier(JobNotifier):
    """Keeps every event in order; optionally fails on a given event type."""

    def __init__(self, *, fail_on: set[str] | None = None) -> None:
        self.events: list[NotificationEvent] = []
        self._fail_on = fail_on or set()

    def _record(self, event: NotificationEvent) -> None:
        self.events.append(event)
        if event.event_type in self._fail_on:
            raise RuntimeError(f"Injected {event.event_type} notification failure")

    def notify_created(self, job: JobRecord) -> None:
        self._record(NotificationEvent(event_type="created", job_id=job.id))

    def notify_completed(self, job: JobRecord, result: TranscriptionResult) -> None:
        self._record(NotificationEvent(event_type="completed", job_id=job.id, detail=result.text))

    def notify_failed(self, job: JobRecord, error_message: str) -> None:
        self._record(NotificationEvent(event_type="failed", job_id=job.id, detail=error_message))

    def events_of(self, event_type: str) -> list[NotificationEvent]:
        return [event for event in self.events if event.event_type == event_type]


__all__ = ["LoggingNotifier", "NotificationEvent", "RecordingNotifier"]
