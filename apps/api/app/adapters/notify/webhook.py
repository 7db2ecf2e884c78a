"""Outbound webhook notifier."""

from __future__ import annotations

from datetime import UTC, datetime
import logging
from typing import Any

import httpx

from app.adapters.notify.base import JobNotifier
from app.core.logging_safety import safe_log_identifier
from app.repositories.base import JobRecord
from app.schemas.job import TranscriptionResult

logger = logging.getLogger(__name__)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class WebhookNotifier(JobNotifier):
    """POSTs one JSON event per lifecycle change to a configured URL."""

    def __init__(self, url: str, *, timeout_s: float = 10.0, transport: httpx.BaseTransport | None = None) -> None:
        self.url = url
        self.timeout_s = timeout_s
        self._transport = transport

    def _post(self, payload: dict[str, Any]) -> None:
        with httpx.Client(timeout=self.timeout_s, transport=self._transport) as client:
            r = client.post(self.url, json=payload)
            r.raise_for_status()
        logger.info(
            "notify.sent job_id=%s event=%s status_code=%s",
            safe_log_identifier(payload.get("job_id"), prefix="jid"),
            payload.get("event_type"),
            r.status_code,
        )

    def notify_created(self, job: JobRecord) -> None:
        self._post(
            {
                "event_type": "job_created",
                "job_id": job.id,
                "filename": job.filename,
                "file_size": job.file_size,
                "status": "created",
                "created_at": _iso(job.created_at),
            }
        )

    def notify_completed(self, job: JobRecord, result: TranscriptionResult) -> None:
        self._post(
            {
                "event_type": "job_completed",
                "job_id": job.id,
                "filename": job.filename,
                "file_size": job.file_size,
                "status": "completed",
                "external_job_id": job.external_job_id,
                "transcription_text": result.text,
                "summary": result.summary,
                "sentiment": result.sentiment,
                "translation": result.translation,
                "captions": result.captions,
                "word_count": result.word_count,
                "processing_time": result.processing_time or 0,
                "segments": [segment.model_dump() for segment in result.segments],
                "created_at": _iso(job.created_at),
                "completed_at": _iso(job.completed_at or datetime.now(UTC)),
            }
        )

    def notify_failed(self, job: JobRecord, error_message: str) -> None:
        self._post(
            {
                "event_type": "job_failed",
                "job_id": job.id,
                "filename": job.filename,
                "status": "failed",
                "external_job_id": job.external_job_id,
                "error": error_message,
                "retry_count": job.retry_count,
                "created_at": _iso(job.created_at),
                "completed_at": _iso(job.completed_at),
            }
        )


__all__ = ["WebhookNotifier"]
