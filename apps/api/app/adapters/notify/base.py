"""Downstream job notification interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
import logging
from typing import Any

from app.core.logging_safety import safe_log_identifier
from app.repositories.base import JobRecord
from app.schemas.job import TranscriptionResult

logger = logging.getLogger(__name__)


class JobNotifier(ABC):
    """Receives lifecycle events; delivery is best effort."""

    @abstractmethod
    def notify_created(self, job: JobRecord) -> None:
        """Announce a newly created job."""

    @abstractmethod
    def notify_completed(self, job: JobRecord, result: TranscriptionResult) -> None:
        """Announce a completed transcription."""

    @abstractmethod
    def notify_failed(self, job: JobRecord, error_message: str) -> None:
        """Announce a job that ended in error."""


def fire_and_forget(call: Callable[..., Any], job: JobRecord, *args: Any) -> None:
    """Run a side-effect call; failures are logged and never reach job state."""
    try:
        call(job, *args)
    except Exception as exc:
        logger.warning(
            "notify.failed job_id=%s event=%s reason=%s",
            safe_log_identifier(job.id, prefix="jid"),
            getattr(call, "__name__", "unknown"),
            type(exc).__name__,
        )


__all__ = ["JobNotifier", "fire_and_forget"]
