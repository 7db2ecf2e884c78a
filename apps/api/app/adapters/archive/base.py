"""Transcript artifact persistence interface."""

from abc import ABC, abstractmethod
from datetime import datetime

from app.repositories.base import JobRecord
from app.schemas.job import TranscriptionResult


class TranscriptArchive(ABC):
    """Stores transcript artifacts for a completed job."""

    @abstractmethod
    def save(self, job: JobRecord, result: TranscriptionResult) -> list[str]:
        """Persist artifacts and return their keys."""


def artifact_prefix(job_id: str, saved_at: datetime) -> str:
    return f"transcripts/{saved_at:%Y/%m/%d}/{job_id}"


__all__ = ["TranscriptArchive", "artifact_prefix"]
