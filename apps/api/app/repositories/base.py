"""Job record and the store interface shared by all persistence backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any

from app.schemas.job import JobStatus, TranscriptionResult


@dataclass(slots=True)
class JobRecord:
    id: str
    media_ref: str
    status: JobStatus
    created_at: datetime
    updated_at: datetime
    version: int = 1
    filename: str | None = None
    file_size: int | None = None
    external_job_id: str | None = None
    retry_count: int = 0
    last_retry_at: datetime | None = None
    next_retry_at: datetime | None = None
    result: TranscriptionResult | None = None
    error_message: str | None = None
    completed_at: datetime | None = None
    processing_started_at: datetime | None = None
    lease_id: str | None = None
    lease_expires_at: datetime | None = None

    def has_live_lease(self, now: datetime) -> bool:
        return self.lease_id is not None and self.lease_expires_at is not None and self.lease_expires_at > now


# Bookkeeping columns are owned by the store and never accepted as changes.
MUTABLE_FIELDS = frozenset(
    f.name for f in fields(JobRecord) if f.name not in {"id", "media_ref", "created_at", "updated_at", "version"}
)


def validate_changes(changes: dict[str, Any]) -> None:
    unknown = set(changes) - MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"Unsupported job fields: {sorted(unknown)}")


class JobStore(ABC):
    """Keyed job persistence with per-record optimistic concurrency."""

    @abstractmethod
    def create_job(self, *, media_ref: str, filename: str | None = None, file_size: int | None = None) -> JobRecord:
        """Persist a new job in UPLOADED status."""

    @abstractmethod
    def get_job(self, job_id: str) -> JobRecord | None:
        """Return a snapshot of the job, or None."""

    @abstractmethod
    def get_job_by_external_id(self, external_job_id: str) -> JobRecord | None:
        """Look a job up through the external job id index."""

    @abstractmethod
    def compare_and_set(self, job_id: str, *, expected_version: int, changes: dict[str, Any]) -> JobRecord | None:
        """Apply changes only if the stored version still matches.

        Returns the updated snapshot, or None when another writer got there first.
        """

    @abstractmethod
    def list_jobs(self, *, limit: int = 100) -> list[JobRecord]:
        """Return the most recently created jobs first."""

    @abstractmethod
    def list_jobs_by_status(self, status: JobStatus) -> list[JobRecord]:
        """Return jobs currently in a status, oldest first."""


__all__ = ["JobRecord", "JobStore", "MUTABLE_FIELDS", "validate_changes"]
