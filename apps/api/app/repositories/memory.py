"""In-memory job store used for local runs and tests."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime
import threading
from typing import Any
from uuid import uuid4

from app.repositories.base import JobRecord, JobStore, validate_changes
from app.schemas.job import JobStatus


def _utc_now() -> datetime:
    return datetime.now(UTC)


class InMemoryStore(JobStore):
    """Deterministic persistence layer with one lock per record.

    Records are handed out as copies, so callers only change state through
    ``compare_and_set``.
    """

    def __init__(self, *, clock: Callable[[], datetime] = _utc_now) -> None:
        self._clock = clock
        self._jobs: dict[str, JobRecord] = {}
        self._record_locks: dict[str, threading.Lock] = {}
        self._external_index: dict[str, str] = {}
        self.job_write_count = 0

    def create_job(self, *, media_ref: str, filename: str | None = None, file_size: int | None = None) -> JobRecord:
        now = self._clock()
        job = JobRecord(
            id=str(uuid4()),
            media_ref=media_ref,
            status=JobStatus.UPLOADED,
            created_at=now,
            updated_at=now,
            filename=filename,
            file_size=file_size,
        )
        self._record_locks[job.id] = threading.Lock()
        self._jobs[job.id] = job
        self.job_write_count += 1
        return replace(job)

    def get_job(self, job_id: str) -> JobRecord | None:
        job = self._jobs.get(job_id)
        return replace(job) if job is not None else None

    def get_job_by_external_id(self, external_job_id: str) -> JobRecord | None:
        job_id = self._external_index.get(external_job_id)
        if job_id is None:
            return None
        return self.get_job(job_id)

    def compare_and_set(self, job_id: str, *, expected_version: int, changes: dict[str, Any]) -> JobRecord | None:
        validate_changes(changes)
        lock = self._record_locks.get(job_id)
        if lock is None:
            return None

        with lock:
            current = self._jobs[job_id]
            if current.version != expected_version:
                return None

            new_external_id = changes.get("external_job_id")
            if new_external_id is not None and new_external_id != current.external_job_id:
                owner = self._external_index.get(new_external_id)
                if owner is not None and owner != job_id:
                    raise ValueError("external_job_id already indexed for another job")

            updated = replace(current, **changes)
            updated.version = current.version + 1
            updated.updated_at = self._clock()
            self._jobs[job_id] = updated
            if updated.external_job_id is not None:
                self._external_index[updated.external_job_id] = job_id
            self.job_write_count += 1
            return replace(updated)

    def list_jobs(self, *, limit: int = 100) -> list[JobRecord]:
        jobs = sorted(list(self._jobs.values()), key=lambda record: record.created_at, reverse=True)
        return [replace(record) for record in jobs[:limit]]

    def list_jobs_by_status(self, status: JobStatus) -> list[JobRecord]:
        jobs = [record for record in list(self._jobs.values()) if record.status is status]
        jobs.sort(key=lambda record: record.created_at)
        return [replace(record) for record in jobs]
