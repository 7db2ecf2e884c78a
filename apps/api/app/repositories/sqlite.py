"""SQLite-backed job store that survives process restarts."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
import os
import sqlite3
from typing import Any
from uuid import uuid4

from app.repositories.base import JobRecord, JobStore, validate_changes
from app.schemas.job import JobStatus, TranscriptionResult

SCHEMA = """
CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    media_ref TEXT NOT NULL,
    status TEXT NOT NULL,
    version INTEGER NOT NULL DEFAULT 1,
    filename TEXT,
    file_size INTEGER,
    external_job_id TEXT,
    retry_count INTEGER NOT NULL DEFAULT 0,
    last_retry_at TEXT,
    next_retry_at TEXT,
    result TEXT,
    error_message TEXT,
    completed_at TEXT,
    processing_started_at TEXT,
    lease_id TEXT,
    lease_expires_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS jobs_external_job_id ON jobs (external_job_id)
    WHERE external_job_id IS NOT NULL;
CREATE INDEX IF NOT EXISTS jobs_status ON jobs (status);
"""

_DATETIME_COLUMNS = frozenset(
    {
        "last_retry_at",
        "next_retry_at",
        "completed_at",
        "processing_started_at",
        "lease_expires_at",
        "created_at",
        "updated_at",
    }
)


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _encode(column: str, value: Any) -> Any:
    if value is None:
        return None
    if column in _DATETIME_COLUMNS:
        return value.isoformat()
    if column == "status":
        return value.value
    if column == "result":
        return value.model_dump_json()
    return value


def _decode_datetime(value: str | None) -> datetime | None:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def _row_to_record(row: sqlite3.Row) -> JobRecord:
    result = row["result"]
    return JobRecord(
        id=row["id"],
        media_ref=row["media_ref"],
        status=JobStatus(row["status"]),
        version=row["version"],
        filename=row["filename"],
        file_size=row["file_size"],
        external_job_id=row["external_job_id"],
        retry_count=row["retry_count"],
        last_retry_at=_decode_datetime(row["last_retry_at"]),
        next_retry_at=_decode_datetime(row["next_retry_at"]),
        result=TranscriptionResult.model_validate_json(result) if result else None,
        error_message=row["error_message"],
        completed_at=_decode_datetime(row["completed_at"]),
        processing_started_at=_decode_datetime(row["processing_started_at"]),
        lease_id=row["lease_id"],
        lease_expires_at=_decode_datetime(row["lease_expires_at"]),
        created_at=_decode_datetime(row["created_at"]),
        updated_at=_decode_datetime(row["updated_at"]),
    )


class SqliteJobStore(JobStore):
    """Job store whose conditional writes are ``UPDATE ... WHERE version = ?``."""

    def __init__(self, path: str, *, clock: Callable[[], datetime] = _utc_now) -> None:
        self._path = path
        self._clock = clock
        self.init_db()

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        directory = os.path.dirname(self._path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        conn = sqlite3.connect(self._path, timeout=30)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def init_db(self) -> None:
        with self._conn() as conn:
            conn.executescript(SCHEMA)

    def create_job(self, *, media_ref: str, filename: str | None = None, file_size: int | None = None) -> JobRecord:
        now = self._clock()
        record = JobRecord(
            id=str(uuid4()),
            media_ref=media_ref,
            status=JobStatus.UPLOADED,
            created_at=now,
            updated_at=now,
            filename=filename,
            file_size=file_size,
        )
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO jobs (id, media_ref, status, version, filename, file_size, retry_count, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.media_ref,
                    record.status.value,
                    record.version,
                    record.filename,
                    record.file_size,
                    record.retry_count,
                    _encode("created_at", record.created_at),
                    _encode("updated_at", record.updated_at),
                ),
            )
        return record

    def get_job(self, job_id: str) -> JobRecord | None:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
        return _row_to_record(row) if row is not None else None

    def get_job_by_external_id(self, external_job_id: str) -> JobRecord | None:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM jobs WHERE external_job_id = ?", (external_job_id,)).fetchone()
        return _row_to_record(row) if row is not None else None

    def compare_and_set(self, job_id: str, *, expected_version: int, changes: dict[str, Any]) -> JobRecord | None:
        validate_changes(changes)
        columns = sorted(changes)
        assignments = ", ".join(f"{column} = ?" for column in columns)
        params = [_encode(column, changes[column]) for column in columns]
        params.extend([_encode("updated_at", self._clock()), job_id, expected_version])
        separator = ", " if assignments else ""

        try:
            with self._conn() as conn:
                cursor = conn.execute(
                    f"UPDATE jobs SET {assignments}{separator}version = version + 1, updated_at = ? "
                    "WHERE id = ? AND version = ?",
                    params,
                )
                if cursor.rowcount != 1:
                    return None
                row = conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
        except sqlite3.IntegrityError as exc:
            raise ValueError("external_job_id already indexed for another job") from exc
        return _row_to_record(row)

    def list_jobs(self, *, limit: int = 100) -> list[JobRecord]:
        with self._conn() as conn:
            rows = conn.execute("SELECT * FROM jobs ORDER BY created_at DESC LIMIT ?", (limit,)).fetchall()
        return [_row_to_record(row) for row in rows]

    def list_jobs_by_status(self, status: JobStatus) -> list[JobRecord]:
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT * FROM jobs WHERE status = ? ORDER BY created_at ASC",
                (status.value,),
            ).fetchall()
        return [_row_to_record(row) for row in rows]
