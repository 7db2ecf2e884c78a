"""Guarded job transitions over the store's conditional writes.

Every state change is read, check, then ``compare_and_set`` on the version that
was read. A transition whose predecessor no longer matches is a no-op that
hands back the persisted record; it is never an error. The ``on_applied``
hook runs only for the writer that won, which is what keeps completion side
effects to a single execution.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
import logging
from typing import Any
from uuid import uuid4

from app.core.logging_safety import safe_log_identifier
from app.domain.errors import ConcurrentUpdateError
from app.domain.job_fsm import allowed_next_statuses, can_transition, is_terminal
from app.errors import JobNotFound
from app.repositories.base import JobRecord, JobStore
from app.schemas.job import JobStatus

logger = logging.getLogger(__name__)

_MAX_WRITE_CONFLICTS = 16

Changes = dict[str, Any] | Callable[[JobRecord], dict[str, Any]]
Guard = Callable[[JobRecord], bool]


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class TransitionOutcome:
    applied: bool
    job: JobRecord


class TransitionEngine:
    def __init__(
        self,
        store: JobStore,
        *,
        clock: Callable[[], datetime] = utc_now,
        lease_seconds: float = 120.0,
    ) -> None:
        self._store = store
        self._clock = clock
        self._lease_ttl = timedelta(seconds=lease_seconds)

    @property
    def store(self) -> JobStore:
        return self._store

    def now(self) -> datetime:
        return self._clock()

    def get(self, job_id: str) -> JobRecord:
        record = self._store.get_job(job_id)
        if record is None:
            raise JobNotFound(job_id)
        return record

    def transition(
        self,
        job_id: str,
        target: JobStatus,
        changes: Changes | None = None,
        *,
        guard: Guard | None = None,
        on_applied: Callable[[JobRecord], None] | None = None,
    ) -> TransitionOutcome:
        safe_job_id = safe_log_identifier(job_id, prefix="jid")
        for _ in range(_MAX_WRITE_CONFLICTS):
            current = self.get(job_id)
            if not can_transition(current.status, target) or (guard is not None and not guard(current)):
                logger.info(
                    "transition.noop job_id=%s current_status=%s attempted_status=%s allowed_next_statuses=%s",
                    safe_job_id,
                    current.status.value,
                    target.value,
                    [status.value for status in allowed_next_statuses(current.status)],
                )
                return TransitionOutcome(applied=False, job=current)

            payload = dict(changes(current) if callable(changes) else (changes or {}))
            self._check_external_id(current, payload)
            payload["status"] = target
            payload["lease_id"] = None
            payload["lease_expires_at"] = None
            if is_terminal(target):
                payload.setdefault("completed_at", self._clock())

            updated = self._store.compare_and_set(job_id, expected_version=current.version, changes=payload)
            if updated is None:
                logger.debug("transition.conflict job_id=%s version=%s", safe_job_id, current.version)
                continue

            logger.info(
                "transition.applied job_id=%s prev_status=%s new_status=%s version=%s",
                safe_job_id,
                current.status.value,
                updated.status.value,
                updated.version,
            )
            if on_applied is not None:
                on_applied(updated)
            return TransitionOutcome(applied=True, job=updated)

        raise ConcurrentUpdateError(f"Gave up on job {job_id} after {_MAX_WRITE_CONFLICTS} write conflicts")

    def claim_lease(self, job_id: str, statuses: set[JobStatus]) -> JobRecord | None:
        """Reserve the job's single in-flight external call slot.

        Returns the leased snapshot, or None when the job is in another status
        or someone else holds a live lease.
        """
        for _ in range(_MAX_WRITE_CONFLICTS):
            current = self.get(job_id)
            now = self._clock()
            if current.status not in statuses or current.has_live_lease(now):
                return None
            claimed = self._store.compare_and_set(
                job_id,
                expected_version=current.version,
                changes={"lease_id": uuid4().hex, "lease_expires_at": now + self._lease_ttl},
            )
            if claimed is not None:
                return claimed
        return None

    def release_lease(self, job_id: str, lease_id: str) -> JobRecord:
        for _ in range(_MAX_WRITE_CONFLICTS):
            current = self.get(job_id)
            if current.lease_id != lease_id:
                return current
            released = self._store.compare_and_set(
                job_id,
                expected_version=current.version,
                changes={"lease_id": None, "lease_expires_at": None},
            )
            if released is not None:
                return released
        return self.get(job_id)

    @staticmethod
    def _check_external_id(current: JobRecord, payload: dict[str, Any]) -> None:
        new_external_id = payload.get("external_job_id")
        if new_external_id is None or current.external_job_id is None:
            return
        if new_external_id != current.external_job_id:
            raise ValueError("external_job_id is immutable once assigned")
