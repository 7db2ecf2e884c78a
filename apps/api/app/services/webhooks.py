"""Inbound backend notification handling."""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Any

from pydantic import ValidationError

from app.core.logging_safety import safe_log_identifier
from app.errors import WebhookRejected
from app.repositories.base import JobStore
from app.schemas.backend import BackendReport
from app.services.reconciliation import ReconciliationHandler, ReconciliationResult
from app.services.replay_guard import ReplayGuard

logger = logging.getLogger(__name__)


class WebhookService:
    def __init__(self, store: JobStore, reconciliation: ReconciliationHandler, replay_guard: ReplayGuard) -> None:
        self._store = store
        self._reconciliation = reconciliation
        self._replay_guard = replay_guard

    def handle(self, payload: Any, headers: Mapping[str, str]) -> ReconciliationResult:
        """Admit, parse and reconcile one push notification.

        Rejections happen before any job is read for writing, so a refused
        notification leaves every job as it was.
        """
        if not isinstance(payload, dict):
            logger.warning("webhook.rejected reason=malformed detail=not_an_object")
            raise WebhookRejected("malformed")

        self._replay_guard.admit(payload, headers)

        try:
            report = BackendReport.model_validate(payload)
        except ValidationError as exc:
            logger.warning("webhook.rejected reason=malformed errors=%s", exc.error_count())
            raise WebhookRejected("malformed") from exc

        safe_external_id = safe_log_identifier(report.job_id, prefix="xid")
        job = self._store.get_job_by_external_id(report.job_id)
        if job is None:
            logger.warning("webhook.rejected reason=unknown_job external_job_id=%s", safe_external_id)
            raise WebhookRejected("unknown_job")

        logger.info(
            "webhook.accepted job_id=%s external_job_id=%s backend_status=%s",
            safe_log_identifier(job.id, prefix="jid"),
            safe_external_id,
            report.status.value,
        )
        return self._reconciliation.apply_result(report.to_outcome(), job_id=job.id, external_job_id=report.job_id)
