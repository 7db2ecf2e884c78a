"""Dependency wiring for routes."""

from __future__ import annotations

import logging
from secrets import compare_digest
from typing import Annotated

from fastapi import Depends, Request, Security
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from app.adapters.archive import FilesystemArchive, InMemoryArchive, TranscriptArchive
from app.adapters.backend import FakeTranscriptionGateway, HttpTranscriptionGateway, TranscriptionGateway
from app.adapters.notify import JobNotifier, LoggingNotifier, WebhookNotifier
from app.core.config import Settings, get_settings
from app.core.logging_safety import safe_log_identifier
from app.errors import ApiError, WebhookRejected
from app.repositories.base import JobStore
from app.repositories.memory import InMemoryStore
from app.repositories.sqlite import SqliteJobStore
from app.services.reconciliation import ReconciliationHandler
from app.services.replay_guard import ReplayGuard
from app.services.submission import SubmissionService
from app.services.sweep import ReconciliationSweep
from app.services.transitions import TransitionEngine
from app.services.webhooks import WebhookService

bearer_scheme = HTTPBearer(auto_error=False, scheme_name="bearerAuth")
webhook_secret_scheme = APIKeyHeader(
    name="X-Webhook-Secret",
    auto_error=False,
    scheme_name="webhookSecret",
)
logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> JobStore:
    if settings.store_provider == "sqlite":
        return SqliteJobStore(settings.sqlite_path)
    return InMemoryStore()


def build_gateway(settings: Settings) -> TranscriptionGateway:
    """Resolve backend adapter from configuration."""
    if settings.backend_provider == "fake":
        return FakeTranscriptionGateway()
    return HttpTranscriptionGateway(
        settings.backend_url,
        settings.backend_api_key,
        timeout_s=settings.backend_timeout_seconds,
    )


def build_notifier(settings: Settings) -> JobNotifier:
    if settings.notifier_webhook_url:
        return WebhookNotifier(settings.notifier_webhook_url, timeout_s=settings.notifier_timeout_seconds)
    return LoggingNotifier()


def build_archive(settings: Settings) -> TranscriptArchive:
    if settings.archive_dir:
        return FilesystemArchive(settings.archive_dir)
    return InMemoryArchive()


def _auth_error(message: str) -> ApiError:
    return ApiError(status_code=401, code="UNAUTHORIZED", message=message)


async def require_api_token(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> None:
    """Validate the caller bearer token for job endpoints."""
    if (
        settings.api_token is None
        or credentials is None
        or credentials.scheme.lower() != "bearer"
        or not compare_digest(credentials.credentials, settings.api_token)
    ):
        logger.warning(
            "auth.rejected method=%s path=%s reason=invalid_or_missing_bearer",
            request.method,
            request.url.path,
        )
        raise _auth_error("Invalid or missing bearer token")


async def require_webhook_secret(
    request: Request,
    webhook_secret: Annotated[str | None, Security(webhook_secret_scheme)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> None:
    """Validate the shared webhook secret when one is configured."""
    if settings.webhook_secret is None:
        return
    if webhook_secret is None or not compare_digest(webhook_secret, settings.webhook_secret):
        logger.warning(
            "webhook.rejected reason=unauthorized path=%s secret=%s",
            request.url.path,
            safe_log_identifier(webhook_secret, prefix="sec"),
        )
        raise WebhookRejected("unauthorized")


def get_engine(request: Request, settings: Annotated[Settings, Depends(get_settings)]) -> TransitionEngine:
    return TransitionEngine(request.app.state.store, lease_seconds=settings.lease_seconds)


def get_submission_service(
    request: Request,
    engine: Annotated[TransitionEngine, Depends(get_engine)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> SubmissionService:
    return SubmissionService(engine, request.app.state.gateway, request.app.state.notifier, settings)


def get_reconciliation_handler(
    request: Request,
    engine: Annotated[TransitionEngine, Depends(get_engine)],
) -> ReconciliationHandler:
    state = request.app.state
    return ReconciliationHandler(engine, state.gateway, state.notifier, state.archive)


def get_webhook_service(
    request: Request,
    reconciliation: Annotated[ReconciliationHandler, Depends(get_reconciliation_handler)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> WebhookService:
    return WebhookService(
        request.app.state.store,
        reconciliation,
        ReplayGuard(settings.replay_window_seconds),
    )


def build_sweep(state, settings: Settings) -> ReconciliationSweep:
    engine = TransitionEngine(state.store, lease_seconds=settings.lease_seconds)
    return ReconciliationSweep(
        engine,
        SubmissionService(engine, state.gateway, state.notifier, settings),
        ReconciliationHandler(engine, state.gateway, state.notifier, state.archive),
        stuck_after_s=settings.stuck_processing_after_seconds,
        abandon_after_s=settings.abandon_processing_after_seconds,
        stranded_after_s=settings.lease_seconds,
    )


def get_sweep(request: Request, settings: Annotated[Settings, Depends(get_settings)]) -> ReconciliationSweep:
    return build_sweep(request.app.state, settings)
