"""FastAPI application entrypoint."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress
from datetime import UTC, datetime
import logging

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse

from app.adapters.archive import TranscriptArchive
from app.adapters.backend import TranscriptionGateway
from app.adapters.notify import JobNotifier
from app.core.config import Settings, get_settings
from app.errors import ApiError
from app.repositories.base import JobStore
from app.routes import internal_router, jobs_router, webhooks_router
from app.routes.dependencies import build_archive, build_gateway, build_notifier, build_store, build_sweep
from app.schemas.internal import HealthResponse

logger = logging.getLogger(__name__)

_OPENAPI_RESPONSE_CODES: dict[str, dict[str, set[str]]] = {
    "/api/v1/jobs": {"post": {"201", "401", "422"}, "get": {"200", "401"}},
    "/api/v1/jobs/{jobId}": {"get": {"200", "401", "404"}},
    "/api/v1/jobs/{jobId}/poll": {"post": {"200", "401", "404"}},
    "/api/v1/webhooks/transcription": {"post": {"200", "400", "401", "404"}},
    "/api/v1/internal/sweep": {"post": {"200", "401"}},
}


def _apply_contract_response_codes(schema: dict) -> None:
    """Limit documented response codes to the ones each endpoint can return."""
    for path, methods in _OPENAPI_RESPONSE_CODES.items():
        path_item = schema.get("paths", {}).get(path)
        if not path_item:
            continue

        for method, allowed_codes in methods.items():
            operation = path_item.get(method)
            if not operation:
                continue

            responses = operation.setdefault("responses", {})
            for status_code in list(responses.keys()):
                if status_code not in allowed_codes:
                    responses.pop(status_code, None)

            for status_code in sorted(allowed_codes):
                responses.setdefault(status_code, {"description": "See API contract"})


async def _sweep_loop(app: FastAPI, settings: Settings) -> None:
    while True:
        await asyncio.sleep(settings.sweep_interval_seconds)
        try:
            await asyncio.to_thread(build_sweep(app.state, settings).run)
        except Exception:
            logger.exception("sweep.loop_failed")


def create_app(
    *,
    settings: Settings | None = None,
    store: JobStore | None = None,
    gateway: TranscriptionGateway | None = None,
    notifier: JobNotifier | None = None,
    archive: TranscriptArchive | None = None,
) -> FastAPI:
    explicit_settings = settings is not None
    if settings is None:
        settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        task = None
        if settings.sweep_enabled:
            logger.info("sweep.loop_started interval_s=%s", settings.sweep_interval_seconds)
            task = asyncio.create_task(_sweep_loop(app, settings))
        try:
            yield
        finally:
            if task is not None:
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task

    app = FastAPI(title="Transcription Jobs API", version="1.0.0", lifespan=lifespan)
    app.state.store = store or build_store(settings)
    app.state.gateway = gateway or build_gateway(settings)
    app.state.notifier = notifier or build_notifier(settings)
    app.state.archive = archive or build_archive(settings)
    if explicit_settings:
        app.dependency_overrides[get_settings] = lambda: settings

    @app.exception_handler(ApiError)
    async def handle_api_error(_, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.payload.model_dump(mode="json", exclude_none=True),
        )

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", timestamp=datetime.now(UTC))

    api_prefix = "/api/v1"
    app.include_router(jobs_router, prefix=api_prefix)
    app.include_router(webhooks_router, prefix=api_prefix)
    app.include_router(internal_router, prefix=api_prefix)

    def custom_openapi() -> dict:
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )
        _apply_contract_response_codes(schema)
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app


app = create_app()
