"""Backend push notification routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool

from app.errors import WebhookRejected
from app.routes.dependencies import get_webhook_service, require_webhook_secret
from app.schemas.error import NoLeakNotFoundError, WebhookRejectedError
from app.schemas.internal import WebhookAck
from app.services.webhooks import WebhookService

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post(
    "/transcription",
    response_model=WebhookAck,
    responses={
        400: {"model": WebhookRejectedError},
        401: {"model": WebhookRejectedError},
        404: {"model": NoLeakNotFoundError},
    },
)
async def receive_transcription_webhook(
    request: Request,
    _: Annotated[None, Depends(require_webhook_secret)],
    service: Annotated[WebhookService, Depends(get_webhook_service)],
) -> WebhookAck:
    try:
        payload = await request.json()
    except ValueError as exc:
        raise WebhookRejected("malformed") from exc

    # Completion side effects (archive, notifier) do blocking I/O.
    result = await run_in_threadpool(service.handle, payload, request.headers)
    return WebhookAck(job_id=result.job.id, applied=result.applied, current_status=result.job.status)
