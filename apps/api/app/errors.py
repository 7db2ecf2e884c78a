"""Application exception types."""

from typing import Literal

from app.schemas.error import ErrorResponse

WebhookRejectionReason = Literal["unknown_job", "stale", "malformed", "unauthorized"]

_WEBHOOK_REJECTIONS: dict[str, tuple[int, str, str]] = {
    "unknown_job": (404, "RESOURCE_NOT_FOUND", "Job not found"),
    "stale": (401, "WEBHOOK_EXPIRED", "Webhook expired"),
    "malformed": (400, "WEBHOOK_MALFORMED", "Invalid webhook payload"),
    "unauthorized": (401, "UNAUTHORIZED", "Invalid webhook authentication"),
}


class ApiError(Exception):
    """Structured API error that maps directly to contract error payloads."""

    def __init__(self, status_code: int, code: str, message: str, details: dict | None = None) -> None:
        self.status_code = status_code
        self.payload = ErrorResponse(code=code, message=message, details=details)
        super().__init__(message)


class JobNotFound(ApiError):
    """Raised when a job id (or external job id) has no persisted record."""

    def __init__(self, job_id: str | None = None) -> None:
        super().__init__(status_code=404, code="RESOURCE_NOT_FOUND", message="Resource not found")
        self.job_id = job_id


class WebhookRejected(ApiError):
    """Inbound notification refused before it could touch job state."""

    def __init__(self, reason: WebhookRejectionReason, details: dict | None = None) -> None:
        status_code, code, message = _WEBHOOK_REJECTIONS[reason]
        super().__init__(status_code=status_code, code=code, message=message, details=details)
        self.reason = reason


__all__ = ["ApiError", "JobNotFound", "WebhookRejected", "WebhookRejectionReason"]
