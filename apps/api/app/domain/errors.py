"""Domain failures raised by the external backend collaborators."""

from __future__ import annotations

_RETRYABLE_STATUS_CODES = frozenset({408, 425, 429})


class SubmissionError(Exception):
    """Submitting media to the transcription backend failed."""

    def __init__(self, message: str, *, transient: bool, status_code: int | None = None) -> None:
        super().__init__(message)
        self.transient = transient
        self.status_code = status_code

    @classmethod
    def from_status(cls, status_code: int, message: str | None = None) -> SubmissionError:
        """Classify an HTTP status: rate limits, timeouts and 5xx are transient, other 4xx are terminal."""
        transient = status_code in _RETRYABLE_STATUS_CODES or status_code >= 500
        return cls(message or f"Backend API error: {status_code}", transient=transient, status_code=status_code)


class PollError(Exception):
    """Status check against the backend failed; the next poll or sweep tries again."""


class RetriesExhausted(Exception):
    def __init__(self, attempts: int, last_error: Exception) -> None:
        super().__init__(f"Failed after {attempts} retry attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class ConcurrentUpdateError(Exception):
    """Conditional write kept losing to concurrent writers."""


__all__ = ["ConcurrentUpdateError", "PollError", "RetriesExhausted", "SubmissionError"]
