"""Transcription backend provider interface."""

from abc import ABC, abstractmethod

from app.schemas.backend import BackendReport


class TranscriptionGateway(ABC):
    """Provider-neutral submission and status interface.

    ``submit`` raises ``SubmissionError`` with a transient/terminal
    classification; ``poll_status`` raises ``PollError``.
    """

    @abstractmethod
    def submit(self, media_url: str, *, job_id: str, webhook_url: str | None = None) -> str:
        """Submit media for transcription and return the external job id."""

    @abstractmethod
    def poll_status(self, external_job_id: str) -> BackendReport:
        """Fetch the current backend status for an external job."""


__all__ = ["TranscriptionGateway"]
