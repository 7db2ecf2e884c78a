"""Scripted transcription backend for local development and tests."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from uuid import uuid4

from app.adapters.backend.base import TranscriptionGateway
from app.schemas.backend import BackendReport, BackendStatus


@dataclass(slots=True)
class SubmissionCall:
    media_url: str
    job_id: str
    webhook_url: str | None


class FakeTranscriptionGateway(TranscriptionGateway):
    """Returns queued results in order; unscripted calls succeed.

    ``queue_submit`` accepts an external job id or an exception to raise.
    ``set_report`` fixes what ``poll_status`` returns (or raises) for an id.
    """

    def __init__(self) -> None:
        self.submissions: list[SubmissionCall] = []
        self.poll_calls: list[str] = []
        self._submit_results: deque[str | Exception] = deque()
        self._reports: dict[str, BackendReport | Exception] = {}

    def queue_submit(self, *results: str | Exception) -> None:
        self._submit_results.extend(results)

    def set_report(self, external_job_id: str, report: BackendReport | Exception) -> None:
        self._reports[external_job_id] = report

    def submit(self, media_url: str, *, job_id: str, webhook_url: str | None = None) -> str:
        self.submissions.append(SubmissionCall(media_url=media_url, job_id=job_id, webhook_url=webhook_url))
        if not self._submit_results:
            return f"fake-{uuid4()}"
        result = self._submit_results.popleft()
        if isinstance(result, Exception):
            raise result
        return result

    def poll_status(self, external_job_id: str) -> BackendReport:
        self.poll_calls.append(external_job_id)
        report = self._reports.get(external_job_id)
        if report is None:
            return BackendReport(job_id=external_job_id, status=BackendStatus.PROCESSING)
        if isinstance(report, Exception):
            raise report
        return report


__all__ = ["FakeTranscriptionGateway", "SubmissionCall"]
