"""HTTP transcription backend adapter."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from app.adapters.backend.base import TranscriptionGateway
from app.core.logging_safety import safe_log_text
from app.domain.errors import PollError, SubmissionError
from app.schemas.backend import BackendReport

logger = logging.getLogger(__name__)


class HttpTranscriptionGateway(TranscriptionGateway):
    """Talks to the hosted transcription endpoint over JSON/HTTP."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        *,
        timeout_s: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._api_key = api_key
        self._transport = transport

    def _client(self) -> httpx.Client:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Salad-Api-Key"] = self._api_key
        return httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout_s,
            headers=headers,
            transport=self._transport,
        )

    @staticmethod
    def _build_request(media_url: str, *, job_id: str, webhook_url: str | None) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "input": {
                "url": media_url,
                "return_as_file": False,
                "language_code": "en",
                "sentence_level_timestamps": True,
                "word_level_timestamps": True,
                "diarization": True,
                "sentence_diarization": True,
                "srt": True,
                "summarize": 100,
            },
            "metadata": {"job-id": job_id},
        }
        if webhook_url:
            payload["webhook"] = webhook_url
        return payload

    def submit(self, media_url: str, *, job_id: str, webhook_url: str | None = None) -> str:
        payload = self._build_request(media_url, job_id=job_id, webhook_url=webhook_url)
        try:
            with self._client() as client:
                r = client.post("/jobs", json=payload)
        except httpx.TimeoutException as exc:
            raise SubmissionError(f"Backend timeout: {type(exc).__name__}", transient=True) from exc
        except httpx.TransportError as exc:
            raise SubmissionError(f"Backend network error: {type(exc).__name__}", transient=True) from exc

        if r.status_code >= 400:
            logger.warning(
                "backend.submit_rejected status_code=%s body=%s",
                r.status_code,
                safe_log_text(r.text),
            )
            raise SubmissionError.from_status(r.status_code)

        try:
            data = r.json()
        except ValueError as exc:
            raise SubmissionError("Backend returned a non-JSON submission response", transient=False) from exc

        if not isinstance(data, dict):
            raise SubmissionError("Backend submission response is not an object", transient=False)
        external_job_id = str(data.get("id") or data.get("job_id") or "").strip()
        if not external_job_id:
            raise SubmissionError("Backend submission response is missing a job id", transient=False)
        return external_job_id

    def poll_status(self, external_job_id: str) -> BackendReport:
        try:
            with self._client() as client:
                r = client.get(f"/jobs/{external_job_id}")
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPError as exc:
            raise PollError(f"Status check failed: {type(exc).__name__}") from exc
        except ValueError as exc:
            raise PollError("Status check returned non-JSON body") from exc

        if not isinstance(data, dict):
            raise PollError("Status check returned an unexpected body")
        data.setdefault("job_id", data.get("id") or external_job_id)
        try:
            return BackendReport.model_validate(data)
        except ValidationError as exc:
            raise PollError("Status check returned an invalid report") from exc


__all__ = ["HttpTranscriptionGateway"]
