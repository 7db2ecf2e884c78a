"""Validated shapes for transcription backend status reports.

Webhook bodies and poll responses arrive as untyped JSON. They are parsed into
``BackendReport`` and then narrowed into one of three outcomes before anything
reaches the state machine:

- ``StillRunning``: queued, processing, or a status we do not recognise.
- ``Completed``: the backend finished and returned transcript text.
- ``Failed``: the backend reported a failure.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from app.domain.transcript import build_result
from app.schemas.job import TranscriptionResult, TranscriptSegment

_BACKEND_FAILURE_MESSAGE = "Transcription failed"


class BackendStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    UNKNOWN = "unknown"


_STATUS_ALIASES = {
    "succeeded": BackendStatus.COMPLETED,
    "running": BackendStatus.PROCESSING,
    "pending": BackendStatus.QUEUED,
    "created": BackendStatus.QUEUED,
}


@dataclass(frozen=True, slots=True)
class StillRunning:
    external_job_id: str
    status: BackendStatus


@dataclass(frozen=True, slots=True)
class Completed:
    external_job_id: str
    result: TranscriptionResult


@dataclass(frozen=True, slots=True)
class Failed:
    external_job_id: str
    message: str


BackendOutcome = StillRunning | Completed | Failed


class BackendReport(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    job_id: str = Field(min_length=1, validation_alias=AliasChoices("job_id", "id"))
    status: BackendStatus = BackendStatus.UNKNOWN
    transcript: str | None = Field(default=None, validation_alias=AliasChoices("transcript", "text"))
    segments: list[TranscriptSegment] = Field(default_factory=list)
    summary: str | None = None
    sentiment: str | None = None
    translation: str | None = None
    captions: str | None = Field(default=None, validation_alias=AliasChoices("captions", "srt_content", "srt"))
    processing_time: float | None = None
    error: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _flatten_output(cls, data: Any) -> Any:
        # Results may be nested under "output"; top-level keys win on conflict.
        if not isinstance(data, dict):
            return data
        output = data.get("output")
        if not isinstance(output, dict):
            return data
        merged = dict(output)
        merged.update({key: value for key, value in data.items() if key != "output" and value is not None})
        return merged

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> BackendStatus:
        text = str(value or "").strip().lower()
        if text in _STATUS_ALIASES:
            return _STATUS_ALIASES[text]
        try:
            return BackendStatus(text)
        except ValueError:
            return BackendStatus.UNKNOWN

    @field_validator("segments", mode="before")
    @classmethod
    def _drop_null_segments(cls, value: Any) -> Any:
        return [] if value is None else value

    def to_outcome(self) -> BackendOutcome:
        if self.status is BackendStatus.FAILED:
            return Failed(external_job_id=self.job_id, message=self.error or _BACKEND_FAILURE_MESSAGE)
        # A completion without transcript text cannot be applied yet.
        if self.status is BackendStatus.COMPLETED and self.transcript:
            return Completed(external_job_id=self.job_id, result=build_result(self))
        return StillRunning(external_job_id=self.job_id, status=self.status)


__all__ = [
    "BackendOutcome",
    "BackendReport",
    "BackendStatus",
    "Completed",
    "Failed",
    "StillRunning",
]
