"""Job API schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    RETRY = "retry"
    COMPLETED = "completed"
    ERROR = "error"


class TranscriptSegment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    start: float = 0.0
    end: float = 0.0
    text: str = ""
    speaker: str | None = None


class TranscriptionResult(BaseModel):
    """Transcript payload persisted on a completed job."""

    text: str
    segments: list[TranscriptSegment] = Field(default_factory=list)
    summary: str | None = None
    sentiment: str | None = None
    translation: str | None = None
    captions: str | None = None
    processing_time: float | None = None
    duration: float = 0.0
    word_count: int = 0
    language: str = "en"
    external_job_id: str | None = None


class CreateJobRequest(BaseModel):
    media_ref: str = Field(min_length=1)
    filename: str | None = None
    file_size: int | None = Field(default=None, ge=0)
    # Leave the job uploaded; the sweep or a later submission picks it up.
    defer_submission: bool = False


class Job(BaseModel):
    id: str
    status: JobStatus
    media_ref: str
    filename: str | None = None
    file_size: int | None = None
    external_job_id: str | None = None
    retry_count: int = 0
    last_retry_at: datetime | None = None
    next_retry_at: datetime | None = None
    result: TranscriptionResult | None = None
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime | None = None
    completed_at: datetime | None = None


class JobList(BaseModel):
    items: list[Job]


class PollJobResponse(BaseModel):
    job: Job
    applied: bool
    detail: str | None = None
