"""Webhook and maintenance endpoint schemas."""

from datetime import datetime

from pydantic import BaseModel

from app.schemas.job import JobStatus


class WebhookAck(BaseModel):
    success: bool = True
    job_id: str
    applied: bool
    current_status: JobStatus


class SweepJobResultModel(BaseModel):
    job_id: str
    action: str
    status: JobStatus
    detail: str | None = None


class SweepReportResponse(BaseModel):
    message: str
    started_at: datetime
    results: list[SweepJobResultModel]


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
