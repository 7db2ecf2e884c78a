"""Job routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query, status

from app.repositories.base import JobRecord
from app.routes.dependencies import (
    get_engine,
    get_reconciliation_handler,
    get_submission_service,
    require_api_token,
)
from app.schemas.error import ErrorResponse, NoLeakNotFoundError
from app.schemas.job import CreateJobRequest, Job, JobList, JobStatus, PollJobResponse
from app.services.reconciliation import ReconciliationHandler
from app.services.submission import SubmissionService
from app.services.transitions import TransitionEngine

router = APIRouter(tags=["Jobs"], dependencies=[Depends(require_api_token)])


def to_job(record: JobRecord) -> Job:
    return Job(
        id=record.id,
        status=record.status,
        media_ref=record.media_ref,
        filename=record.filename,
        file_size=record.file_size,
        external_job_id=record.external_job_id,
        retry_count=record.retry_count,
        last_retry_at=record.last_retry_at,
        next_retry_at=record.next_retry_at,
        result=record.result,
        error_message=record.error_message,
        created_at=record.created_at,
        updated_at=record.updated_at,
        completed_at=record.completed_at,
    )


@router.post(
    "/jobs",
    response_model=Job,
    status_code=status.HTTP_201_CREATED,
    responses={401: {"model": ErrorResponse}},
)
def create_job(
    payload: CreateJobRequest,
    service: Annotated[SubmissionService, Depends(get_submission_service)],
) -> Job:
    record = service.create_job(
        media_ref=payload.media_ref,
        filename=payload.filename,
        file_size=payload.file_size,
        defer_submission=payload.defer_submission,
    )
    return to_job(record)


@router.get("/jobs", response_model=JobList, responses={401: {"model": ErrorResponse}})
def list_jobs(
    engine: Annotated[TransitionEngine, Depends(get_engine)],
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
) -> JobList:
    return JobList(items=[to_job(record) for record in engine.store.list_jobs(limit=limit)])


@router.get(
    "/jobs/{jobId}",
    response_model=Job,
    responses={401: {"model": ErrorResponse}, 404: {"model": NoLeakNotFoundError}},
)
def get_job(
    job_id: Annotated[str, Path(alias="jobId")],
    engine: Annotated[TransitionEngine, Depends(get_engine)],
    reconciliation: Annotated[ReconciliationHandler, Depends(get_reconciliation_handler)],
) -> Job:
    record = engine.get(job_id)
    if record.status is JobStatus.PROCESSING:
        # Reading a processing job doubles as a poll when pushes are not arriving.
        record = reconciliation.poll_job(job_id).job
    return to_job(record)


@router.post(
    "/jobs/{jobId}/poll",
    response_model=PollJobResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": NoLeakNotFoundError}},
)
def poll_job(
    job_id: Annotated[str, Path(alias="jobId")],
    reconciliation: Annotated[ReconciliationHandler, Depends(get_reconciliation_handler)],
) -> PollJobResponse:
    result = reconciliation.poll_job(job_id)
    return PollJobResponse(job=to_job(result.job), applied=result.applied, detail=result.detail)
