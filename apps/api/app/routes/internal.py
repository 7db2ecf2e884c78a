"""Internal maintenance routes."""

from typing import Annotated

from fastapi import APIRouter, Depends

from app.routes.dependencies import get_sweep, require_api_token
from app.schemas.error import ErrorResponse
from app.schemas.internal import SweepJobResultModel, SweepReportResponse
from app.services.sweep import ReconciliationSweep

router = APIRouter(prefix="/internal", tags=["Internal"], dependencies=[Depends(require_api_token)])


@router.post("/sweep", response_model=SweepReportResponse, responses={401: {"model": ErrorResponse}})
def run_sweep(sweep: Annotated[ReconciliationSweep, Depends(get_sweep)]) -> SweepReportResponse:
    report = sweep.run()
    return SweepReportResponse(
        message=f"Checked {len(report.results)} jobs",
        started_at=report.started_at,
        results=[
            SweepJobResultModel(job_id=item.job_id, action=item.action, status=item.status, detail=item.detail)
            for item in report.results
        ],
    )
