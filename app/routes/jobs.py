"""
Job API Routes
Job history, dashboard KPIs, archive search, tracking and reports.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_workspace_service
from app.models.api.workspace_response import (
    DashboardKpisResponse,
    JobListResponse,
    ReportSummaryResponse,
    TrackingResponse,
)
from app.services.workspace_service import WorkspaceService

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


@router.get("", response_model=JobListResponse)
async def list_jobs(service: WorkspaceService = Depends(get_workspace_service)):
    """Seed and dispatched jobs, newest first."""
    jobs = await service.list_jobs()
    return JobListResponse(jobs=jobs, total=len(jobs))


@router.get("/kpis", response_model=DashboardKpisResponse)
async def get_dashboard_kpis(
    today: date | None = Query(default=None, description="Reference day (default: today, UTC)"),
    service: WorkspaceService = Depends(get_workspace_service),
):
    return await service.dashboard_kpis(today)


@router.get("/archive", response_model=JobListResponse)
async def search_archive(
    q: str = Query(default="", description="Matches job id or name"),
    status: str = Query(default="all", description="Job status or 'all'"),
    sent_date: str | None = Query(default=None, alias="date", description="Exact sent date (YYYY-MM-DD)"),
    service: WorkspaceService = Depends(get_workspace_service),
):
    jobs = await service.search_archive(q, status, sent_date)
    return JobListResponse(jobs=jobs, total=len(jobs))


@router.get("/reports/summary", response_model=ReportSummaryResponse)
async def get_report_summary(service: WorkspaceService = Depends(get_workspace_service)):
    return await service.report_summary()


@router.get("/reports/{report_type}")
async def get_report(report_type: str, service: WorkspaceService = Depends(get_workspace_service)):
    """Delivery or exception report payload."""
    return await service.report(report_type)


@router.get("/{job_id}/tracking", response_model=TrackingResponse)
async def get_tracking(job_id: str, service: WorkspaceService = Depends(get_workspace_service)):
    job, groups, timeline = await service.tracking(job_id)
    return TrackingResponse(job=job, mail_groups=groups, timeline=timeline)


@router.post("/{job_id}/refresh", response_model=TrackingResponse)
async def refresh_tracking(job_id: str, service: WorkspaceService = Depends(get_workspace_service)):
    """Re-check delivery status; each in-transit group may move to delivered."""
    job, groups, timeline = await service.refresh_tracking(job_id)
    return TrackingResponse(job=job, mail_groups=groups, timeline=timeline)
