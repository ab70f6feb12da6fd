import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from article_engine.api.deps import get_caller_token, get_context
from article_engine.api.models import ActiveJobsResponse, JobCancelRequest, JobCancelResponse, JobCreateRequest, JobCreateResponse, JobSnapshot, JobStatsResponse
from article_engine.core.context import AppContext
from article_engine.services import jobs as job_service

router = APIRouter()
logger = logging.getLogger("article_engine.api.routes.jobs")


@router.post("", response_model=JobCreateResponse, status_code=202)
async def create_job(
  request: JobCreateRequest,
  context: Annotated[AppContext, Depends(get_context)],
  caller_token: Annotated[str, Depends(get_caller_token)],
) -> JobCreateResponse:
  """Create a background article generation job."""
  return await job_service.create_job(request, context, caller_token=caller_token)


@router.get("", response_model=JobSnapshot)
async def poll_job(context: Annotated[AppContext, Depends(get_context)], job_id: Annotated[str, Query(alias="jobId", min_length=1)]) -> JobSnapshot:
  """Fetch the current snapshot of a job by query parameter."""
  return await job_service.get_job_snapshot(job_id, context)


@router.delete("", response_model=JobCancelResponse)
async def cancel_job_by_body(payload: JobCancelRequest, context: Annotated[AppContext, Depends(get_context)]) -> JobCancelResponse:
  """Request cooperative cancellation of a job."""
  return await job_service.cancel_job(payload.job_id, context)


@router.get("/active", response_model=ActiveJobsResponse)
async def list_active_jobs(context: Annotated[AppContext, Depends(get_context)], limit: Annotated[int, Query(ge=1, le=500)] = 100) -> ActiveJobsResponse:
  """List jobs that have not reached a terminal phase."""
  return await job_service.list_active_jobs(context, limit=limit)


@router.get("/stats", response_model=JobStatsResponse)
async def job_stats(context: Annotated[AppContext, Depends(get_context)]) -> JobStatsResponse:
  """Return job counts grouped by status."""
  return await job_service.get_job_stats(context)


@router.get("/{job_id}", response_model=JobSnapshot)
async def get_job(job_id: str, context: Annotated[AppContext, Depends(get_context)]) -> JobSnapshot:
  """Fetch the current snapshot of a job."""
  return await job_service.get_job_snapshot(job_id, context)


@router.delete("/{job_id}", response_model=JobCancelResponse)
async def cancel_job(job_id: str, context: Annotated[AppContext, Depends(get_context)]) -> JobCancelResponse:
  """Request cooperative cancellation of a job."""
  return await job_service.cancel_job(job_id, context)
