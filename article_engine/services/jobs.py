import logging
from datetime import UTC, datetime, timedelta

from fastapi import HTTPException, status

from article_engine.ai.prompts import build_brief
from article_engine.api.models import ActiveJobsResponse, CleanupResponse, JobCancelResponse, JobCreateRequest, JobCreateResponse, JobError, JobMetadata, JobSnapshot, JobStatsResponse
from article_engine.core.context import AppContext
from article_engine.jobs.cleanup import purge_expired_jobs
from article_engine.jobs.models import CANCELLED_REASON, GenerationJob, JobStats
from article_engine.jobs.phases import PHASE_STEPS
from article_engine.utils.clock import now_iso, parse_iso, to_iso
from article_engine.utils.ids import generate_job_id

logger = logging.getLogger(__name__)

_JOB_NOT_FOUND_MSG = "Job not found."
_CANCELLED_STEP = "Generation cancelled by user"

# Seconds of generation time per 1000 words, before SEO work.
_SECONDS_PER_1K_WORDS = 30
_SEO_FACTOR = 1.5


def estimate_duration_seconds(target_word_count: int, optimize_for_seo: bool) -> int:
  """Rough end-to-end duration of a job, used for progress hints only."""
  estimate = _SECONDS_PER_1K_WORDS * (target_word_count / 1000)
  if optimize_for_seo:
    estimate *= _SEO_FACTOR
  return max(int(round(estimate)), 1)


def estimated_time_remaining(job: GenerationJob, *, now: datetime | None = None) -> int | None:
  """Seconds until the expected completion; None for terminal or unestimated jobs."""
  if job.is_terminal or job.estimated_duration_seconds is None:
    return None
  started = parse_iso(job.started_at or job.created_at)
  if started is None:
    return job.estimated_duration_seconds
  elapsed = ((now or datetime.now(UTC)) - started).total_seconds()
  return max(int(job.estimated_duration_seconds - elapsed), 0)


def job_snapshot(job: GenerationJob, *, now: datetime | None = None) -> JobSnapshot:
  """Convert a persisted job into the poll payload."""
  error = None
  if job.phase == "error":
    error = JobError(reason=job.error_reason or "unknown", message=job.error_message)

  provider_attempts = None
  if job.result_data:
    provider_attempts = job.result_data.get("attempts")

  metadata = JobMetadata(
    topic_id=job.topic_id,
    provider_used=job.provider_used,
    cost=job.cost,
    total_tokens=job.total_tokens,
    word_count=job.word_count,
    seo_score=job.seo_score,
    attempts=job.attempts,
    max_attempts=job.max_attempts,
    provider_attempts=provider_attempts,
    created_at=job.created_at,
    started_at=job.started_at,
    completed_at=job.completed_at,
  )
  return JobSnapshot(
    job_id=job.job_id,
    status=job.status,
    phase=job.phase,
    percentage=job.percentage,
    current_step=job.current_step,
    estimated_time_remaining=estimated_time_remaining(job, now=now),
    article_id=job.article_id,
    error=error,
    metadata=metadata,
  )


async def create_job(request: JobCreateRequest, context: AppContext, *, caller_token: str) -> JobCreateResponse:
  """Admit, persist and dispatch a new generation job."""
  settings = context.settings
  # Rejected callers never touch the store.
  context.rate_limiter.enforce(settings.rate_limit_limit, caller_token)

  if request.preferred_provider and request.preferred_provider not in context.engine.available_providers:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Provider '{request.preferred_provider}' is not configured.")

  request_data = request.model_dump(mode="json", by_alias=True, exclude_none=True)
  brief = build_brief(request_data)
  estimate = estimate_duration_seconds(brief.target_word_count, brief.optimize_for_seo)
  timestamp = now_iso()
  job = GenerationJob(
    job_id=generate_job_id(),
    request_data=request_data,
    status="pending",
    phase="queued",
    percentage=0,
    current_step=PHASE_STEPS["queued"],
    created_at=timestamp,
    updated_at=timestamp,
    topic_id=request.topic.id,
    max_attempts=settings.job_max_attempts,
    estimated_duration_seconds=estimate,
  )
  job_id = await context.store.create_job(job)
  logger.info("Created generation job %s (template=%s, preferred=%s).", job_id, brief.template, brief.preferred_provider)

  if settings.jobs_auto_process:
    context.dispatcher.dispatch(job_id)

  created = parse_iso(timestamp) or datetime.now(UTC)
  return JobCreateResponse(job_id=job_id, status=job.status, estimated_completion=to_iso(created + timedelta(seconds=estimate)))


async def get_job_snapshot(job_id: str, context: AppContext) -> JobSnapshot:
  """Return the current snapshot of a job."""
  job = await context.store.get_job(job_id)
  if job is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_JOB_NOT_FOUND_MSG)
  return job_snapshot(job)


async def cancel_job(job_id: str, context: AppContext) -> JobCancelResponse:
  """Flag a job as cancelled; the worker honours it at its next phase boundary.

  Cancelling a job that already finished is acknowledged without changing it.
  """
  job = await context.store.get_job(job_id)
  if job is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_JOB_NOT_FOUND_MSG)
  if job.is_terminal:
    return JobCancelResponse(ok=True, job=job_snapshot(job))

  updated = await context.store.update_job(
    job_id,
    status="failed",
    phase="error",
    current_step=_CANCELLED_STEP,
    error_reason=CANCELLED_REASON,
    error_message="Cancelled by client request",
    completed_at=now_iso(),
  )
  if updated is None:
    # The worker reached a terminal phase between the read and the update.
    current = await context.store.get_job(job_id)
    if current is None:
      raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_JOB_NOT_FOUND_MSG)
    return JobCancelResponse(ok=True, job=job_snapshot(current))

  logger.info("Cancellation requested for job %s at phase %s.", job_id, job.phase)
  return JobCancelResponse(ok=True, job=job_snapshot(updated))


async def list_active_jobs(context: AppContext, *, limit: int = 100) -> ActiveJobsResponse:
  jobs = await context.store.list_active(limit=limit)
  return ActiveJobsResponse(jobs=[job_snapshot(job) for job in jobs])


async def get_job_stats(context: AppContext) -> JobStatsResponse:
  stats = JobStats(by_status=await context.store.count_by_status())
  return JobStatsResponse(total=stats.total, by_status=stats.by_status)


async def run_cleanup(context: AppContext, *, now: datetime | None = None) -> CleanupResponse:
  """Apply the retention policy to finished jobs."""
  moment = now or datetime.now(UTC)
  retention = context.settings.job_retention_seconds
  deleted = await purge_expired_jobs(context.store, retention_seconds=retention, now=moment)
  return CleanupResponse(deleted=deleted, older_than=to_iso(moment - timedelta(seconds=retention)))
