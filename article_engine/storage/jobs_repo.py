"""Storage interfaces for generation jobs."""

from __future__ import annotations

from typing import Any, Protocol

from article_engine.jobs.models import GenerationJob, JobPhase, JobStatus


class PersistenceError(Exception):
  """Raised when the job store cannot be reached or refuses a write."""

  def __init__(self, message: str, *, retryable: bool = True) -> None:
    super().__init__(message)
    self.retryable = retryable


class JobStore(Protocol):
  """Repository contract for job persistence.

  Exactly one worker mutates a given job, so implementations need no writer conflict
  resolution. Reads must observe the latest successful update for the same id.
  """

  async def create_job(self, record: GenerationJob) -> str:
    """Persist an initial job record and return its id."""

  async def get_job(self, job_id: str) -> GenerationJob | None:
    """Fetch a job by identifier."""

  async def update_job(
    self,
    job_id: str,
    *,
    status: JobStatus | None = None,
    phase: JobPhase | None = None,
    percentage: int | None = None,
    current_step: str | None = None,
    article_id: str | None = None,
    provider_used: str | None = None,
    cost: float | None = None,
    total_tokens: int | None = None,
    word_count: int | None = None,
    seo_score: int | None = None,
    attempts: int | None = None,
    estimated_duration_seconds: int | None = None,
    error_reason: str | None = None,
    error_message: str | None = None,
    result_data: dict[str, Any] | None = None,
    started_at: str | None = None,
    completed_at: str | None = None,
  ) -> GenerationJob | None:
    """Apply partial updates to a non-terminal job; return None when missing or terminal."""

  async def list_stale(self, older_than: str) -> list[GenerationJob]:
    """Return terminal jobs completed before the given ISO timestamp."""

  async def delete_job(self, job_id: str) -> bool:
    """Remove a job record as part of retention cleanup."""

  async def list_active(self, limit: int | None = 100) -> list[GenerationJob]:
    """Return non-terminal jobs, oldest first; `limit=None` returns all of them."""

  async def count_by_status(self) -> dict[str, int]:
    """Return job counts grouped by status."""
