"""Phase progress tracking for generation jobs."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from article_engine.jobs.models import GenerationJob, JobPhase
from article_engine.jobs.phases import PHASE_STEPS, progress_for_phase, status_for_phase, validate_transition
from article_engine.storage.jobs_repo import JobStore
from article_engine.utils.clock import now_iso
from article_engine.utils.db_retry import execute_with_retry

logger = logging.getLogger(__name__)


class JobCancelledError(Exception):
  """Raised when the worker observes that its job was cancelled or already finished."""

  def __init__(self, job_id: str) -> None:
    super().__init__(f"Job {job_id} was cancelled.")
    self.job_id = job_id


class JobPersistenceFailedError(Exception):
  """Raised when a job update still fails after the bounded retries."""

  def __init__(self, job_id: str, phase: str) -> None:
    super().__init__(f"Persisting job {job_id} at phase {phase} failed after retries.")
    self.job_id = job_id
    self.phase = phase


class JobProgressTracker:
  """Advance one job through its phases, persisting every transition through the store.

  The tracker is owned by the single worker driving the job; it keeps the last
  persisted snapshot and never reports a lower percentage than it already stored.
  """

  def __init__(self, *, job: GenerationJob, store: JobStore, skip: Iterable[str] = (), persist_max_attempts: int = 3, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep) -> None:
    self._job = job
    self._store = store
    self._skip = frozenset(skip)
    self._persist_max_attempts = persist_max_attempts
    self._sleep = sleep

  @property
  def job(self) -> GenerationJob:
    return self._job

  @property
  def phase(self) -> JobPhase:
    return self._job.phase

  @property
  def skip(self) -> frozenset[str]:
    return self._skip

  async def _persist(self, operation_name: str, **fields: Any) -> GenerationJob:
    job_id = self._job.job_id

    async def _update() -> GenerationJob | None:
      return await self._store.update_job(job_id, **fields)

    try:
      record = await execute_with_retry(operation_name=operation_name, func=_update, max_attempts=self._persist_max_attempts, sleep=self._sleep)
    except Exception as exc:
      logger.error("Job %s left at phase %s: %s could not be persisted.", job_id, self._job.phase, operation_name, exc_info=True)
      raise JobPersistenceFailedError(job_id, self._job.phase) from exc

    # The store refuses writes to terminal or missing jobs; either way this worker must stop.
    if record is None:
      raise JobCancelledError(job_id)

    self._job = record
    return record

  async def ensure_not_cancelled(self) -> None:
    """Re-read the job and stop the worker if it was cancelled in the meantime."""
    job_id = self._job.job_id

    async def _read() -> GenerationJob | None:
      return await self._store.get_job(job_id)

    try:
      record = await execute_with_retry(operation_name="job_cancel_check", func=_read, max_attempts=self._persist_max_attempts, sleep=self._sleep)
    except Exception as exc:
      logger.error("Cancellation check for job %s could not read the store.", job_id, exc_info=True)
      raise JobPersistenceFailedError(job_id, self._job.phase) from exc

    if record is None or record.is_terminal:
      raise JobCancelledError(job_id)

  async def start(self) -> GenerationJob:
    """Record one more pickup of the job by a worker."""
    return await self._persist("job_start", attempts=self._job.attempts + 1, started_at=self._job.started_at or now_iso())

  async def enter(self, phase: JobPhase, **fields: Any) -> GenerationJob:
    """Move the job forward into `phase`, persisting any extra fields in the same write."""
    validate_transition(self._job.phase, phase, skip=self._skip)
    percentage = progress_for_phase(phase, self._job.percentage)
    logger.info("Job %s: %s -> %s (%d%%)", self._job.job_id, self._job.phase, phase, percentage)
    return await self._persist(f"job_phase_{phase}", phase=phase, status=status_for_phase(phase), percentage=percentage, current_step=PHASE_STEPS[phase], **fields)

  async def save(self, **fields: Any) -> GenerationJob:
    """Persist intermediate results without changing the phase."""
    return await self._persist(f"job_checkpoint_{self._job.phase}", **fields)

  async def complete(self, **fields: Any) -> GenerationJob:
    return await self.enter("completed", completed_at=now_iso(), **fields)

  async def fail(self, *, reason: str, message: str, **fields: Any) -> GenerationJob:
    """Move the job to the error phase with a readable step description."""
    validate_transition(self._job.phase, "error", skip=self._skip)
    logger.warning("Job %s failed at phase %s: %s", self._job.job_id, self._job.phase, message)
    return await self._persist("job_fail", phase="error", status="failed", current_step=f"Generation failed: {message}", error_reason=reason, error_message=message, completed_at=now_iso(), **fields)
