"""Task dispatch for generation job workers."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from article_engine.jobs.models import GenerationJob
from article_engine.storage.jobs_repo import JobStore

logger = logging.getLogger(__name__)


class JobRunner(Protocol):
  """Processor contract for driving one job to a terminal phase."""

  async def run(self, job_id: str) -> GenerationJob | None:
    """Process one job from its last persisted phase."""


class JobDispatcher:
  """Owns one asyncio task per running job; a job id never has two live workers."""

  def __init__(self, runner: JobRunner) -> None:
    self._runner = runner
    self._tasks: dict[str, asyncio.Task[GenerationJob | None]] = {}

  @property
  def running_job_ids(self) -> tuple[str, ...]:
    return tuple(self._tasks)

  def dispatch(self, job_id: str) -> bool:
    """Start a worker for the job unless one is already running; returns whether one started."""
    if job_id in self._tasks:
      return False
    task = asyncio.create_task(self._runner.run(job_id), name=f"generation-job-{job_id}")
    self._tasks[job_id] = task
    task.add_done_callback(lambda finished: self._on_done(job_id, finished))
    return True

  def _on_done(self, job_id: str, task: asyncio.Task[GenerationJob | None]) -> None:
    self._tasks.pop(job_id, None)
    if task.cancelled():
      logger.info("Worker for job %s was cancelled during shutdown.", job_id)
      return
    exc = task.exception()
    if exc is not None:
      logger.error("Worker for job %s exited with an unhandled error.", job_id, exc_info=exc)

  async def resume_active(self, store: JobStore) -> int:
    """Re-enter every non-terminal job from its last persisted phase."""
    jobs = await store.list_active(limit=None)
    started = sum(1 for job in jobs if self.dispatch(job.job_id))
    if started:
      logger.info("Resumed %d non-terminal generation job(s).", started)
    return started

  async def drain(self) -> None:
    """Wait until every running worker has finished."""
    while self._tasks:
      await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

  async def shutdown(self) -> None:
    """Cancel running workers; their jobs resume from the store on the next start."""
    tasks = list(self._tasks.values())
    for task in tasks:
      task.cancel()
    if tasks:
      await asyncio.gather(*tasks, return_exceptions=True)
