"""Retention cleanup for finished generation jobs."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from article_engine.storage.jobs_repo import JobStore
from article_engine.utils.clock import to_iso

logger = logging.getLogger(__name__)


async def purge_expired_jobs(store: JobStore, *, retention_seconds: int, now: datetime | None = None) -> int:
  """Delete terminal jobs whose completion is older than the retention window.

  Only terminal records are touched; running jobs are never reclaimed here.
  """
  cutoff = to_iso((now or datetime.now(UTC)) - timedelta(seconds=retention_seconds))
  stale = await store.list_stale(cutoff)
  deleted = 0
  for job in stale:
    if await store.delete_job(job.job_id):
      deleted += 1
  logger.info("Retention cleanup removed %d job(s) completed before %s.", deleted, cutoff)
  return deleted
