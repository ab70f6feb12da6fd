"""Unit tests for retention cleanup of finished jobs."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from article_engine.jobs.cleanup import purge_expired_jobs
from article_engine.jobs.models import GenerationJob
from article_engine.storage.memory_jobs_repo import InMemoryJobStore


def _job(job_id: str, phase: str, completed_at: str | None) -> GenerationJob:
  return GenerationJob(
    job_id=job_id,
    request_data={},
    status="ready" if phase == "completed" else "generating",
    phase=phase,
    percentage=100 if phase == "completed" else 60,
    current_step="",
    created_at="2024-01-01T00:00:00Z",
    updated_at="2024-01-01T00:00:00Z",
    completed_at=completed_at,
  )


@pytest.mark.anyio
async def test_only_old_terminal_jobs_are_deleted() -> None:
  store = InMemoryJobStore()
  await store.create_job(_job("old", "completed", "2024-01-01T00:00:00Z"))
  await store.create_job(_job("recent", "completed", "2024-01-02T06:00:00Z"))
  await store.create_job(_job("running", "writing", None))

  deleted = await purge_expired_jobs(store, retention_seconds=86400, now=datetime(2024, 1, 2, 12, 0, tzinfo=UTC))

  assert deleted == 1
  assert await store.get_job("old") is None
  assert await store.get_job("recent") is not None
  assert await store.get_job("running") is not None
