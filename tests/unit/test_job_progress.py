"""Unit tests for phase persistence through the progress tracker."""

from __future__ import annotations

from typing import Any

import pytest

from article_engine.jobs.models import GenerationJob
from article_engine.jobs.phases import IllegalPhaseTransitionError
from article_engine.jobs.progress import JobCancelledError, JobPersistenceFailedError, JobProgressTracker
from article_engine.storage.jobs_repo import PersistenceError
from article_engine.storage.memory_jobs_repo import InMemoryJobStore


class FlakyJobStore(InMemoryJobStore):
  """In-memory store whose updates fail a configurable number of times."""

  def __init__(self, failures: int) -> None:
    super().__init__()
    self.failures = failures
    self.update_calls = 0

  async def update_job(self, job_id: str, **fields: Any) -> GenerationJob | None:
    self.update_calls += 1
    if self.failures > 0:
      self.failures -= 1
      raise PersistenceError("connection refused")
    return await super().update_job(job_id, **fields)


def _job() -> GenerationJob:
  return GenerationJob(
    job_id="job-123",
    request_data={"topic": {"title": "Test"}},
    status="pending",
    phase="queued",
    percentage=0,
    current_step="Job queued for processing",
    created_at="2024-01-01T00:00:00Z",
    updated_at="2024-01-01T00:00:00Z",
  )


async def _tracker(store: InMemoryJobStore, sleep, **kwargs: Any) -> JobProgressTracker:
  job = _job()
  await store.create_job(job)
  return JobProgressTracker(job=job, store=store, sleep=sleep, **kwargs)


@pytest.mark.anyio
async def test_enter_persists_phase_percentage_and_step(sleep_recorder) -> None:
  store = InMemoryJobStore()
  tracker = await _tracker(store, sleep_recorder)

  await tracker.start()
  await tracker.enter("analyzing", result_data={"analysis": {"keywords": ["test"]}})

  record = await store.get_job("job-123")
  assert record is not None
  assert record.attempts == 1
  assert record.started_at is not None
  assert record.phase == "analyzing"
  assert record.status == "generating"
  assert record.percentage == 15
  assert record.current_step == "Analyzing topic and requirements"
  assert record.result_data == {"analysis": {"keywords": ["test"]}}


@pytest.mark.anyio
async def test_polled_percentage_is_monotonic(sleep_recorder) -> None:
  store = InMemoryJobStore()
  tracker = await _tracker(store, sleep_recorder)
  seen: list[int] = []
  for phase in ("analyzing", "structuring", "writing", "optimizing", "finalizing"):
    await tracker.enter(phase)
    record = await store.get_job("job-123")
    assert record is not None
    seen.append(record.percentage)
  await tracker.complete()
  final = await store.get_job("job-123")
  assert final is not None
  seen.append(final.percentage)

  assert seen == sorted(seen)
  assert seen[-1] == 100
  assert final.status == "ready"
  assert final.completed_at is not None


@pytest.mark.anyio
async def test_enter_rejects_skipping_unlisted_phases(sleep_recorder) -> None:
  store = InMemoryJobStore()
  tracker = await _tracker(store, sleep_recorder)
  await tracker.enter("analyzing")
  with pytest.raises(IllegalPhaseTransitionError):
    await tracker.enter("writing")


@pytest.mark.anyio
async def test_listed_skips_are_allowed(sleep_recorder) -> None:
  store = InMemoryJobStore()
  tracker = await _tracker(store, sleep_recorder, skip={"structuring"})
  await tracker.enter("analyzing")
  await tracker.enter("writing")
  assert tracker.phase == "writing"


@pytest.mark.anyio
async def test_fail_records_reason_and_readable_step(sleep_recorder) -> None:
  store = InMemoryJobStore()
  tracker = await _tracker(store, sleep_recorder)
  await tracker.enter("analyzing")

  await tracker.fail(reason="generation_failed", message="All providers failed")

  record = await store.get_job("job-123")
  assert record is not None
  assert record.phase == "error"
  assert record.status == "failed"
  assert record.percentage == 15
  assert record.error_reason == "generation_failed"
  assert record.current_step == "Generation failed: All providers failed"


@pytest.mark.anyio
async def test_cancelled_job_stops_the_tracker(sleep_recorder) -> None:
  store = InMemoryJobStore()
  tracker = await _tracker(store, sleep_recorder)
  await tracker.enter("analyzing")
  await store.update_job("job-123", phase="error", status="failed", error_reason="cancelled")

  with pytest.raises(JobCancelledError):
    await tracker.ensure_not_cancelled()
  # Late results are never written back over the cancelled record.
  with pytest.raises(JobCancelledError):
    await tracker.enter("structuring", result_data={"outline": ["Intro"]})
  record = await store.get_job("job-123")
  assert record is not None
  assert record.error_reason == "cancelled"
  assert record.result_data is None


@pytest.mark.anyio
async def test_transient_store_failures_are_retried(sleep_recorder) -> None:
  store = FlakyJobStore(failures=2)
  tracker = await _tracker(store, sleep_recorder, persist_max_attempts=3)

  await tracker.enter("analyzing")

  assert store.update_calls == 3
  assert len(sleep_recorder.delays) == 2
  record = await store.get_job("job-123")
  assert record is not None
  assert record.phase == "analyzing"


@pytest.mark.anyio
async def test_exhausted_store_retries_leave_last_persisted_phase(sleep_recorder, caplog: pytest.LogCaptureFixture) -> None:
  store = FlakyJobStore(failures=0)
  tracker = await _tracker(store, sleep_recorder, persist_max_attempts=3)
  await tracker.enter("analyzing")
  store.failures = 10

  with caplog.at_level("ERROR"), pytest.raises(JobPersistenceFailedError):
    await tracker.enter("structuring")

  store.failures = 0
  record = await store.get_job("job-123")
  assert record is not None
  assert record.phase == "analyzing"
  assert any("could not be persisted" in message for message in caplog.messages)
