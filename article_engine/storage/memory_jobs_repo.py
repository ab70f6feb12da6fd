"""In-process job store for development and tests."""

from __future__ import annotations

import copy
from dataclasses import replace
from typing import Any

from article_engine.jobs.models import GenerationJob
from article_engine.storage.jobs_repo import JobStore, PersistenceError
from article_engine.utils.clock import now_iso


class InMemoryJobStore(JobStore):
  """Keep job records in a dict; every read and write works on a copy."""

  def __init__(self) -> None:
    self._jobs: dict[str, GenerationJob] = {}

  async def create_job(self, record: GenerationJob) -> str:
    if record.job_id in self._jobs:
      raise PersistenceError(f"Job {record.job_id} already exists.", retryable=False)
    self._jobs[record.job_id] = copy.deepcopy(record)
    return record.job_id

  async def get_job(self, job_id: str) -> GenerationJob | None:
    record = self._jobs.get(job_id)
    if record is None:
      return None
    return copy.deepcopy(record)

  async def update_job(self, job_id: str, **fields: Any) -> GenerationJob | None:
    record = self._jobs.get(job_id)

    # Terminal records are frozen; the caller treats None as "not applied".
    if record is None or record.is_terminal:
      return None

    changes = {key: copy.deepcopy(value) for key, value in fields.items() if value is not None}
    changes["updated_at"] = now_iso()
    updated = replace(record, **changes)
    self._jobs[job_id] = updated
    return copy.deepcopy(updated)

  async def list_stale(self, older_than: str) -> list[GenerationJob]:
    stale = [record for record in self._jobs.values() if record.is_terminal and record.completed_at is not None and record.completed_at < older_than]
    return [copy.deepcopy(record) for record in stale]

  async def delete_job(self, job_id: str) -> bool:
    return self._jobs.pop(job_id, None) is not None

  async def list_active(self, limit: int | None = 100) -> list[GenerationJob]:
    active = sorted((record for record in self._jobs.values() if not record.is_terminal), key=lambda record: record.created_at)
    if limit is not None:
      active = active[:limit]
    return [copy.deepcopy(record) for record in active]

  async def count_by_status(self) -> dict[str, int]:
    counts: dict[str, int] = {}
    for record in self._jobs.values():
      counts[record.status] = counts.get(record.status, 0) + 1
    return counts
