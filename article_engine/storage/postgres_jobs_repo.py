"""Postgres-backed job store using SQLAlchemy."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Delete, Select, Update, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError

from article_engine.core.database import get_session_factory
from article_engine.jobs.models import GenerationJob
from article_engine.schema.jobs import GenerationJobRow
from article_engine.storage.jobs_repo import JobStore, PersistenceError
from article_engine.utils.clock import now_iso
from article_engine.utils.db_retry import classify_db_failure

_TERMINAL_PHASES = ("completed", "error")

# Record attribute -> column name where the two differ.
_COLUMN_NAMES = {"result_data": "result_json"}


def guarded_update_statement(job_id: str, fields: dict[str, Any]) -> Update:
  """Build the update for a job; terminal rows never match the guard."""
  values = {_COLUMN_NAMES.get(key, key): value for key, value in fields.items() if value is not None}
  values["updated_at"] = now_iso()
  return update(GenerationJobRow).where(GenerationJobRow.job_id == job_id, GenerationJobRow.phase.not_in(_TERMINAL_PHASES)).values(**values).returning(GenerationJobRow)


def terminal_delete_statement(job_id: str) -> Delete:
  """Build the retention delete; only terminal jobs are eligible for removal."""
  return delete(GenerationJobRow).where(GenerationJobRow.job_id == job_id, GenerationJobRow.phase.in_(_TERMINAL_PHASES))


def active_jobs_statement(limit: int | None) -> Select:
  stmt = select(GenerationJobRow).where(GenerationJobRow.phase.not_in(_TERMINAL_PHASES)).order_by(GenerationJobRow.created_at.asc())
  if limit is not None:
    stmt = stmt.limit(limit)
  return stmt


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
  """Surface driver failures as PersistenceError, keeping the retryable classification."""
  try:
    yield
  except (SQLAlchemyError, OSError) as exc:
    classification = classify_db_failure(exc)
    raise PersistenceError(f"Job store {operation} failed: {classification.reason}", retryable=classification.retryable) from exc


class PostgresJobStore(JobStore):
  """Persist generation jobs to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_job(self, record: GenerationJob) -> str:
    with _translate_errors("create"):
      async with self._session_factory() as session:
        session.add(self._record_to_row(record))
        await session.commit()
    return record.job_id

  async def get_job(self, job_id: str) -> GenerationJob | None:
    with _translate_errors("get"):
      async with self._session_factory() as session:
        row = await session.get(GenerationJobRow, job_id)
        if row is None:
          return None
        return self._row_to_record(row)

  async def update_job(self, job_id: str, **fields: Any) -> GenerationJob | None:
    # A single guarded statement keeps terminal rows immutable without a read-modify-write.
    stmt = guarded_update_statement(job_id, fields)
    with _translate_errors("update"):
      async with self._session_factory() as session:
        row = (await session.execute(stmt)).scalar_one_or_none()
        await session.commit()
        if row is None:
          return None
        return self._row_to_record(row)

  async def list_stale(self, older_than: str) -> list[GenerationJob]:
    stmt = select(GenerationJobRow).where(GenerationJobRow.phase.in_(_TERMINAL_PHASES), GenerationJobRow.completed_at.is_not(None), GenerationJobRow.completed_at < older_than).order_by(GenerationJobRow.completed_at.asc())
    with _translate_errors("list_stale"):
      async with self._session_factory() as session:
        rows = (await session.execute(stmt)).scalars().all()
        return [self._row_to_record(row) for row in rows]

  async def delete_job(self, job_id: str) -> bool:
    stmt = terminal_delete_statement(job_id)
    with _translate_errors("delete"):
      async with self._session_factory() as session:
        result = await session.execute(stmt)
        await session.commit()
        return bool(result.rowcount)

  async def list_active(self, limit: int | None = 100) -> list[GenerationJob]:
    stmt = active_jobs_statement(limit)
    with _translate_errors("list_active"):
      async with self._session_factory() as session:
        rows = (await session.execute(stmt)).scalars().all()
        return [self._row_to_record(row) for row in rows]

  async def count_by_status(self) -> dict[str, int]:
    stmt = select(GenerationJobRow.status, func.count()).group_by(GenerationJobRow.status)
    with _translate_errors("count_by_status"):
      async with self._session_factory() as session:
        rows = (await session.execute(stmt)).all()
        return {str(status): int(count) for status, count in rows}

  def _record_to_row(self, record: GenerationJob) -> GenerationJobRow:
    return GenerationJobRow(
      job_id=record.job_id,
      topic_id=record.topic_id,
      article_id=record.article_id,
      request_json=record.request_data,
      status=record.status,
      phase=record.phase,
      percentage=record.percentage,
      current_step=record.current_step,
      provider_used=record.provider_used,
      cost=record.cost,
      total_tokens=record.total_tokens,
      word_count=record.word_count,
      seo_score=record.seo_score,
      attempts=record.attempts,
      max_attempts=record.max_attempts,
      estimated_duration_seconds=record.estimated_duration_seconds,
      error_reason=record.error_reason,
      error_message=record.error_message,
      result_json=record.result_data,
      created_at=record.created_at,
      updated_at=record.updated_at,
      started_at=record.started_at,
      completed_at=record.completed_at,
    )

  def _row_to_record(self, row: GenerationJobRow) -> GenerationJob:
    return GenerationJob(
      job_id=row.job_id,
      request_data=row.request_json,
      status=row.status,  # type: ignore[arg-type]
      phase=row.phase,  # type: ignore[arg-type]
      percentage=row.percentage,
      current_step=row.current_step,
      created_at=row.created_at,
      updated_at=row.updated_at,
      topic_id=row.topic_id,
      article_id=row.article_id,
      provider_used=row.provider_used,
      cost=row.cost,
      total_tokens=row.total_tokens,
      word_count=row.word_count,
      seo_score=row.seo_score,
      attempts=row.attempts,
      max_attempts=row.max_attempts,
      estimated_duration_seconds=row.estimated_duration_seconds,
      error_reason=row.error_reason,
      error_message=row.error_message,
      result_data=row.result_json,
      started_at=row.started_at,
      completed_at=row.completed_at,
    )
