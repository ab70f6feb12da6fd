"""Statement-level tests for the Postgres job store guards."""

from __future__ import annotations

from sqlalchemy.dialects import postgresql

from article_engine.storage.postgres_jobs_repo import active_jobs_statement, guarded_update_statement, terminal_delete_statement


def _sql(stmt, *, literal: bool = True) -> str:
  compiled = stmt.compile(dialect=postgresql.dialect(), compile_kwargs={"literal_binds": literal})
  return " ".join(str(compiled).split())


def test_update_never_matches_terminal_rows() -> None:
  sql = _sql(guarded_update_statement("job-1", {"phase": "writing", "percentage": 60}))

  assert sql.startswith("UPDATE generation_jobs SET")
  assert "generation_jobs.job_id = 'job-1'" in sql
  assert "generation_jobs.phase NOT IN ('completed', 'error')" in sql
  assert "RETURNING" in sql


def test_update_skips_unset_fields_and_maps_result_column() -> None:
  sql = _sql(guarded_update_statement("job-1", {"result_data": {"attempts": []}, "provider_used": None}), literal=False)

  assert "result_json=" in sql
  assert "provider_used=" not in sql
  assert "updated_at=" in sql


def test_delete_only_removes_terminal_rows() -> None:
  sql = _sql(terminal_delete_statement("job-1"))

  assert sql.startswith("DELETE FROM generation_jobs WHERE")
  assert "generation_jobs.job_id = 'job-1'" in sql
  assert "generation_jobs.phase IN ('completed', 'error')" in sql


def test_active_listing_is_unbounded_without_limit() -> None:
  assert "LIMIT" not in _sql(active_jobs_statement(None))
  assert "LIMIT 100" in _sql(active_jobs_statement(100))
  assert "generation_jobs.phase NOT IN ('completed', 'error')" in _sql(active_jobs_statement(None))
