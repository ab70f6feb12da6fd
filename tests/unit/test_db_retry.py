"""Unit tests for store failure classification and bounded retries."""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from article_engine.storage.jobs_repo import PersistenceError
from article_engine.utils.db_retry import classify_db_failure, execute_with_retry


class _Orig(Exception):
  def __init__(self, sqlstate: str) -> None:
    super().__init__(sqlstate)
    self.sqlstate = sqlstate


def test_classify_by_sqlstate() -> None:
  deadlock = OperationalError("UPDATE generation_jobs", {}, _Orig("40P01"))
  unique = IntegrityError("INSERT", {}, _Orig("23505"))
  assert classify_db_failure(deadlock).retryable is True
  assert classify_db_failure(deadlock).category == "deadlock"
  assert classify_db_failure(unique).retryable is False
  assert classify_db_failure(unique).category == "integrity_error"


def test_classify_translated_and_raw_errors() -> None:
  assert classify_db_failure(PersistenceError("down")).retryable is True
  assert classify_db_failure(PersistenceError("bad row", retryable=False)).retryable is False
  assert classify_db_failure(ConnectionRefusedError()).retryable is True
  assert classify_db_failure(KeyError("phase")).retryable is False


@pytest.mark.anyio
async def test_execute_with_retry_retries_transient_failures(sleep_recorder) -> None:
  calls = 0

  async def _operation() -> str:
    nonlocal calls
    calls += 1
    if calls < 3:
      raise PersistenceError("connection reset")
    return "saved"

  result = await execute_with_retry(operation_name="job_update", func=_operation, max_attempts=3, jitter=False, sleep=sleep_recorder)

  assert result == "saved"
  assert calls == 3
  assert sleep_recorder.delays == [0.1, 0.2]


@pytest.mark.anyio
async def test_execute_with_retry_stops_on_permanent_failure(sleep_recorder) -> None:
  calls = 0

  async def _operation() -> None:
    nonlocal calls
    calls += 1
    raise PersistenceError("schema mismatch", retryable=False)

  with pytest.raises(PersistenceError):
    await execute_with_retry(operation_name="job_update", func=_operation, max_attempts=5, sleep=sleep_recorder)
  assert calls == 1
  assert sleep_recorder.delays == []
