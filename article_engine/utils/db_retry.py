"""Retry logic for job store writes with retryable vs non-retryable classification."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from article_engine.storage.jobs_repo import PersistenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLSTATE -> (retryable, category)
_SQLSTATE_RULES: dict[str, tuple[bool, str]] = {
  "40001": (True, "serialization_conflict"),
  "40P01": (True, "deadlock"),
  "55P03": (False, "lock_timeout"),
  "57014": (False, "query_timeout"),
  "57P01": (True, "admin_shutdown"),
  "08000": (True, "connection_exception"),
  "08003": (True, "connection_does_not_exist"),
  "08006": (True, "connection_failure"),
}

# SQLSTATE class prefix -> category; every class listed here is permanent.
_PERMANENT_CLASSES: dict[str, str] = {"23": "integrity_error", "42": "schema_error", "28": "permission_error", "22": "data_error"}

_CONNECTIVITY_HINTS = ("connection", "timeout", "reset", "network", "broken pipe", "lost connection", "refused")


class DBFailureClassification:
  """Classification result for a database failure."""

  def __init__(self, *, retryable: bool, reason: str, sqlstate: str | None, category: str) -> None:
    self.retryable = retryable
    self.reason = reason
    self.sqlstate = sqlstate
    self.category = category


def _extract_sqlstate(exc: BaseException | None) -> str | None:
  """Extract the Postgres SQLSTATE from a SQLAlchemy exception."""
  if isinstance(exc, DBAPIError) and exc.orig is not None:
    # asyncpg exposes sqlstate; psycopg exposes pgcode.
    for attribute in ("sqlstate", "pgcode"):
      value = getattr(exc.orig, attribute, None)
      if value:
        return str(value)
  return None


def classify_db_failure(exc: BaseException) -> DBFailureClassification:
  """
  Classify a job store failure as retryable or not.

  Primary signal: Postgres SQLSTATE.
  Fallback: exception type and message patterns.

  Already-translated PersistenceError instances keep the decision made at the store boundary.
  """
  if isinstance(exc, PersistenceError):
    return DBFailureClassification(retryable=exc.retryable, reason=str(exc), sqlstate=_extract_sqlstate(exc.__cause__), category="persistence_error")

  sqlstate = _extract_sqlstate(exc)

  if sqlstate in _SQLSTATE_RULES:
    retryable, category = _SQLSTATE_RULES[sqlstate]
    return DBFailureClassification(retryable=retryable, reason=f"SQLSTATE {sqlstate}", sqlstate=sqlstate, category=category)

  if sqlstate and sqlstate[:2] in _PERMANENT_CLASSES:
    return DBFailureClassification(retryable=False, reason=f"SQLSTATE {sqlstate}", sqlstate=sqlstate, category=_PERMANENT_CLASSES[sqlstate[:2]])

  if isinstance(exc, IntegrityError):
    return DBFailureClassification(retryable=False, reason="Integrity constraint violation", sqlstate=sqlstate, category="integrity_error")

  if isinstance(exc, (AttributeError, TypeError, ValueError, KeyError, IndexError)):
    return DBFailureClassification(retryable=False, reason=f"Programming error: {type(exc).__name__}", sqlstate=sqlstate, category="programming_error")

  # Raw socket failures surface before SQLAlchemy gets a chance to wrap them.
  if isinstance(exc, (ConnectionError, TimeoutError, OSError)):
    return DBFailureClassification(retryable=True, reason=f"Connection failure: {type(exc).__name__}", sqlstate=sqlstate, category="connectivity_error")

  if isinstance(exc, OperationalError):
    error_msg = str(exc).lower()
    if any(pattern in error_msg for pattern in _CONNECTIVITY_HINTS):
      return DBFailureClassification(retryable=True, reason="Transient connection/network error", sqlstate=sqlstate, category="connectivity_error")
    return DBFailureClassification(retryable=False, reason="Operational error (unknown cause)", sqlstate=sqlstate, category="operational_error_unknown")

  return DBFailureClassification(retryable=False, reason=f"Unknown error type: {type(exc).__name__}", sqlstate=sqlstate, category="unknown_error")


async def execute_with_retry(
  *,
  operation_name: str,
  func: Callable[[], Awaitable[T]],
  max_attempts: int = 3,
  initial_backoff_ms: int = 100,
  max_backoff_ms: int = 2000,
  jitter: bool = True,
  sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
  """
  Execute a store operation, retrying transient failures with exponential backoff.

  Args:
    operation_name: Human-readable name for logging (e.g., "job_phase_update")
    func: Async callable to execute; must be idempotent
    max_attempts: Maximum number of attempts including the first
    initial_backoff_ms: Starting backoff delay in milliseconds
    max_backoff_ms: Maximum backoff delay in milliseconds
    jitter: Add up to 25% randomness to the delay
    sleep: Awaitable sleep, replaceable in tests

  Raises:
    The last exception when it is non-retryable or attempts are exhausted
  """
  attempt = 0
  while True:
    attempt += 1
    try:
      result = await func()
      if attempt > 1:
        logger.info("Store operation succeeded after retry: operation=%s, attempt=%d/%d", operation_name, attempt, max_attempts)
      return result
    except Exception as exc:
      classification = classify_db_failure(exc)
      logger.warning(
        "Store operation failed: operation=%s, attempt=%d/%d, category=%s, sqlstate=%s, retryable=%s, reason=%s",
        operation_name,
        attempt,
        max_attempts,
        classification.category,
        classification.sqlstate or "none",
        classification.retryable,
        classification.reason,
      )

      if not classification.retryable or attempt >= max_attempts:
        raise

      backoff_ms = min(initial_backoff_ms * (2 ** (attempt - 1)), max_backoff_ms)
      if jitter:
        backoff_ms += random.uniform(0, backoff_ms * 0.25)

      await sleep(backoff_ms / 1000.0)
