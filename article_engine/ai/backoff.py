"""Retry one outbound call with classified failures and exponential backoff."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from article_engine.ai.errors import ProviderError, to_provider_error

T = TypeVar("T")
logger = logging.getLogger(__name__)

JITTER_RATIO = 0.1


@dataclass(frozen=True)
class RetryPolicy:
  """Retry budget and delay curve for a single outbound call."""

  max_retries: int = 3
  base_delay_seconds: float = 1.0
  max_delay_seconds: float = 30.0


@dataclass(frozen=True)
class CallSucceeded(Generic[T]):
  value: T
  calls: int
  failures: tuple[ProviderError, ...] = ()


@dataclass(frozen=True)
class CallFailed:
  error: ProviderError
  calls: int
  failures: tuple[ProviderError, ...] = ()


CallOutcome = CallSucceeded[Any] | CallFailed


def compute_backoff_delay(retry_number: int, policy: RetryPolicy, rng: Callable[[], float] = random.random) -> float:
  """
  Delay in seconds before retry `retry_number` (1-indexed).

  base * 2^(i-1), plus up to 10% jitter, capped at the policy maximum.
  """
  if retry_number < 1:
    raise ValueError("retry_number is 1-indexed.")
  nominal = policy.base_delay_seconds * (2 ** (retry_number - 1))
  return min(nominal * (1 + JITTER_RATIO * rng()), policy.max_delay_seconds)


class ResilientCaller:
  """Execute one outbound call, retrying transient and rate-limited failures.

  Permanent failures are returned after exactly one call. Retryable failures are retried
  up to `max_retries` times, so a call is made at most `max_retries + 1` times.
  """

  def __init__(self, policy: RetryPolicy | None = None, *, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep, rng: Callable[[], float] = random.random) -> None:
    self.policy = policy or RetryPolicy()
    self._sleep = sleep
    self._rng = rng

  async def call(self, operation: Callable[[], Awaitable[T]], *, label: str, before_retry: Callable[[], Awaitable[None]] | None = None) -> CallSucceeded[T] | CallFailed:
    """Run `operation` and return a tagged outcome instead of raising provider failures.

    `before_retry` runs ahead of every backoff sleep; raising from it aborts the call.
    """
    failures: list[ProviderError] = []
    calls = 0
    while True:
      calls += 1
      try:
        value = await operation()
        if failures:
          logger.info("Call succeeded after retry: label=%s, calls=%d", label, calls)
        return CallSucceeded(value=value, calls=calls, failures=tuple(failures))
      except asyncio.CancelledError:
        raise
      except Exception as exc:
        error = to_provider_error(exc, provider=label)
        failures.append(error)

        if not error.retryable:
          logger.warning("Call failed permanently: label=%s, calls=%d, error=%s", label, calls, error.message)
          error.attempts = calls
          return CallFailed(error=error, calls=calls, failures=tuple(failures))

        if calls > self.policy.max_retries:
          logger.warning("Call failed after exhausting retries: label=%s, calls=%d, class=%s, error=%s", label, calls, error.error_class, error.message)
          error.attempts = calls
          return CallFailed(error=error, calls=calls, failures=tuple(failures))

        # Cooperative cancellation is honored between retries.
        if before_retry is not None:
          await before_retry()

        delay = compute_backoff_delay(calls, self.policy, self._rng)
        logger.info("Retrying call after backoff: label=%s, retry=%d/%d, class=%s, delay=%.2fs", label, calls, self.policy.max_retries, error.error_class, delay)
        await self._sleep(delay)
