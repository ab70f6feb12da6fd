"""Process-local fixed-window admission control for job creation.

State lives only in this process: it is lost on restart and not shared between
replicas, so it is a best-effort gate rather than a strict distributed limit.
"""

from __future__ import annotations

import logging
import math
import random
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

CLEANUP_PROBABILITY = 0.01


class RateLimitExceededError(Exception):
  """Raised when a caller has used up its budget for the current window."""

  def __init__(self, retry_after_seconds: int) -> None:
    super().__init__("Rate limit exceeded. Try again later.")
    self.retry_after_seconds = retry_after_seconds


@dataclass
class _Window:
  count: int
  reset_at: float


@dataclass(frozen=True)
class RateLimitDecision:
  allowed: bool
  remaining: int
  retry_after_seconds: int


class FixedWindowRateLimiter:
  """Counts checks per (window config, caller token) and rejects once the limit is reached."""

  def __init__(self, *, window_seconds: float, clock: Callable[[], float] = time.monotonic, rng: Callable[[], float] = random.random, cleanup_probability: float = CLEANUP_PROBABILITY) -> None:
    self._window_seconds = window_seconds
    self._clock = clock
    self._rng = rng
    self._cleanup_probability = cleanup_probability
    self._windows: dict[tuple[str, str], _Window] = {}

  def _config_key(self, limit: int) -> str:
    return f"{self._window_seconds}-{limit}"

  def check(self, limit: int, token: str) -> RateLimitDecision:
    now = self._clock()
    # Reclaim expired entries on a small fraction of checks instead of a sweeper task.
    if self._rng() < self._cleanup_probability:
      self._purge_expired(now)

    key = (self._config_key(limit), token)
    window = self._windows.get(key)
    if window is None or now >= window.reset_at:
      self._windows[key] = _Window(count=1, reset_at=now + self._window_seconds)
      return RateLimitDecision(allowed=True, remaining=max(limit - 1, 0), retry_after_seconds=0)

    if window.count < limit:
      window.count += 1
      return RateLimitDecision(allowed=True, remaining=limit - window.count, retry_after_seconds=0)

    # Rejections do not consume budget.
    retry_after = max(math.ceil(window.reset_at - now), 1)
    return RateLimitDecision(allowed=False, remaining=0, retry_after_seconds=retry_after)

  def enforce(self, limit: int, token: str) -> RateLimitDecision:
    """Like `check`, but raise RateLimitExceededError on rejection."""
    decision = self.check(limit, token)
    if not decision.allowed:
      logger.info("Rate limit reached for caller %s (limit=%d/%ss).", token, limit, self._window_seconds)
      raise RateLimitExceededError(decision.retry_after_seconds)
    return decision

  def _purge_expired(self, now: float) -> None:
    expired = [key for key, window in self._windows.items() if now >= window.reset_at]
    for key in expired:
      del self._windows[key]

  def __len__(self) -> int:
    return len(self._windows)
