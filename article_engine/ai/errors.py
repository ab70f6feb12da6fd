"""Shared error classification helpers for generation provider handling."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

import httpx

from article_engine.jobs.models import ErrorClass

_RATE_LIMIT_HINTS: tuple[str, ...] = (
  "rate limit",
  "rate_limit",
  "too many requests",
  "resource exhausted",
  "resource_exhausted",
  "quota",
  "429",
)

_TRANSIENT_HINTS: tuple[str, ...] = (
  "timeout",
  "timed out",
  "connection",
  "network",
  "temporarily",
  "service unavailable",
  "overloaded",
  "bad gateway",
  "gateway",
  "internal server error",
)

_PERMANENT_HINTS: tuple[str, ...] = (
  "api key",
  "unauthorized",
  "forbidden",
  "permission",
  "model not found",
  "no such model",
  "unsupported model",
  "invalid request",
  "content policy",
)


class ProviderError(Exception):
  """A classified failure from one generation provider call.

  `tokens`/`cost` carry usage the provider billed before failing, when it reported any.
  `attempts` is the number of calls made against the provider before giving up.
  """

  def __init__(
    self,
    message: str,
    *,
    provider: str,
    error_class: ErrorClass = "transient",
    status_code: int | None = None,
    tokens: int | None = None,
    cost: float | None = None,
    attempts: int = 1,
  ) -> None:
    super().__init__(message)
    self.message = message
    self.provider = provider
    self.error_class: ErrorClass = error_class
    self.status_code = status_code
    self.tokens = tokens
    self.cost = cost
    self.attempts = attempts

  @property
  def retryable(self) -> bool:
    return self.error_class != "permanent"

  def __str__(self) -> str:
    return f"{self.provider}: {self.message}"


def _match_hint(message: str, hints: Iterable[str]) -> bool:
  """Return True when any hint appears in the message."""
  for hint in hints:
    if hint in message:
      return True
  return False


def classify_status_code(status_code: int) -> ErrorClass:
  """Map an HTTP status from a provider API onto an error class."""
  if status_code == 429:
    return "rate_limited"
  if status_code in (408, 409, 425) or status_code >= 500:
    return "transient"
  return "permanent"


def classify_message(message: str) -> ErrorClass:
  """Classify a provider error from its message text alone."""
  lowered = message.lower()
  if _match_hint(lowered, _RATE_LIMIT_HINTS):
    return "rate_limited"
  if _match_hint(lowered, _PERMANENT_HINTS):
    return "permanent"
  if _match_hint(lowered, _TRANSIENT_HINTS):
    return "transient"
  return "permanent"


def classify_exception(exc: BaseException) -> ErrorClass:
  """Classify any exception raised by a provider call."""
  if isinstance(exc, ProviderError):
    return exc.error_class

  if isinstance(exc, httpx.HTTPStatusError):
    return classify_status_code(exc.response.status_code)

  # Timeouts and dropped connections are worth another try.
  if isinstance(exc, (httpx.TransportError, asyncio.TimeoutError, TimeoutError, ConnectionError)):
    return "transient"

  status_code = getattr(exc, "status_code", None) or getattr(exc, "code", None)
  if isinstance(status_code, int) and 400 <= status_code < 600:
    return classify_status_code(status_code)

  return classify_message(str(exc))


def to_provider_error(exc: BaseException, *, provider: str) -> ProviderError:
  """Wrap an arbitrary exception as a classified ProviderError."""
  if isinstance(exc, ProviderError):
    return exc
  status_code = getattr(exc, "status_code", None) or getattr(exc, "code", None)
  message = str(exc) or type(exc).__name__
  return ProviderError(message, provider=provider, error_class=classify_exception(exc), status_code=status_code if isinstance(status_code, int) else None)
