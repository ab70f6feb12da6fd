"""Ordered provider fallback for article generation.

Candidates are tried one at a time, never in parallel, so the fallback order holds and
only one provider is billed at a time. Every candidate invocation yields a ProviderAttempt,
whether it succeeds or not.

Billing convention: `total_tokens` and `total_cost` sum every recorded attempt that
reported a value, including failed attempts whose provider billed usage before failing.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field

from article_engine.ai.backoff import CallFailed, ResilientCaller
from article_engine.ai.errors import ProviderError
from article_engine.ai.providers.base import GenerationOptions, GenerationProvider, GenerationResult
from article_engine.ai.utils.cost import sum_cost, sum_tokens
from article_engine.jobs.models import ProviderAttempt

logger = logging.getLogger(__name__)


@dataclass
class FallbackResult:
  """Outcome of a full fallback sequence."""

  success: bool
  attempts: list[ProviderAttempt] = field(default_factory=list)
  content: str | None = None
  final_provider: str | None = None
  error: ProviderError | None = None

  @property
  def total_tokens(self) -> int | None:
    return sum_tokens(attempt.tokens for attempt in self.attempts)

  @property
  def total_cost(self) -> float | None:
    return sum_cost(attempt.cost for attempt in self.attempts)


def resolve_candidates(preferred: str | None, priority: Iterable[str], available: Iterable[str] | None = None) -> list[str]:
  """Return the preferred provider first, then the priority order, de-duplicated.

  When `available` is given, providers outside it are dropped.
  """
  ordered = list(dict.fromkeys(([preferred] if preferred else []) + list(priority)))
  if available is None:
    return ordered
  allowed = set(available)
  return [name for name in ordered if name in allowed]


class ProviderFallbackEngine:
  """Try generation providers in order until one succeeds."""

  def __init__(
    self,
    providers: Mapping[str, GenerationProvider],
    *,
    priority: Iterable[str],
    caller: ResilientCaller,
    default_provider: str | None = None,
    template_providers: Mapping[str, str] | None = None,
  ) -> None:
    self._providers = dict(providers)
    self._priority = tuple(priority)
    self._caller = caller
    self._default_provider = default_provider
    self._template_providers = dict(template_providers or {})

  @property
  def available_providers(self) -> tuple[str, ...]:
    return tuple(self._providers)

  def preferred_for(self, *, pinned: str | None = None, template: str | None = None) -> str | None:
    """Pick the provider to try first: pinned, then template-mapped, then the default."""
    if pinned:
      return pinned
    if template and template in self._template_providers:
      return self._template_providers[template]
    return self._default_provider

  def candidates_for(self, *, pinned: str | None = None, template: str | None = None) -> list[str]:
    preferred = self.preferred_for(pinned=pinned, template=template)
    return resolve_candidates(preferred, self._priority, self._providers)

  async def generate(
    self,
    prompt: str,
    options: GenerationOptions,
    *,
    pinned: str | None = None,
    template: str | None = None,
    before_retry: Callable[[], Awaitable[None]] | None = None,
  ) -> FallbackResult:
    """Run the fallback sequence and return every attempt alongside the outcome."""
    candidates = self.candidates_for(pinned=pinned, template=template)
    if not candidates:
      error = ProviderError("No generation providers are configured", provider="none", error_class="permanent", attempts=0)
      return FallbackResult(success=False, error=error)

    attempts: list[ProviderAttempt] = []
    last_error: ProviderError | None = None
    for name in candidates:
      provider = self._providers[name]
      started = time.monotonic()

      async def _invoke(provider: GenerationProvider = provider) -> GenerationResult:
        return await provider.generate(prompt, options)

      outcome = await self._caller.call(_invoke, label=name, before_retry=before_retry)
      latency_ms = int((time.monotonic() - started) * 1000)

      # Failed calls that still billed usage count toward the attempt totals.
      failed_tokens = [failure.tokens for failure in outcome.failures]
      failed_costs = [failure.cost for failure in outcome.failures]

      if isinstance(outcome, CallFailed):
        last_error = outcome.error
        attempts.append(ProviderAttempt(provider=name, success=False, error_class=outcome.error.error_class, error=outcome.error.message, tokens=sum_tokens(failed_tokens), cost=sum_cost(failed_costs), latency_ms=latency_ms, calls=outcome.calls))
        logger.warning("Provider %s failed (%s) after %d call(s); trying next candidate.", name, outcome.error.error_class, outcome.calls)
        continue

      result: GenerationResult = outcome.value
      attempts.append(ProviderAttempt(provider=name, success=True, tokens=sum_tokens([*failed_tokens, result.tokens]), cost=sum_cost([*failed_costs, result.cost]), latency_ms=latency_ms, calls=outcome.calls))
      logger.info("Provider %s succeeded after %d attempt(s).", name, len(attempts))
      return FallbackResult(success=True, attempts=attempts, content=result.content, final_provider=name)

    logger.error("All %d provider candidate(s) failed; last error: %s", len(candidates), last_error)
    return FallbackResult(success=False, attempts=attempts, error=last_error)

  async def aclose(self) -> None:
    for provider in self._providers.values():
      await provider.aclose()
