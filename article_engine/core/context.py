"""Process-scoped collaborators shared by request handlers and workers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from article_engine.ai.backoff import ResilientCaller, RetryPolicy
from article_engine.ai.fallback import ProviderFallbackEngine
from article_engine.ai.providers import build_providers
from article_engine.ai.providers.base import GenerationProvider
from article_engine.config import Settings
from article_engine.jobs.dispatch import JobDispatcher
from article_engine.jobs.worker import GenerationWorker
from article_engine.services.rate_limit import FixedWindowRateLimiter
from article_engine.storage.articles_repo import ArticleMaterializer
from article_engine.storage.factory import build_article_materializer, build_job_store
from article_engine.storage.jobs_repo import JobStore

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
  """Everything a request handler needs, built once per process in the lifespan.

  Nothing here survives a restart except what the job store persists.
  """

  settings: Settings
  store: JobStore
  rate_limiter: FixedWindowRateLimiter
  engine: ProviderFallbackEngine
  materializer: ArticleMaterializer
  worker: GenerationWorker
  dispatcher: JobDispatcher

  async def aclose(self) -> None:
    await self.dispatcher.shutdown()
    await self.engine.aclose()


def build_app_context(
  settings: Settings,
  *,
  store: JobStore | None = None,
  providers: Mapping[str, GenerationProvider] | None = None,
  materializer: ArticleMaterializer | None = None,
  sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> AppContext:
  """Wire the collaborators; tests pass their own store, providers and sleep."""
  job_store = store if store is not None else build_job_store(settings)
  article_materializer = materializer if materializer is not None else build_article_materializer(settings)
  provider_map = dict(providers) if providers is not None else build_providers(settings)
  if not provider_map:
    logger.warning("No generation providers are configured; jobs will fail at the writing phase.")

  policy = RetryPolicy(max_retries=settings.max_retries, base_delay_seconds=settings.backoff_base_seconds, max_delay_seconds=settings.backoff_max_delay_seconds)
  caller = ResilientCaller(policy, sleep=sleep)
  engine = ProviderFallbackEngine(provider_map, priority=settings.provider_priority, caller=caller, default_provider=settings.default_provider, template_providers=settings.template_providers)
  worker = GenerationWorker(store=job_store, engine=engine, materializer=article_materializer, settings=settings, sleep=sleep)

  return AppContext(
    settings=settings,
    store=job_store,
    rate_limiter=FixedWindowRateLimiter(window_seconds=settings.rate_limit_window_seconds),
    engine=engine,
    materializer=article_materializer,
    worker=worker,
    dispatcher=JobDispatcher(worker),
  )
