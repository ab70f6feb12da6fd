"""End-to-end tests for the generation worker against in-memory collaborators."""

from __future__ import annotations

from dataclasses import replace
from typing import Any

import pytest

from article_engine.ai.backoff import ResilientCaller, RetryPolicy
from article_engine.ai.errors import ProviderError
from article_engine.ai.fallback import ProviderFallbackEngine
from article_engine.ai.prompts import build_brief
from article_engine.ai.providers.base import GenerationOptions, GenerationProvider, GenerationResult
from article_engine.config import get_settings
from article_engine.jobs.models import GenerationJob
from article_engine.jobs.worker import GenerationWorker, noop_phases
from article_engine.storage.articles_repo import ArticleRecord, InMemoryArticleMaterializer
from article_engine.storage.jobs_repo import PersistenceError
from article_engine.storage.memory_jobs_repo import InMemoryJobStore

ARTICLE_TEXT = """TITLE: Sustainable Coffee Brewing at Home

META_DESCRIPTION: Learn how to brew sustainable coffee at home with simple tools and ethically sourced beans.

CONTENT:
## Introduction
Sustainable coffee starts with the beans you buy and the way you brew them every morning.

## Brewing
Use a reusable filter, measure your sustainable coffee carefully and compost the grounds afterwards.
"""


class ScriptedProvider(GenerationProvider):
  def __init__(self, name: str, script: list[GenerationResult | ProviderError], on_call: Any = None) -> None:
    self.name = name
    self.model = f"{name}-model"
    self.cost_per_1k_tokens = 0.0
    self._script = list(script)
    self._on_call = on_call
    self.calls = 0

  async def generate(self, prompt: str, options: GenerationOptions) -> GenerationResult:
    self.calls += 1
    if self._on_call is not None:
      await self._on_call()
    step = self._script.pop(0) if len(self._script) > 1 else self._script[0]
    if isinstance(step, ProviderError):
      raise step
    return step


class FailingMaterializer(InMemoryArticleMaterializer):
  async def materialize(self, record: ArticleRecord) -> str:
    raise PersistenceError("duplicate key", retryable=False)


def _settings(**overrides: Any):
  base = replace(get_settings(), max_retries=0, persist_max_attempts=2, skippable_phases=frozenset())
  return replace(base, **overrides)


def _job(job_id: str = "job-1", *, request_data: dict[str, Any] | None = None, attempts: int = 0, max_attempts: int = 3) -> GenerationJob:
  return GenerationJob(
    job_id=job_id,
    request_data=request_data or {"topic": {"id": "topic-1", "title": "Sustainable Coffee", "keywords": ["coffee"]}, "optimizeForSEO": True, "targetWordCount": 1000},
    status="pending",
    phase="queued",
    percentage=0,
    current_step="Job queued for processing",
    created_at="2024-01-01T00:00:00Z",
    updated_at="2024-01-01T00:00:00Z",
    topic_id="topic-1",
    attempts=attempts,
    max_attempts=max_attempts,
  )


def _worker(store, providers: dict[str, GenerationProvider], sleep, *, materializer=None, settings=None) -> GenerationWorker:
  settings = settings or _settings()
  caller = ResilientCaller(RetryPolicy(max_retries=settings.max_retries), sleep=sleep, rng=lambda: 0.0)
  engine = ProviderFallbackEngine(providers, priority=list(providers), caller=caller)
  return GenerationWorker(store=store, engine=engine, materializer=materializer or InMemoryArticleMaterializer(), settings=settings, sleep=sleep)


@pytest.mark.anyio
async def test_job_falls_back_and_completes(sleep_recorder) -> None:
  """p1 fails transiently, p2 succeeds with 500 tokens; the job completes at 100%."""
  store = InMemoryJobStore()
  materializer = InMemoryArticleMaterializer()
  await store.create_job(_job())
  p1 = ScriptedProvider("p1", [ProviderError("timeout", provider="p1", error_class="transient")])
  p2 = ScriptedProvider("p2", [GenerationResult(content=ARTICLE_TEXT, tokens=500, cost=0.01)])
  p3 = ScriptedProvider("p3", [GenerationResult(content="unused")])

  final = await _worker(store, {"p1": p1, "p2": p2, "p3": p3}, sleep_recorder, materializer=materializer).run("job-1")

  assert final is not None
  assert final.phase == "completed"
  assert final.status == "ready"
  assert final.percentage == 100
  assert final.provider_used == "p2"
  assert final.total_tokens == 500
  assert final.cost == pytest.approx(0.01)
  assert final.attempts == 1
  assert final.word_count is not None and final.word_count > 0
  assert final.seo_score in (70, 85)
  attempts = final.result_data["attempts"]
  assert [(attempt["provider"], attempt["success"]) for attempt in attempts] == [("p1", False), ("p2", True)]
  assert p3.calls == 0

  article = await materializer.get_article(final.article_id)
  assert article is not None
  assert article.job_id == "job-1"
  assert article.title == "Sustainable Coffee Brewing at Home"
  assert article.status == "ready_for_editorial"
  assert article.slug == "sustainable-coffee-brewing-at-home"


@pytest.mark.anyio
async def test_all_providers_failing_fails_the_job(sleep_recorder) -> None:
  store = InMemoryJobStore()
  await store.create_job(_job())
  p1 = ScriptedProvider("p1", [ProviderError("timeout", provider="p1", error_class="transient")])
  p2 = ScriptedProvider("p2", [ProviderError("invalid api key", provider="p2", error_class="permanent", tokens=25, cost=0.001)])

  final = await _worker(store, {"p1": p1, "p2": p2}, sleep_recorder).run("job-1")

  assert final is not None
  assert final.phase == "error"
  assert final.status == "failed"
  assert final.error_reason == "generation_failed"
  assert final.current_step.startswith("Generation failed: All providers failed")
  assert final.percentage == 60
  assert final.article_id is None
  assert final.provider_used is None
  assert final.total_tokens is None
  assert final.cost is None
  assert len(final.result_data["attempts"]) == 2
  # Billed usage from failed attempts stays in the result data.
  assert final.result_data["usage"]["totalTokens"] == 25


@pytest.mark.anyio
async def test_cancellation_during_generation_discards_result(sleep_recorder) -> None:
  """A result arriving after cancellation is never written back."""
  store = InMemoryJobStore()
  materializer = InMemoryArticleMaterializer()
  await store.create_job(_job())

  async def _cancel() -> None:
    await store.update_job("job-1", phase="error", status="failed", error_reason="cancelled", current_step="Generation cancelled by user")

  p1 = ScriptedProvider("p1", [GenerationResult(content=ARTICLE_TEXT, tokens=500, cost=0.01)], on_call=_cancel)

  final = await _worker(store, {"p1": p1}, sleep_recorder, materializer=materializer).run("job-1")

  assert final is not None
  assert final.phase == "error"
  assert final.error_reason == "cancelled"
  assert final.provider_used is None
  assert final.total_tokens is None
  assert final.article_id is None
  assert materializer._articles == {}


@pytest.mark.anyio
async def test_cancellation_is_checked_between_retries(sleep_recorder) -> None:
  store = InMemoryJobStore()
  await store.create_job(_job())

  async def _cancel() -> None:
    await store.update_job("job-1", phase="error", status="failed", error_reason="cancelled")

  p1 = ScriptedProvider("p1", [ProviderError("overloaded", provider="p1", error_class="transient")], on_call=_cancel)

  await _worker(store, {"p1": p1}, sleep_recorder, settings=_settings(max_retries=3)).run("job-1")

  assert p1.calls == 1
  assert sleep_recorder.delays == []


@pytest.mark.anyio
async def test_job_over_attempt_budget_is_failed(sleep_recorder) -> None:
  store = InMemoryJobStore()
  await store.create_job(_job(attempts=3, max_attempts=3))
  p1 = ScriptedProvider("p1", [GenerationResult(content=ARTICLE_TEXT)])

  final = await _worker(store, {"p1": p1}, sleep_recorder).run("job-1")

  assert final is not None
  assert final.phase == "error"
  assert final.error_reason == "max_attempts_exceeded"
  assert final.attempts == 4
  assert p1.calls == 0


@pytest.mark.anyio
async def test_resumed_job_continues_from_persisted_phase(sleep_recorder) -> None:
  """A job picked up again after a restart re-enters at its last persisted phase."""
  store = InMemoryJobStore()
  job = replace(_job(attempts=1), phase="optimizing", status="generating", percentage=80, result_data={"content": ARTICLE_TEXT, "provider": "p1", "usage": {"totalTokens": 300, "cost": 0.02}})
  await store.create_job(job)
  p1 = ScriptedProvider("p1", [GenerationResult(content="should not be called")])

  final = await _worker(store, {"p1": p1}, sleep_recorder).run("job-1")

  assert final is not None
  assert final.phase == "completed"
  assert final.attempts == 2
  assert final.provider_used == "p1"
  assert final.total_tokens == 300
  assert final.cost == pytest.approx(0.02)
  assert p1.calls == 0


@pytest.mark.anyio
async def test_terminal_jobs_are_left_untouched(sleep_recorder) -> None:
  store = InMemoryJobStore()
  await store.create_job(replace(_job(), phase="completed", status="ready", percentage=100))
  final = await _worker(store, {}, sleep_recorder).run("job-1")
  assert final is not None
  assert final.attempts == 0
  assert await _worker(store, {}, sleep_recorder).run("missing") is None


@pytest.mark.anyio
async def test_materialization_failure_fails_the_job(sleep_recorder) -> None:
  store = InMemoryJobStore()
  await store.create_job(_job())
  p1 = ScriptedProvider("p1", [GenerationResult(content=ARTICLE_TEXT, tokens=10)])

  final = await _worker(store, {"p1": p1}, sleep_recorder, materializer=FailingMaterializer()).run("job-1")

  assert final is not None
  assert final.phase == "error"
  assert final.error_reason == "materialization_failed"
  assert final.provider_used is None
  assert final.cost is None
  assert final.seo_score is None
  assert final.word_count is None


@pytest.mark.anyio
async def test_missing_title_fails_during_analysis(sleep_recorder) -> None:
  store = InMemoryJobStore()
  await store.create_job(_job(request_data={"topic": {"title": "  "}}))
  final = await _worker(store, {}, sleep_recorder).run("job-1")
  assert final is not None
  assert final.error_reason == "invalid_request"
  assert final.percentage == 15


@pytest.mark.anyio
async def test_configured_noop_phases_are_skipped(sleep_recorder) -> None:
  store = InMemoryJobStore()
  request = {"topic": {"title": "Sustainable Coffee"}, "optimizeForSEO": False, "outline": ["Intro", "Brewing"]}
  await store.create_job(_job(request_data=request))
  seen: list[str] = []

  async def _record_phase() -> None:
    record = await store.get_job("job-1")
    seen.append(record.phase)

  p1 = ScriptedProvider("p1", [GenerationResult(content=ARTICLE_TEXT)], on_call=_record_phase)
  settings = _settings(skippable_phases=frozenset({"structuring", "optimizing"}))

  final = await _worker(store, {"p1": p1}, sleep_recorder, settings=settings).run("job-1")

  assert noop_phases(build_brief(request)) == frozenset({"structuring", "optimizing"})
  assert final is not None
  assert final.phase == "completed"
  assert final.seo_score is None
  assert "outline" not in final.result_data
  assert seen == ["writing"]


@pytest.mark.anyio
async def test_result_metadata_is_written_only_on_completion(sleep_recorder) -> None:
  store = InMemoryJobStore()
  await store.create_job(_job())
  observed: dict[str, GenerationJob] = {}

  class ObservingMaterializer(InMemoryArticleMaterializer):
    async def materialize(self, record: ArticleRecord) -> str:
      observed["finalizing"] = await store.get_job("job-1")
      return await super().materialize(record)

  p1 = ScriptedProvider("p1", [GenerationResult(content=ARTICLE_TEXT, tokens=500, cost=0.01)])

  final = await _worker(store, {"p1": p1}, sleep_recorder, materializer=ObservingMaterializer()).run("job-1")

  in_progress = observed["finalizing"]
  assert in_progress.phase == "finalizing"
  assert (in_progress.provider_used, in_progress.cost, in_progress.total_tokens, in_progress.seo_score) == (None, None, None, None)
  assert final is not None
  assert final.phase == "completed"
  assert final.provider_used == "p1"
  assert final.cost == pytest.approx(0.01)
  assert final.seo_score in (70, 85)


class CancelAtFinalizingStore(InMemoryJobStore):
  """Cancels the job right after the worker's finalizing boundary check has read it."""

  def __init__(self) -> None:
    super().__init__()
    self.cancelled = False

  async def get_job(self, job_id: str) -> GenerationJob | None:
    record = await super().get_job(job_id)
    if record is not None and record.phase == "finalizing" and not self.cancelled:
      self.cancelled = True
      await self.update_job(job_id, phase="error", status="failed", error_reason="cancelled", current_step="Generation cancelled by user")
    return record


@pytest.mark.anyio
async def test_cancellation_before_materialization_creates_no_article(sleep_recorder) -> None:
  store = CancelAtFinalizingStore()
  materializer = InMemoryArticleMaterializer()
  await store.create_job(_job())
  p1 = ScriptedProvider("p1", [GenerationResult(content=ARTICLE_TEXT, tokens=500, cost=0.01)])

  final = await _worker(store, {"p1": p1}, sleep_recorder, materializer=materializer).run("job-1")

  assert store.cancelled is True
  assert final is not None
  assert final.phase == "error"
  assert final.error_reason == "cancelled"
  assert final.article_id is None
  assert materializer._articles == {}
