"""HTTP tests for job creation, polling, cancellation and maintenance endpoints."""

from __future__ import annotations

from dataclasses import replace
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from article_engine.ai.errors import ProviderError
from article_engine.ai.providers.base import GenerationOptions, GenerationProvider, GenerationResult
from article_engine.config import get_settings
from article_engine.core.context import AppContext, build_app_context
from article_engine.jobs.models import GenerationJob
from article_engine.main import app
from article_engine.storage.articles_repo import InMemoryArticleMaterializer
from article_engine.storage.jobs_repo import PersistenceError
from article_engine.storage.memory_jobs_repo import InMemoryJobStore

ARTICLE_TEXT = """TITLE: Cold Brew Coffee Guide

META_DESCRIPTION: Everything you need to make cold brew coffee at home.

CONTENT:
## Introduction
Cold brew coffee is smooth, sweet and easy to make in a jar at home.

## Method
Steep coarse coffee in cold water for twelve hours, then filter the cold brew.
"""


class StubProvider(GenerationProvider):
  def __init__(self, name: str, outcome: GenerationResult | ProviderError) -> None:
    self.name = name
    self.model = f"{name}-model"
    self.cost_per_1k_tokens = 0.0
    self.outcome = outcome
    self.calls = 0

  async def generate(self, prompt: str, options: GenerationOptions) -> GenerationResult:
    self.calls += 1
    if isinstance(self.outcome, ProviderError):
      raise self.outcome
    return self.outcome


class UnavailableJobStore(InMemoryJobStore):
  async def get_job(self, job_id: str) -> GenerationJob | None:
    raise PersistenceError("connection refused")


def _payload(**overrides: Any) -> dict[str, Any]:
  payload: dict[str, Any] = {"topic": {"id": "topic-7", "title": "Cold Brew Coffee", "keywords": ["cold brew", "coffee"], "template": "How-to Guide"}, "optimizeForSEO": True, "targetWordCount": 1000}
  payload.update(overrides)
  return payload


async def _install_context(sleep, *, store=None, providers=None, **settings_overrides: Any) -> AppContext:
  settings = replace(get_settings(), max_retries=0, **settings_overrides)
  if providers is None:
    providers = {
      "anthropic": StubProvider("anthropic", ProviderError("overloaded", provider="anthropic", error_class="transient")),
      "openai": StubProvider("openai", GenerationResult(content=ARTICLE_TEXT, tokens=500, cost=0.01)),
    }
  context = build_app_context(settings, store=store or InMemoryJobStore(), providers=providers, materializer=InMemoryArticleMaterializer(), sleep=sleep)
  app.state.context = context
  return context


@pytest.fixture
async def client():
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http_client:
    yield http_client
  context = getattr(app.state, "context", None)
  if context is not None:
    await context.aclose()
    del app.state.context


@pytest.mark.anyio
async def test_create_then_poll_until_completed(client: AsyncClient, sleep_recorder) -> None:
  context = await _install_context(sleep_recorder)

  created = await client.post("/v1/jobs", json=_payload(), headers={"x-session-id": "s-1"})
  assert created.status_code == 202
  body = created.json()
  assert body["status"] == "pending"
  assert body["estimatedCompletion"].endswith("Z")
  job_id = body["jobId"]

  await context.dispatcher.drain()
  polled = await client.get("/v1/jobs", params={"jobId": job_id})

  assert polled.status_code == 200
  snapshot = polled.json()
  assert snapshot["phase"] == "completed"
  assert snapshot["status"] == "ready"
  assert snapshot["percentage"] == 100
  assert snapshot["articleId"]
  assert snapshot["estimatedTimeRemaining"] is None
  assert snapshot["metadata"]["providerUsed"] == "openai"
  assert snapshot["metadata"]["totalTokens"] == 500
  assert snapshot["metadata"]["topicId"] == "topic-7"
  assert [attempt["provider"] for attempt in snapshot["metadata"]["providerAttempts"]] == ["anthropic", "openai"]
  assert polled.headers["x-request-id"]

  by_path = await client.get(f"/v1/jobs/{job_id}")
  assert by_path.json()["phase"] == "completed"


@pytest.mark.anyio
async def test_queued_snapshot_reports_time_remaining(client: AsyncClient, sleep_recorder) -> None:
  await _install_context(sleep_recorder, jobs_auto_process=False)

  created = await client.post("/v1/jobs", json=_payload())
  snapshot = (await client.get(f"/v1/jobs/{created.json()['jobId']}")).json()

  assert snapshot["phase"] == "queued"
  assert snapshot["percentage"] == 0
  assert snapshot["currentStep"] == "Job queued for processing"
  # 30 s per 1000 words, times 1.5 with SEO optimization.
  assert 0 < snapshot["estimatedTimeRemaining"] <= 45


@pytest.mark.anyio
async def test_unknown_job_returns_404(client: AsyncClient, sleep_recorder) -> None:
  await _install_context(sleep_recorder)

  polled = await client.get("/v1/jobs", params={"jobId": "does-not-exist"})
  cancelled = await client.delete("/v1/jobs/does-not-exist")

  assert polled.status_code == 404
  assert polled.json()["detail"] == "Job not found."
  assert polled.json()["requestId"]
  assert cancelled.status_code == 404


@pytest.mark.anyio
async def test_cancel_turns_job_terminal(client: AsyncClient, sleep_recorder) -> None:
  await _install_context(sleep_recorder, jobs_auto_process=False)
  job_id = (await client.post("/v1/jobs", json=_payload())).json()["jobId"]

  cancelled = await client.request("DELETE", "/v1/jobs", json={"jobId": job_id})
  polled = await client.get("/v1/jobs", params={"jobId": job_id})
  again = await client.delete(f"/v1/jobs/{job_id}")

  assert cancelled.status_code == 200
  assert cancelled.json()["ok"] is True
  snapshot = polled.json()
  assert snapshot["phase"] == "error"
  assert snapshot["status"] == "failed"
  assert snapshot["error"]["reason"] == "cancelled"
  assert snapshot["currentStep"] == "Generation cancelled by user"
  assert again.status_code == 200
  assert again.json()["job"]["phase"] == "error"


@pytest.mark.anyio
async def test_invalid_payloads_are_rejected(client: AsyncClient, sleep_recorder) -> None:
  await _install_context(sleep_recorder)

  missing_topic = await client.post("/v1/jobs", json={"optimizeForSEO": True})
  blank_title = await client.post("/v1/jobs", json=_payload(topic={"title": "   "}))
  unknown_field = await client.post("/v1/jobs", json=_payload(priority="high"))
  unconfigured_provider = await client.post("/v1/jobs", json=_payload(preferredProvider="google"))

  assert missing_topic.status_code == 422
  assert blank_title.status_code == 422
  assert unknown_field.status_code == 422
  assert all("input" not in error for error in missing_topic.json()["detail"])
  assert unconfigured_provider.status_code == 400
  assert (await client.get("/v1/jobs/stats")).json()["total"] == 0


@pytest.mark.anyio
async def test_rate_limit_applies_per_caller(client: AsyncClient, sleep_recorder) -> None:
  await _install_context(sleep_recorder, jobs_auto_process=False, rate_limit_limit=2)

  responses = [await client.post("/v1/jobs", json=_payload(), headers={"x-session-id": "busy"}) for _ in range(3)]
  other = await client.post("/v1/jobs", json=_payload(), headers={"x-session-id": "quiet"})

  assert [response.status_code for response in responses] == [202, 202, 429]
  assert int(responses[-1].headers["retry-after"]) >= 1
  assert other.status_code == 202


@pytest.mark.anyio
async def test_active_jobs_and_stats(client: AsyncClient, sleep_recorder) -> None:
  await _install_context(sleep_recorder, jobs_auto_process=False)
  first = (await client.post("/v1/jobs", json=_payload())).json()["jobId"]
  await client.post("/v1/jobs", json=_payload())
  await client.delete(f"/v1/jobs/{first}")

  active = await client.get("/v1/jobs/active")
  stats = await client.get("/v1/jobs/stats")

  assert active.status_code == 200
  assert len(active.json()["jobs"]) == 1
  assert stats.json() == {"total": 2, "byStatus": {"pending": 1, "failed": 1}}


@pytest.mark.anyio
async def test_store_outage_returns_503(client: AsyncClient, sleep_recorder) -> None:
  await _install_context(sleep_recorder, store=UnavailableJobStore())

  polled = await client.get("/v1/jobs/job-1")

  assert polled.status_code == 503
  assert polled.json()["detail"] == "Job store unavailable"
  assert polled.headers["retry-after"] == "5"


@pytest.mark.anyio
async def test_cleanup_requires_task_secret(client: AsyncClient, sleep_recorder) -> None:
  context = await _install_context(sleep_recorder)
  await context.store.create_job(
    GenerationJob(
      job_id="old-job",
      request_data={},
      status="ready",
      phase="completed",
      percentage=100,
      current_step="Generation completed successfully",
      created_at="2020-01-01T00:00:00Z",
      updated_at="2020-01-01T00:00:00Z",
      completed_at="2020-01-01T00:00:00Z",
    )
  )

  denied = await client.post("/internal/jobs/cleanup")
  wrong = await client.post("/internal/jobs/cleanup", headers={"x-article-engine-task-secret": "nope"})
  allowed = await client.post("/internal/jobs/cleanup", headers={"authorization": "Bearer test-task-secret"})

  assert denied.status_code == 403
  assert wrong.status_code == 403
  assert allowed.status_code == 200
  assert allowed.json()["deleted"] == 1
  assert await context.store.get_job("old-job") is None


@pytest.mark.anyio
async def test_health(client: AsyncClient) -> None:
  response = await client.get("/health")
  assert response.status_code == 200
  assert response.json()["status"] == "ok"
