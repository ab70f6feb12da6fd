"""Test configuration for importing the application package."""

from __future__ import annotations

import os

# Ensure required settings are available before the application is imported.
os.environ.setdefault("ARTICLE_ENGINE_ALLOWED_ORIGINS", "http://localhost")
os.environ["ARTICLE_ENGINE_ENV"] = "test"
os.environ["ARTICLE_ENGINE_JOB_STORE"] = "memory"
os.environ["ARTICLE_ENGINE_JOBS_AUTO_PROCESS"] = "1"
os.environ["ARTICLE_ENGINE_RESUME_ON_STARTUP"] = "0"
os.environ["ARTICLE_ENGINE_TASK_SECRET"] = "test-task-secret"
for _key in ("ANTHROPIC_API_KEY", "OPENAI_API_KEY", "GEMINI_API_KEY", "ARTICLE_ENGINE_PG_DSN", "DATABASE_URL"):
  os.environ.pop(_key, None)

import pytest  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


class SleepRecorder:
  """Awaitable stand-in for asyncio.sleep that records delays instead of waiting."""

  def __init__(self) -> None:
    self.delays: list[float] = []

  async def __call__(self, delay: float) -> None:
    self.delays.append(delay)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
  return SleepRecorder()
