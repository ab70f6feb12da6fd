"""HTTP client that polls a generation job until it reaches a terminal phase."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from article_engine.jobs.phases import TERMINAL_PHASES, phase_index

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 2.0


class JobStatusError(RuntimeError):
  """Raised when the job status endpoint returns an unusable response."""


class JobNotFoundError(JobStatusError):
  def __init__(self, job_id: str) -> None:
    super().__init__(f"Job {job_id} not found")
    self.job_id = job_id


class PhaseRegressionError(JobStatusError):
  """Raised when a poll observes an earlier phase than a previous poll."""

  def __init__(self, job_id: str, previous: str, current: str) -> None:
    super().__init__(f"Job {job_id} moved backwards from {previous} to {current}")
    self.job_id = job_id
    self.previous = previous
    self.current = current


class JobStatusClient:
  """Reads and cancels jobs over HTTP.

  Pass an `httpx.AsyncClient` to share a connection pool or to route requests
  through a custom transport; otherwise one is created and owned by this client.
  """

  def __init__(
    self,
    base_url: str,
    *,
    session_id: str | None = None,
    client: httpx.AsyncClient | None = None,
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    timeout_seconds: float = 10.0,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
  ) -> None:
    headers = {"x-session-id": session_id} if session_id else {}
    self._owns_client = client is None
    self._client = client or httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout_seconds, trust_env=False)
    if client is not None and session_id:
      self._client.headers["x-session-id"] = session_id
    self._poll_interval_seconds = poll_interval_seconds
    self._sleep = sleep

  async def __aenter__(self) -> JobStatusClient:
    return self

  async def __aexit__(self, *exc_info: object) -> None:
    await self.aclose()

  async def aclose(self) -> None:
    if self._owns_client:
      await self._client.aclose()

  async def create(self, payload: dict[str, Any]) -> dict[str, Any]:
    """Submit a generation request and return `{jobId, status, estimatedCompletion}`."""
    response = await self._client.post("/v1/jobs", json=payload)
    return self._json_or_raise(response, job_id=None)

  async def get_status(self, job_id: str) -> dict[str, Any]:
    response = await self._client.get("/v1/jobs", params={"jobId": job_id})
    return self._json_or_raise(response, job_id=job_id)

  async def cancel(self, job_id: str) -> dict[str, Any]:
    """Request cancellation; the job turns terminal once the worker reaches a phase boundary."""
    response = await self._client.delete(f"/v1/jobs/{job_id}")
    return self._json_or_raise(response, job_id=job_id)

  async def wait_for_completion(self, job_id: str, *, timeout_seconds: float | None = None, on_progress: Callable[[dict[str, Any]], None] | None = None) -> dict[str, Any]:
    """Poll on a fixed interval until the job is terminal and return the final snapshot.

    Raises:
      JobNotFoundError: The job id is unknown.
      PhaseRegressionError: A poll reported an earlier phase than one already seen.
      TimeoutError: The job did not finish within `timeout_seconds`.
    """
    deadline = time.monotonic() + timeout_seconds if timeout_seconds is not None else None
    last_phase: str | None = None
    while True:
      snapshot = await self.get_status(job_id)
      phase = str(snapshot.get("phase"))
      self._check_progression(job_id, last_phase, phase)
      last_phase = phase
      if on_progress is not None:
        on_progress(snapshot)
      if phase in TERMINAL_PHASES:
        return snapshot
      if deadline is not None and time.monotonic() >= deadline:
        raise TimeoutError(f"Job {job_id} still at phase {phase} after {timeout_seconds}s")
      await self._sleep(self._poll_interval_seconds)

  def _check_progression(self, job_id: str, previous: str | None, current: str) -> None:
    if previous is None or current == "error" or previous == current:
      return
    if previous == "error":
      raise PhaseRegressionError(job_id, previous, current)
    if phase_index(current) < phase_index(previous):
      raise PhaseRegressionError(job_id, previous, current)

  def _json_or_raise(self, response: httpx.Response, *, job_id: str | None) -> dict[str, Any]:
    if response.status_code == 404 and job_id is not None:
      raise JobNotFoundError(job_id)
    try:
      response.raise_for_status()
    except httpx.HTTPStatusError as exc:
      logger.warning("Job status request failed status=%s url=%s", exc.response.status_code, exc.request.url)
      raise JobStatusError(f"Job service returned {exc.response.status_code}") from exc
    body = response.json()
    if not isinstance(body, dict):
      raise JobStatusError("Job service returned a non-object payload")
    return body
