"""Background processor driving one generation job through its phases."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from article_engine.ai.fallback import ProviderFallbackEngine
from article_engine.ai.prompts import ArticleBrief, build_brief, build_outline, build_prompt
from article_engine.ai.providers.base import GenerationOptions
from article_engine.config import Settings
from article_engine.jobs.models import GenerationJob
from article_engine.jobs.phases import IllegalPhaseTransitionError, PhaseFailed, PhaseOutcome, PhaseSucceeded, is_terminal, next_phase
from article_engine.jobs.progress import JobCancelledError, JobPersistenceFailedError, JobProgressTracker
from article_engine.services.articles import materialize_article
from article_engine.services.content import count_words, parse_generated_content, seo_score
from article_engine.storage.articles_repo import ArticleMaterializer
from article_engine.storage.jobs_repo import JobStore, PersistenceError
from article_engine.utils.db_retry import execute_with_retry

logger = logging.getLogger(__name__)

MAX_ATTEMPTS_REASON = "max_attempts_exceeded"
GENERATION_FAILED_REASON = "generation_failed"
INVALID_REQUEST_REASON = "invalid_request"
INTERNAL_ERROR_REASON = "internal_error"
MATERIALIZATION_FAILED_REASON = "materialization_failed"


@dataclass
class PhaseResult:
  """Outcome of one phase's work plus the fields to persist with the next transition."""

  outcome: PhaseOutcome
  fields: dict[str, Any] = field(default_factory=dict)


def noop_phases(brief: ArticleBrief) -> frozenset[str]:
  """Phases whose work has nothing to do for this request."""
  phases = set()
  if brief.outline:
    phases.add("structuring")
  if not brief.optimize_for_seo:
    phases.add("optimizing")
  return frozenset(phases)


class GenerationWorker:
  """Runs the phase pipeline for generation jobs, reading and writing only through the store."""

  def __init__(self, *, store: JobStore, engine: ProviderFallbackEngine, materializer: ArticleMaterializer, settings: Settings, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep) -> None:
    self._store = store
    self._engine = engine
    self._materializer = materializer
    self._settings = settings
    self._sleep = sleep

  async def run(self, job_id: str) -> GenerationJob | None:
    """Drive a job from its last persisted phase to a terminal phase."""
    job = await self._store.get_job(job_id)
    if job is None:
      logger.warning("Worker skipped job %s: not found.", job_id)
      return None
    if is_terminal(job.phase):
      return job

    brief = build_brief(job.request_data)
    skip = self._settings.skippable_phases & noop_phases(brief)
    tracker = JobProgressTracker(job=job, store=self._store, skip=skip, persist_max_attempts=self._settings.persist_max_attempts, sleep=self._sleep)

    try:
      job = await tracker.start()
      if job.attempts > job.max_attempts:
        return await tracker.fail(reason=MAX_ATTEMPTS_REASON, message=f"Job exceeded {job.max_attempts} attempts")
      return await self._drive(tracker, brief)
    except JobCancelledError:
      logger.info("Job %s was cancelled; discarding in-flight results.", job_id)
    except JobPersistenceFailedError:
      # Already reported by the tracker; the job stays at its last persisted phase.
      pass
    except Exception as exc:  # noqa: BLE001
      logger.error("Worker crashed for job %s at phase %s", job_id, tracker.phase, exc_info=True)
      await self._fail_quietly(tracker, INTERNAL_ERROR_REASON, f"Unexpected worker error: {type(exc).__name__}")
    return await self._store.get_job(job_id)

  async def _drive(self, tracker: JobProgressTracker, brief: ArticleBrief) -> GenerationJob:
    results: dict[str, Any] = dict(tracker.job.result_data or {})
    while not is_terminal(tracker.phase):
      # Cooperative cancellation is honored at every phase boundary.
      await tracker.ensure_not_cancelled()
      current = tracker.phase
      result = await self._run_phase(current, tracker, brief, results)
      target = next_phase(current, result.outcome, skip=tracker.skip)

      if isinstance(result.outcome, PhaseFailed):
        return await tracker.fail(reason=result.outcome.reason, message=result.outcome.message, **result.fields)
      if target == "completed":
        return await tracker.complete(**result.fields)
      await tracker.enter(target, **result.fields)
    return tracker.job

  async def _run_phase(self, phase: str, tracker: JobProgressTracker, brief: ArticleBrief, results: dict[str, Any]) -> PhaseResult:
    if phase == "queued":
      return PhaseResult(PhaseSucceeded())
    if phase == "analyzing":
      return self._analyze(brief, results)
    if phase == "structuring":
      results["outline"] = list(build_outline(brief))
      return PhaseResult(PhaseSucceeded(), {"result_data": dict(results)})
    if phase == "writing":
      return await self._write(tracker, brief, results)
    if phase == "optimizing":
      return self._optimize(brief, results)
    if phase == "finalizing":
      return await self._finalize(tracker, brief, results)
    raise ValueError(f"No work defined for phase {phase}")

  def _analyze(self, brief: ArticleBrief, results: dict[str, Any]) -> PhaseResult:
    if not brief.title:
      return PhaseResult(PhaseFailed(INVALID_REQUEST_REASON, "Topic title is required"))
    candidates = self._engine.candidates_for(pinned=brief.preferred_provider, template=brief.template)
    results["analysis"] = {"keywords": list(brief.keywords), "targetWordCount": brief.target_word_count, "candidates": candidates}
    return PhaseResult(PhaseSucceeded(), {"result_data": dict(results)})

  async def _write(self, tracker: JobProgressTracker, brief: ArticleBrief, results: dict[str, Any]) -> PhaseResult:
    outline = tuple(results.get("outline") or build_outline(brief))
    options = GenerationOptions(temperature=brief.temperature, max_tokens=brief.max_tokens)
    fallback = await self._engine.generate(build_prompt(brief, outline), options, pinned=brief.preferred_provider, template=brief.template, before_retry=tracker.ensure_not_cancelled)

    results["attempts"] = [attempt.to_dict() for attempt in fallback.attempts]
    results["usage"] = {"totalTokens": fallback.total_tokens, "cost": fallback.total_cost}
    if not fallback.success:
      error = fallback.error
      message = f"All providers failed: {error.message}" if error else "All providers failed"
      return PhaseResult(PhaseFailed(GENERATION_FAILED_REASON, message), {"result_data": dict(results)})

    results["content"] = fallback.content
    results["provider"] = fallback.final_provider
    return PhaseResult(PhaseSucceeded(), {"result_data": dict(results)})

  def _success_fields(self, results: dict[str, Any]) -> dict[str, Any]:
    """Result metadata promoted onto the job record, written only with the completion."""
    usage = results.get("usage") or {}
    seo = results.get("seo") or {}
    return {"provider_used": results.get("provider"), "total_tokens": usage.get("totalTokens"), "cost": usage.get("cost"), "seo_score": seo.get("score")}

  def _optimize(self, brief: ArticleBrief, results: dict[str, Any]) -> PhaseResult:
    parsed = parse_generated_content(results.get("content") or "")
    score = seo_score(parsed.content, brief.keywords)
    results["seo"] = {"score": score, "headings": parsed.headings}
    return PhaseResult(PhaseSucceeded(), {"result_data": dict(results)})

  async def _finalize(self, tracker: JobProgressTracker, brief: ArticleBrief, results: dict[str, Any]) -> PhaseResult:
    job = tracker.job
    parsed = parse_generated_content(results.get("content") or "")
    if not parsed.content:
      return PhaseResult(PhaseFailed(GENERATION_FAILED_REASON, "Generated content was empty"))

    success = self._success_fields(results)
    article_id = job.article_id
    if article_id is None:
      # A cancel that landed after the phase boundary must not leave an orphan article.
      await tracker.ensure_not_cancelled()

      async def _materialize() -> str:
        return await materialize_article(self._materializer, job, parsed, seo_score=success["seo_score"], provider_used=success["provider_used"], cost=success["cost"])

      try:
        article_id = await execute_with_retry(operation_name="article_materialize", func=_materialize, max_attempts=self._settings.persist_max_attempts, sleep=self._sleep)
      except PersistenceError as exc:
        logger.error("Article materialization failed for job %s", job.job_id, exc_info=True)
        return PhaseResult(PhaseFailed(MATERIALIZATION_FAILED_REASON, f"Article could not be saved: {exc}"))

    results["article"] = {"title": parsed.title, "metaDescription": parsed.meta_description}
    return PhaseResult(PhaseSucceeded(), {**success, "article_id": article_id, "word_count": count_words(parsed.content), "result_data": dict(results)})

  async def _fail_quietly(self, tracker: JobProgressTracker, reason: str, message: str) -> None:
    try:
      await tracker.fail(reason=reason, message=message)
    except (JobCancelledError, JobPersistenceFailedError, IllegalPhaseTransitionError):
      logger.error("Could not record failure for job %s", tracker.job.job_id, exc_info=True)
