"""Domain models for asynchronous article generation jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

JobStatus = Literal["pending", "generating", "failed", "ready"]
JobPhase = Literal["queued", "analyzing", "structuring", "writing", "optimizing", "finalizing", "completed", "error"]
ErrorClass = Literal["transient", "permanent", "rate_limited"]

CANCELLED_REASON = "cancelled"


@dataclass
class GenerationJob:
  """Represents one request to generate an article, tracked through phases."""

  job_id: str
  request_data: dict[str, Any]
  status: JobStatus
  phase: JobPhase
  percentage: int
  current_step: str
  created_at: str
  updated_at: str
  topic_id: str | None = None
  article_id: str | None = None
  provider_used: str | None = None
  cost: float | None = None
  total_tokens: int | None = None
  word_count: int | None = None
  seo_score: int | None = None
  attempts: int = 0
  max_attempts: int = 3
  estimated_duration_seconds: int | None = None
  error_reason: str | None = None
  error_message: str | None = None
  result_data: dict[str, Any] | None = None
  started_at: str | None = None
  completed_at: str | None = None

  @property
  def is_terminal(self) -> bool:
    return self.phase in ("completed", "error")

  @property
  def is_cancelled(self) -> bool:
    return self.phase == "error" and self.error_reason == CANCELLED_REASON


@dataclass
class ProviderAttempt:
  """Outcome of one provider invocation within a fallback sequence."""

  provider: str
  success: bool
  error_class: ErrorClass | None = None
  error: str | None = None
  tokens: int | None = None
  cost: float | None = None
  latency_ms: int = 0
  calls: int = 1

  def to_dict(self) -> dict[str, Any]:
    return {
      "provider": self.provider,
      "success": self.success,
      "errorClass": self.error_class,
      "error": self.error,
      "tokens": self.tokens,
      "cost": self.cost,
      "latencyMs": self.latency_ms,
      "calls": self.calls,
    }


@dataclass
class JobStats:
  """Counts of jobs grouped by lifecycle status."""

  by_status: dict[str, int] = field(default_factory=dict)

  @property
  def total(self) -> int:
    return sum(self.by_status.values())
