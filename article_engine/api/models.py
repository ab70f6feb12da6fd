from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, field_validator
from pydantic.alias_generators import to_camel

from article_engine.jobs.models import JobPhase, JobStatus

ArticleLength = Literal["short", "medium", "long"]
ProviderName = Literal["anthropic", "openai", "google"]


class _CamelModel(BaseModel):
  """Base model exposing camelCase field names on the wire."""

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TopicPayload(_CamelModel):
  """Topic the article is written about."""

  id: StrictStr | None = Field(default=None, description="Optional topic identifier from the content calendar.")
  title: StrictStr = Field(min_length=1, max_length=300)
  keywords: list[StrictStr] | None = Field(default=None, description="Target keywords; derived from the title when omitted.")
  tone: StrictStr | None = None
  length: ArticleLength | None = None
  template: StrictStr | None = Field(default=None, description="Article template name used for provider routing.")
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

  @field_validator("title")
  @classmethod
  def title_not_blank(cls, value: str) -> str:
    if not value.strip():
      raise ValueError("Topic title must not be blank.")
    return value


class GenerationOptionsPayload(_CamelModel):
  """Sampling options forwarded to the provider."""

  temperature: float | None = Field(default=None, ge=0.0, le=2.0)
  max_tokens: StrictInt | None = Field(default=None, ge=1, le=32000)
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class JobCreateRequest(_CamelModel):
  """Request payload for creating an article generation job."""

  topic: TopicPayload
  optimize_for_seo: bool = Field(default=True, alias="optimizeForSEO")
  target_word_count: StrictInt | None = Field(default=None, ge=100, le=20000)
  preferred_provider: ProviderName | None = Field(default=None, description="Provider to try first; remaining providers follow the configured priority.")
  outline: list[StrictStr] | None = Field(default=None, description="Section headings to use instead of the generated outline.")
  options: GenerationOptionsPayload | None = None
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class JobCancelRequest(_CamelModel):
  """Request payload for cancelling a job by id."""

  job_id: StrictStr = Field(min_length=1)
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class JobCreateResponse(_CamelModel):
  """Response payload for job creation."""

  job_id: StrictStr
  status: JobStatus
  estimated_completion: StrictStr | None = Field(default=None, description="ISO timestamp of the expected completion.")


class JobError(_CamelModel):
  reason: StrictStr
  message: StrictStr | None = None


class JobMetadata(_CamelModel):
  """Result metadata populated as the job produces it."""

  topic_id: StrictStr | None = None
  provider_used: StrictStr | None = None
  cost: float | None = None
  total_tokens: StrictInt | None = None
  word_count: StrictInt | None = None
  seo_score: StrictInt | None = None
  attempts: StrictInt = 0
  max_attempts: StrictInt = 0
  provider_attempts: list[dict[str, Any]] | None = None
  created_at: StrictStr
  started_at: StrictStr | None = None
  completed_at: StrictStr | None = None


class JobSnapshot(_CamelModel):
  """Point-in-time view of a job as returned to pollers."""

  job_id: StrictStr
  status: JobStatus
  phase: JobPhase
  percentage: StrictInt = Field(ge=0, le=100)
  current_step: StrictStr
  estimated_time_remaining: StrictInt | None = Field(default=None, description="Seconds until the expected completion; absent once terminal.")
  article_id: StrictStr | None = None
  error: JobError | None = None
  metadata: JobMetadata | None = None


class JobCancelResponse(_CamelModel):
  ok: bool
  job: JobSnapshot


class ActiveJobsResponse(_CamelModel):
  jobs: list[JobSnapshot]


class JobStatsResponse(_CamelModel):
  """Counts of jobs grouped by status."""

  total: StrictInt
  by_status: dict[str, int]


class CleanupResponse(_CamelModel):
  deleted: StrictInt
  older_than: StrictStr
