"""Storage interfaces for materialized articles."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass
class ArticleRecord:
  """Article produced from a successful generation job."""

  article_id: str
  job_id: str
  title: str
  slug: str
  content: str
  status: str
  word_count: int
  reading_time_minutes: int
  topic_id: str | None = None
  meta_description: str | None = None
  seo_score: int | None = None
  provider_used: str | None = None
  generation_cost: float | None = None
  metadata: dict[str, Any] = field(default_factory=dict)
  created_at: str | None = None


class ArticleMaterializer(Protocol):
  """Turns generated content into a persisted article."""

  async def materialize(self, record: ArticleRecord) -> str:
    """Persist the article and return its id; repeated calls for one job return the first id."""

  async def get_article(self, article_id: str) -> ArticleRecord | None:
    """Fetch an article by identifier."""


class InMemoryArticleMaterializer(ArticleMaterializer):
  """Keep articles in a dict for development and tests."""

  def __init__(self) -> None:
    self._articles: dict[str, ArticleRecord] = {}

  async def materialize(self, record: ArticleRecord) -> str:
    for existing in self._articles.values():
      if existing.job_id == record.job_id:
        return existing.article_id
    self._articles[record.article_id] = copy.deepcopy(record)
    return record.article_id

  async def get_article(self, article_id: str) -> ArticleRecord | None:
    record = self._articles.get(article_id)
    return copy.deepcopy(record) if record is not None else None
