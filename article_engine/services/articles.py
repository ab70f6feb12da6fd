"""Article materialization from finished generation jobs."""

from __future__ import annotations

import logging

from article_engine.jobs.models import GenerationJob
from article_engine.services.content import ParsedArticle, content_metadata, slugify
from article_engine.storage.articles_repo import ArticleMaterializer, ArticleRecord
from article_engine.utils.ids import generate_article_id

logger = logging.getLogger(__name__)

EDITORIAL_STATUS = "ready_for_editorial"


def build_article_record(job: GenerationJob, parsed: ParsedArticle, *, seo_score: int | None, provider_used: str | None, cost: float | None) -> ArticleRecord:
  metadata = content_metadata(parsed.content)
  return ArticleRecord(
    article_id=generate_article_id(),
    job_id=job.job_id,
    title=parsed.title,
    slug=slugify(parsed.title),
    content=parsed.content,
    status=EDITORIAL_STATUS,
    word_count=metadata.word_count,
    reading_time_minutes=metadata.reading_time_minutes,
    topic_id=job.topic_id,
    meta_description=parsed.meta_description or None,
    seo_score=seo_score,
    provider_used=provider_used,
    generation_cost=cost,
    metadata={"headings": metadata.headings, "sections": metadata.sections, "template": (job.request_data.get("topic") or {}).get("template")},
  )


async def materialize_article(materializer: ArticleMaterializer, job: GenerationJob, parsed: ParsedArticle, *, seo_score: int | None, provider_used: str | None, cost: float | None) -> str:
  """Persist the article for a job and return its id."""
  record = build_article_record(job, parsed, seo_score=seo_score, provider_used=provider_used, cost=cost)
  article_id = await materializer.materialize(record)
  logger.info("Article %s materialized for job %s (%d words).", article_id, job.job_id, record.word_count)
  return article_id
