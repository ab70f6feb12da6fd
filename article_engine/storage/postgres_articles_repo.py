"""Postgres-backed article materialization using SQLAlchemy."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from article_engine.core.database import get_session_factory
from article_engine.schema.articles import Article
from article_engine.storage.articles_repo import ArticleMaterializer, ArticleRecord
from article_engine.storage.jobs_repo import PersistenceError
from article_engine.utils.db_retry import classify_db_failure


class PostgresArticleMaterializer(ArticleMaterializer):
  """Write articles produced by generation jobs to Postgres."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def materialize(self, record: ArticleRecord) -> str:
    try:
      async with self._session_factory() as session:
        # One article per job; a resumed job reuses the row written before the restart.
        existing = (await session.execute(select(Article.article_id).where(Article.job_id == record.job_id))).scalar_one_or_none()
        if existing is not None:
          return existing
        session.add(
          Article(
            article_id=record.article_id,
            topic_id=record.topic_id,
            job_id=record.job_id,
            title=record.title,
            slug=record.slug,
            meta_description=record.meta_description,
            content=record.content,
            status=record.status,
            word_count=record.word_count,
            reading_time_minutes=record.reading_time_minutes,
            seo_score=record.seo_score,
            provider_used=record.provider_used,
            generation_cost=record.generation_cost,
            metadata_json=record.metadata,
          )
        )
        await session.commit()
        return record.article_id
    except (SQLAlchemyError, OSError) as exc:
      classification = classify_db_failure(exc)
      raise PersistenceError(f"Article materialization failed: {classification.reason}", retryable=classification.retryable) from exc

  async def get_article(self, article_id: str) -> ArticleRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Article, article_id)
      if row is None:
        return None
      return ArticleRecord(
        article_id=row.article_id,
        job_id=row.job_id,
        title=row.title,
        slug=row.slug,
        content=row.content,
        status=row.status,
        word_count=row.word_count,
        reading_time_minutes=row.reading_time_minutes,
        topic_id=row.topic_id,
        meta_description=row.meta_description,
        seo_score=row.seo_score,
        provider_used=row.provider_used,
        generation_cost=row.generation_cost,
        metadata=row.metadata_json or {},
        created_at=row.created_at,
      )
