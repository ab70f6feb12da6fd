"""Factory helpers for storage backends."""

from __future__ import annotations

import logging

from article_engine.config import Settings
from article_engine.storage.articles_repo import ArticleMaterializer, InMemoryArticleMaterializer
from article_engine.storage.jobs_repo import JobStore
from article_engine.storage.memory_jobs_repo import InMemoryJobStore

logger = logging.getLogger(__name__)


def build_job_store(settings: Settings) -> JobStore:
  """Return the job store selected by configuration."""
  if settings.job_store_backend == "memory":
    logger.warning("Using the in-memory job store; job progress will not survive a restart.")
    return InMemoryJobStore()

  from article_engine.storage.postgres_jobs_repo import PostgresJobStore

  return PostgresJobStore()


def build_article_materializer(settings: Settings) -> ArticleMaterializer:
  """Return the article materializer matching the job store backend."""
  if settings.job_store_backend == "memory":
    return InMemoryArticleMaterializer()

  from article_engine.storage.postgres_articles_repo import PostgresArticleMaterializer

  return PostgresArticleMaterializer()
