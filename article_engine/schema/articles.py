from __future__ import annotations

from sqlalchemy import Float, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from article_engine.core.database import Base


class Article(Base):
  __tablename__ = "articles"

  article_id: Mapped[str] = mapped_column(String, primary_key=True)
  topic_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  job_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
  title: Mapped[str] = mapped_column(Text, nullable=False)
  slug: Mapped[str] = mapped_column(String, nullable=False, index=True)
  meta_description: Mapped[str | None] = mapped_column(Text, nullable=True)
  content: Mapped[str] = mapped_column(Text, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False)
  word_count: Mapped[int] = mapped_column(Integer, nullable=False)
  reading_time_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
  seo_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
  provider_used: Mapped[str | None] = mapped_column(String, nullable=True)
  generation_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
  metadata_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')"""))
