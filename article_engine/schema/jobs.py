from __future__ import annotations

from sqlalchemy import Float, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from article_engine.core.database import Base

_UTC_NOW_ISO = text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")


class GenerationJobRow(Base):
  __tablename__ = "generation_jobs"
  __table_args__ = (
    Index("ix_generation_jobs_active", "created_at", postgresql_where=text("phase NOT IN ('completed', 'error')")),
    Index("ix_generation_jobs_terminal_completed_at", "completed_at", postgresql_where=text("phase IN ('completed', 'error')")),
  )

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  topic_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  article_id: Mapped[str | None] = mapped_column(String, nullable=True)
  request_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, index=True)
  phase: Mapped[str] = mapped_column(String, nullable=False)
  percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  current_step: Mapped[str] = mapped_column(Text, nullable=False)
  provider_used: Mapped[str | None] = mapped_column(String, nullable=True)
  cost: Mapped[float | None] = mapped_column(Float, nullable=True)
  total_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
  word_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
  seo_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
  attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
  estimated_duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
  error_reason: Mapped[str | None] = mapped_column(String, nullable=True)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  result_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)
  updated_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)
  started_at: Mapped[str | None] = mapped_column(String, nullable=True)
  completed_at: Mapped[str | None] = mapped_column(String, nullable=True)
