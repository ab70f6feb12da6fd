"""Create generation jobs and articles tables.

Revision ID: a1c4e2f9b7d3
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "a1c4e2f9b7d3"
down_revision = None
branch_labels = None
depends_on = None

_UTC_NOW_ISO = sa.text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "generation_jobs",
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("topic_id", sa.String(), nullable=True),
    sa.Column("article_id", sa.String(), nullable=True),
    sa.Column("request_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("phase", sa.String(), nullable=False),
    sa.Column("percentage", sa.Integer(), nullable=False),
    sa.Column("current_step", sa.Text(), nullable=False),
    sa.Column("provider_used", sa.String(), nullable=True),
    sa.Column("cost", sa.Float(), nullable=True),
    sa.Column("total_tokens", sa.Integer(), nullable=True),
    sa.Column("word_count", sa.Integer(), nullable=True),
    sa.Column("seo_score", sa.Integer(), nullable=True),
    sa.Column("attempts", sa.Integer(), nullable=False),
    sa.Column("max_attempts", sa.Integer(), nullable=False),
    sa.Column("estimated_duration_seconds", sa.Integer(), nullable=True),
    sa.Column("error_reason", sa.String(), nullable=True),
    sa.Column("error_message", sa.Text(), nullable=True),
    sa.Column("result_json", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("created_at", sa.String(), server_default=_UTC_NOW_ISO, nullable=False),
    sa.Column("updated_at", sa.String(), server_default=_UTC_NOW_ISO, nullable=False),
    sa.Column("started_at", sa.String(), nullable=True),
    sa.Column("completed_at", sa.String(), nullable=True),
    sa.PrimaryKeyConstraint("job_id"),
  )
  op.create_index(op.f("ix_generation_jobs_topic_id"), "generation_jobs", ["topic_id"], unique=False)
  op.create_index(op.f("ix_generation_jobs_status"), "generation_jobs", ["status"], unique=False)
  op.create_index("ix_generation_jobs_active", "generation_jobs", ["created_at"], unique=False, postgresql_where=sa.text("phase NOT IN ('completed', 'error')"))
  op.create_index("ix_generation_jobs_terminal_completed_at", "generation_jobs", ["completed_at"], unique=False, postgresql_where=sa.text("phase IN ('completed', 'error')"))

  op.create_table(
    "articles",
    sa.Column("article_id", sa.String(), nullable=False),
    sa.Column("topic_id", sa.String(), nullable=True),
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("title", sa.Text(), nullable=False),
    sa.Column("slug", sa.String(), nullable=False),
    sa.Column("meta_description", sa.Text(), nullable=True),
    sa.Column("content", sa.Text(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("word_count", sa.Integer(), nullable=False),
    sa.Column("reading_time_minutes", sa.Integer(), nullable=False),
    sa.Column("seo_score", sa.Integer(), nullable=True),
    sa.Column("provider_used", sa.String(), nullable=True),
    sa.Column("generation_cost", sa.Float(), nullable=True),
    sa.Column("metadata_json", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("created_at", sa.String(), server_default=_UTC_NOW_ISO, nullable=False),
    sa.PrimaryKeyConstraint("article_id"),
    sa.UniqueConstraint("job_id"),
  )
  op.create_index(op.f("ix_articles_topic_id"), "articles", ["topic_id"], unique=False)
  op.create_index(op.f("ix_articles_slug"), "articles", ["slug"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index(op.f("ix_articles_slug"), table_name="articles")
  op.drop_index(op.f("ix_articles_topic_id"), table_name="articles")
  op.drop_table("articles")
  op.drop_index("ix_generation_jobs_terminal_completed_at", table_name="generation_jobs")
  op.drop_index("ix_generation_jobs_active", table_name="generation_jobs")
  op.drop_index(op.f("ix_generation_jobs_status"), table_name="generation_jobs")
  op.drop_index(op.f("ix_generation_jobs_topic_id"), table_name="generation_jobs")
  op.drop_table("generation_jobs")
