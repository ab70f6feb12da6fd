"""Shared FastAPI dependencies for the process context and caller identity."""

from __future__ import annotations

import logging
import secrets

from fastapi import Header, HTTPException, Request, status

from article_engine.core.context import AppContext

logger = logging.getLogger(__name__)


def get_context(request: Request) -> AppContext:
  """Return the process-scoped context built by the lifespan."""
  context = getattr(request.app.state, "context", None)
  if context is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service is starting up.")
  return context


def get_caller_token(request: Request, x_session_id: str | None = Header(default=None)) -> str:
  """Identify the caller for rate limiting: session header first, then client address."""
  if x_session_id and x_session_id.strip():
    return f"session:{x_session_id.strip()}"
  host = request.client.host if request.client else "unknown"
  return f"ip:{host}"


def require_task_secret(request: Request, authorization: str | None = Header(default=None), x_article_engine_task_secret: str | None = Header(default=None)) -> None:
  """Guard internal maintenance endpoints with the shared task secret."""
  settings = get_context(request).settings
  # Secure-by-default: maintenance endpoints refuse when no secret is configured.
  if not settings.task_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task authentication is not configured.")
  shared_secret_valid = secrets.compare_digest((x_article_engine_task_secret or ""), settings.task_secret)
  bearer_valid = secrets.compare_digest((authorization or ""), f"Bearer {settings.task_secret}")
  if not shared_secret_valid and not bearer_valid:
    logger.warning("Unauthorized access attempt to %s", request.url.path)
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid task secret.")
