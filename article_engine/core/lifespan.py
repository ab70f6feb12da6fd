import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from article_engine.core.context import build_app_context
from article_engine.core.database import dispose_engine
from article_engine.core.logging import _initialize_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Build the process context, resume unfinished jobs and tear both down on exit."""
  from article_engine.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("article_engine.core.lifespan")

  # Initialize logging with configured settings.
  _initialize_logging(settings)
  logger.info("Startup complete - logging verified.")

  context = build_app_context(settings)
  app.state.context = context
  logger.info("Job store backend=%s dsn=%s providers=%s", settings.job_store_backend, _redact_dsn(settings.pg_dsn), ",".join(context.engine.available_providers) or "<none>")

  if settings.resume_on_startup and settings.jobs_auto_process:
    try:
      await context.dispatcher.resume_active(context.store)
    except Exception:  # noqa: BLE001
      # A cold store must not keep the API from serving polls; resume happens on the next start.
      logger.error("Failed to resume unfinished jobs at startup.", exc_info=True)

  try:
    yield
  finally:
    # Running workers are cancelled; their jobs resume from the store on the next start.
    await context.aclose()
    await dispose_engine()
    logger.info("Shutdown complete.")


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  # Provide a stable placeholder when the DSN is missing.
  if not raw:
    return "<unset>"

  # Parse the DSN so we can safely strip credentials.
  parsed = urlparse(raw)
  # Guard against malformed DSNs without a scheme.
  if not parsed.scheme:
    return "<invalid>"

  # Build a sanitized netloc with username and host metadata only.
  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
