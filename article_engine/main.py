from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from article_engine.api.routes import jobs, tasks
from article_engine.config import get_settings
from article_engine.core.exceptions import global_exception_handler, http_exception_handler, persistence_exception_handler, rate_limit_exception_handler, request_validation_exception_handler
from article_engine.core.lifespan import lifespan
from article_engine.core.middleware import RequestLoggingMiddleware
from article_engine.services.rate_limit import RateLimitExceededError
from article_engine.storage.jobs_repo import PersistenceError

settings = get_settings()

app = FastAPI(title="article-engine", lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None if settings.environment in {"production", "prod"} else "/openapi.json")

app.add_middleware(CORSMiddleware, allow_origins=settings.allowed_origins, allow_credentials=True, allow_methods=["GET", "POST", "DELETE", "OPTIONS"], allow_headers=["content-type", "authorization", "x-session-id"], expose_headers=["content-length", "x-request-id", "retry-after"])


# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(RateLimitExceededError, rate_limit_exception_handler)
app.add_exception_handler(PersistenceError, persistence_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(jobs.router, prefix="/v1/jobs", tags=["jobs"])
app.include_router(tasks.router, prefix="/internal", tags=["tasks"])
