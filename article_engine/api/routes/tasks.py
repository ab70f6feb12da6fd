from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status

from article_engine.api.deps import get_context, require_task_secret
from article_engine.api.models import CleanupResponse
from article_engine.core.context import AppContext
from article_engine.services.jobs import run_cleanup

router = APIRouter(prefix="/jobs", tags=["tasks"], dependencies=[Depends(require_task_secret)])
logger = logging.getLogger(__name__)


@router.post("/cleanup", response_model=CleanupResponse, status_code=status.HTTP_200_OK)
async def cleanup_jobs(context: Annotated[AppContext, Depends(get_context)]) -> CleanupResponse:
  """Delete finished jobs older than the retention window; invoked by a scheduler."""
  result = await run_cleanup(context)
  logger.info("Cleanup task deleted %d job(s).", result.deleted)
  return result
