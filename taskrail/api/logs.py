"""Execution log query endpoints."""

import logging
from typing import AsyncGenerator, List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskrail.db import session as db_session
from taskrail.models.task_log import TaskLog
from taskrail.schemas.runs import TaskLogResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/runs", tags=["logs"])


async def get_log_session() -> AsyncGenerator[AsyncSession, None]:
    """Database session for the log store, or 503 when none is configured."""
    if db_session.async_session_maker is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Execution log storage is not configured"
        )
    async for session in db_session.get_db():
        yield session


@router.get("/{run_id}/logs", response_model=List[TaskLogResponse])
async def list_run_logs(run_id: str, db: AsyncSession = Depends(get_log_session)):
    """Secondary log records of one track or orchestrator run, oldest first."""
    query = select(TaskLog).where(TaskLog.job_id == run_id).order_by(TaskLog.created_at, TaskLog.id)
    result = await db.execute(query)
    logs = result.scalars().all()
    logger.debug(f"Found {len(logs)} log records for run {run_id}")
    return logs
