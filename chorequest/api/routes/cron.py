"""
Scheduler-invoked endpoints for recurring quest generation and expiration.
Guarded by the shared cron secret sent as a bearer token.
"""

import time
from typing import Any, Awaitable, Callable, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from chorequest.api.dependencies import get_database, require_cron_secret
from chorequest.models.base import utc_now
from chorequest.services.recurring_quest_generator import RecurringQuestGenerator

logger = structlog.get_logger(__name__)

router = APIRouter(dependencies=[Depends(require_cron_secret)])


async def _run_job(
    name: str,
    job: Callable[[], Awaitable[Dict[str, Any]]],
) -> JSONResponse:
    start = time.perf_counter()
    logger.info("Cron job started", job=name)

    result = await job()
    duration_ms = int((time.perf_counter() - start) * 1000)

    logger.info(
        "Cron job finished",
        job=name,
        success=result["success"],
        errors=len(result["errors"]),
        duration_ms=duration_ms,
    )

    return JSONResponse(
        status_code=200 if result["success"] else 500,
        content={
            **result,
            "timestamp": utc_now().isoformat(),
            "duration": duration_ms,
        },
    )


@router.api_route("/generate-quests", methods=["GET", "POST"])
async def generate_quests(db: AsyncSession = Depends(get_database)):
    """Create this cycle's instances for every active recurring template."""
    return await _run_job("generate-quests", RecurringQuestGenerator(db).generate)


@router.api_route("/expire-quests", methods=["GET", "POST"])
async def expire_quests(db: AsyncSession = Depends(get_database)):
    """Mark overdue quests MISSED or EXPIRED and break streaks."""
    return await _run_job("expire-quests", RecurringQuestGenerator(db).expire)
