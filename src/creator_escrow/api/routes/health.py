"""Health check endpoint.

Verifies connectivity to the database and Redis and reports whether the
auto-release sweep is running. Used by Docker healthchecks, load balancers,
and monitoring systems.
"""

from __future__ import annotations

from fastapi import APIRouter
from sqlalchemy import text

from creator_escrow.infrastructure.database.engine import get_engine
from creator_escrow.infrastructure.redis_client import get_redis_or_none
from creator_escrow.logging_config import get_logger
from creator_escrow.orchestration.scheduler import scheduler_state
from creator_escrow.schemas.escrow import HealthResponse

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the application and its dependencies.",
)
async def health_check() -> HealthResponse:
    """Check connectivity to the database and Redis.

    Redis is optional: without it checkout idempotency is skipped and events
    go to the log, so a missing Redis degrades the service instead of failing it.
    """
    db_status = "unknown"
    redis_status = "unknown"

    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        db_status = "healthy"
    except Exception as exc:
        db_status = f"unhealthy: {exc}"
        logger.error("health.db_check_failed", error=str(exc))

    redis = get_redis_or_none()
    if redis is None:
        redis_status = "unavailable"
    else:
        try:
            await redis.ping()
            redis_status = "healthy"
        except Exception as exc:
            redis_status = f"unhealthy: {exc}"
            logger.error("health.redis_check_failed", error=str(exc))

    if db_status != "healthy":
        overall = "error"
    elif redis_status != "healthy":
        overall = "degraded"
    else:
        overall = "ok"

    return HealthResponse(
        status=overall,
        version="0.1.0",
        database=db_status,
        redis=redis_status,
        scheduler=scheduler_state(),
    )
