"""Health check endpoints for liveness and readiness probes."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db
from src.api.schemas.common import HealthResponse, ServiceStatus

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Liveness check endpoint (always returns 200 OK).

    Returns immediately without checking dependencies.
    """
    logger.debug("health_check: status=ok")
    return HealthResponse(status="ok", version="0.1.0")


@router.get("/ready", response_model=HealthResponse)
async def readiness_check(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> HealthResponse:
    """
    Readiness check endpoint with dependency health status.

    The database must answer; Redis (Celery broker) and the outbound router are
    reported but only degrade the status.

    Raises:
        HTTPException: 503 if database is unavailable.
    """
    services: dict[str, ServiceStatus] = {}

    try:
        await db.execute(text("SELECT 1"))
        services["database"] = ServiceStatus(status="connected")
    except Exception as e:
        logger.warning("readiness_check: database=error, error=%s", str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database service unavailable",
        )

    degraded = False
    redis_client = getattr(request.app.state, "redis", None)
    if redis_client is not None:
        redis_error: Optional[str] = None
        try:
            await redis_client.ping()
            services["redis"] = ServiceStatus(status="connected")
        except Exception as e:
            redis_error = str(e)
            degraded = True
            logger.warning("readiness_check: redis=unavailable, error=%s", redis_error)
            services["redis"] = ServiceStatus(status="unavailable", error=redis_error)

    outbound_router = getattr(request.app.state, "outbound_router", None)
    if outbound_router is not None:
        if outbound_router.is_running:
            services["outbound_router"] = ServiceStatus(status="running")
        else:
            degraded = True
            services["outbound_router"] = ServiceStatus(status="stopped")

    overall = "degraded" if degraded else "ok"
    logger.info("readiness_check: status=%s", overall)
    return HealthResponse(status=overall, version="0.1.0", services=services)
