"""Health check endpoints."""

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from smart_cart_recovery.core.config import settings
from smart_cart_recovery.core.deps import get_db, get_redis
from smart_cart_recovery.schemas.common import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
) -> HealthResponse:
    """
    Health check endpoint.

    Checks database and cart store connectivity and returns service status.
    """
    health_status = HealthResponse(
        status="healthy",
        version=settings.version,
        environment=settings.environment,
        checks={},
    )

    # Check database connection
    try:
        await db.execute(text("SELECT 1"))
        health_status.checks["database"] = "healthy"
    except SQLAlchemyError as e:
        health_status.status = "unhealthy"
        health_status.checks["database"] = f"unhealthy: {str(e)}"

    # Check Redis connection (broker and live carts)
    try:
        await redis.ping()
        health_status.checks["redis"] = "healthy"
    except aioredis.RedisError as e:
        health_status.status = "unhealthy"
        health_status.checks["redis"] = f"unhealthy: {str(e)}"

    return health_status


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """
    Liveness probe for Kubernetes/container orchestration.

    Simple check that the service is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(
    db: AsyncSession = Depends(get_db),
) -> dict[str, str]:
    """
    Readiness probe for Kubernetes/container orchestration.

    Checks if the service is ready to receive traffic.
    """
    # Check database
    await db.execute(text("SELECT 1"))

    return {"status": "ready"}
