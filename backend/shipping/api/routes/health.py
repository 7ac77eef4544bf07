"""
Health check endpoints.
"""
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from shipping.core.config import settings
from shipping.core.database import get_db
from shipping.core.metrics import update_service_health
from shipping.core.redis import redis_client

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict:
    """Basic health check."""
    return {"status": "healthy", "version": settings.APP_VERSION}


@router.get("/health/detailed")
async def detailed_health_check(
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Detailed health check including dependencies."""
    checks = {
        "api": "healthy",
        "database": "unknown",
        "redis": "unknown",
    }

    # Check database
    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        checks["database"] = f"unhealthy: {str(e)}"
    update_service_health("database", checks["database"] == "healthy")

    # Check Redis (cache only; degraded, not down, when missing)
    if await redis_client.health_check():
        checks["redis"] = "healthy"
    else:
        checks["redis"] = "unhealthy"
    update_service_health("redis", checks["redis"] == "healthy")

    overall = "healthy" if all(
        v == "healthy" for v in checks.values()
    ) else "degraded"

    return {"status": overall, "checks": checks}
