"""
Health Check Endpoints

Liveness and readiness probes plus a dependency report.
"""

from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Response
from pydantic import BaseModel
from redis.exceptions import RedisError

from storefront.config import get_settings
from storefront.database.connection import check_database_health
from storefront.database.models import utcnow
from storefront.serving.cache import get_redis

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


async def _redis_health() -> Dict[str, Any]:
    redis = get_redis()
    if redis is None:
        return {"status": "disabled"}
    try:
        await redis.ping()
    except (RedisError, OSError) as e:
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy"}


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Dependency health.

    The database is required; Redis is optional, so a Redis failure only
    degrades the reported status.
    """
    settings = get_settings()
    checks = {
        "database": await check_database_health(),
        "redis": await _redis_health(),
    }

    overall_status = "healthy"
    if checks["database"]["status"] != "healthy":
        overall_status = "unhealthy"
    elif checks["redis"]["status"] == "unhealthy":
        overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        version=settings.version,
        environment=settings.app_env,
        timestamp=utcnow(),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(response: Response) -> Dict[str, str]:
    """200 once the database answers, 503 otherwise."""
    db_health = await check_database_health()
    if db_health.get("status") != "healthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "database_unavailable"}
    return {"status": "ready"}
