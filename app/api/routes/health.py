"""
Health Check Endpoints

Health, readiness and liveness probes. PostgreSQL is required for
readiness; Redis only backs the inventory cache, so losing it marks the
service degraded without taking it out of rotation.
"""

import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.config import settings
from app.infra.database import check_db_health
from app.infra.redis import check_redis_health

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])

API_VERSION = "1.0.0"

# Track application start time for uptime calculation
_start_time: Optional[datetime] = None


def set_start_time() -> None:
    """Set application start time. Called once on startup."""
    global _start_time
    _start_time = datetime.now(timezone.utc)


def get_uptime_seconds() -> Optional[float]:
    """Get application uptime in seconds."""
    if _start_time is None:
        return None
    return (datetime.now(timezone.utc) - _start_time).total_seconds()


class HealthResponse(BaseModel):
    """Basic health check response."""
    status: str
    timestamp: datetime
    version: str
    environment: str


class ReadyResponse(BaseModel):
    """Readiness check response with dependency status."""
    status: str
    timestamp: datetime
    checks: dict[str, str]


class LiveResponse(BaseModel):
    """Liveness check response."""
    status: str
    timestamp: datetime
    uptime_seconds: Optional[float] = None


async def _run_check(name: str, check: Callable[[], Awaitable[bool]]) -> str:
    try:
        ok = await check()
    except Exception as e:
        logger.error(f"Readiness check: {name} error - {e}")
        return "error"
    if not ok:
        logger.warning(f"Readiness check: {name} unhealthy")
    return "ok" if ok else "failed"


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
    description="Returns 200 if the application is running. Does not check dependencies.",
)
async def health() -> HealthResponse:
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version=API_VERSION,
        environment=settings.app_env,
    )


@router.get(
    "/ready",
    response_model=ReadyResponse,
    summary="Readiness probe",
    description="Checks the database (required), Redis and extractor configuration (optional).",
    responses={
        200: {"description": "Ready (possibly degraded)"},
        503: {"description": "The database is unavailable"},
    },
)
async def ready() -> ReadyResponse:
    """
    Readiness probe for load balancers and Kubernetes.

    Checks:
    - PostgreSQL connectivity (503 when it fails)
    - Redis connectivity (degraded when it fails)
    - Anthropic API key present (degraded when missing; turns fail with AI_ERROR)
    """
    checks = {
        "database": await _run_check("database", check_db_health),
        "redis": await _run_check("redis", check_redis_health),
        "extractor": "ok" if settings.extraction_configured else "not_configured",
    }

    if checks["database"] != "ok":
        response = ReadyResponse(
            status="not_ready",
            timestamp=datetime.now(timezone.utc),
            checks=checks,
        )
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(mode="json"),
        )

    degraded = any(v != "ok" for v in checks.values())
    return ReadyResponse(
        status="degraded" if degraded else "ready",
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )


@router.get(
    "/live",
    response_model=LiveResponse,
    status_code=status.HTTP_200_OK,
    summary="Liveness probe",
    description="Returns 200 if the process is alive. Used for container restart decisions.",
)
async def live() -> LiveResponse:
    return LiveResponse(
        status="alive",
        timestamp=datetime.now(timezone.utc),
        uptime_seconds=get_uptime_seconds(),
    )
