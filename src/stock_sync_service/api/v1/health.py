"""Health check endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from stock_sync_service import __version__
from stock_sync_service.config import Settings, get_settings
from stock_sync_service.infrastructure.redis import RedisStateStore, get_redis_client

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str
    timestamp: str
    feed_configured: bool
    sync_enabled: bool


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    ready: bool
    checks: dict[str, bool]


async def check_state_store() -> bool:
    client = await get_redis_client()
    if client is None:
        return False
    return await RedisStateStore(client).ping()


@router.get("/health", response_model=HealthResponse)
async def health_check(settings: Settings = Depends(get_settings)) -> HealthResponse:
    """
    Basic health check endpoint.

    Returns the service status, version and whether a feed is configured.
    """
    return HealthResponse(
        status="healthy",
        version=__version__,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc).isoformat(),
        feed_configured=bool(settings.feed_url.strip()),
        sync_enabled=settings.sync_enabled,
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(
    state_store_ok: bool = Depends(check_state_store),
) -> ReadinessResponse:
    """
    Readiness check endpoint.

    The service can only start and track jobs while the state store answers.
    """
    checks = {"state_store": state_store_ok}
    return ReadinessResponse(ready=all(checks.values()), checks=checks)


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """Returns 200 while the process is up."""
    return {"status": "alive"}
