"""Health check router — liveness + readiness.

Readiness pings the Redis broker the recalculation worker consumes from,
bounded by a short timeout so a missing broker degrades the probe instead
of hanging it.
"""

import asyncio

import redis
import structlog
from fastapi import APIRouter

from apps.api.core.config import settings

router = APIRouter(tags=["health"])
logger = structlog.get_logger()

REDIS_TIMEOUT_SECONDS = 2
DEFAULT_REDIS_URL = "redis://localhost:6379/0"


@router.get("/health")
async def health_liveness():
    """Liveness probe — 200 while the API process is running."""
    return {
        "status": "healthy",
        "service": "api",
        "version": settings.APP_VERSION if settings else "unknown",
    }


async def _ping_redis(url: str) -> str:
    client = redis.from_url(url, socket_connect_timeout=REDIS_TIMEOUT_SECONDS)
    loop = asyncio.get_running_loop()
    try:
        pong = await asyncio.wait_for(
            loop.run_in_executor(None, client.ping),
            timeout=REDIS_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        logger.warning("redis_health_timeout", timeout_s=REDIS_TIMEOUT_SECONDS)
        return "timeout"
    except redis.RedisError as e:
        logger.warning("redis_health_failed", error=str(e))
        return "down"
    return "up" if pong else "down"


@router.get("/health/ready")
async def health_readiness():
    """Readiness probe — Redis broker reachability and Supabase configuration."""
    services = {
        "api": "up",
        "redis": await _ping_redis(settings.REDIS_URL if settings else DEFAULT_REDIS_URL),
        "supabase": "configured" if settings and settings.SUPABASE_SERVICE_KEY else "unconfigured",
    }
    healthy = services["redis"] == "up" and services["supabase"] == "configured"
    return {"status": "healthy" if healthy else "degraded", "services": services}
