"""Health check endpoint.

The database is required. Redis only backs create idempotency keys, so
losing it degrades the service instead of taking it down.
"""

from __future__ import annotations

from fastapi import APIRouter

from quorum_escrow.infrastructure import redis_client
from quorum_escrow.infrastructure.database.engine import ping_db
from quorum_escrow.logging_config import get_logger
from quorum_escrow.schemas.escrow import HealthResponse

APP_VERSION = "0.1.0"

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


async def _probe(name: str, check) -> str:  # noqa: ANN001
    try:
        await check()
    except Exception as exc:
        logger.error("health.check_failed", dependency=name, error=str(exc))
        return f"unhealthy: {exc}"
    return "healthy"


async def _ping_redis() -> None:
    await redis_client.get_redis().ping()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="ok, degraded (Redis down) or unavailable (database down).",
)
async def health_check() -> HealthResponse:
    database = await _probe("database", ping_db)
    redis = await _probe("redis", _ping_redis)

    if database != "healthy":
        overall = "unavailable"
    elif redis != "healthy":
        overall = "degraded"
    else:
        overall = "ok"

    return HealthResponse(status=overall, version=APP_VERSION, database=database, redis=redis)
