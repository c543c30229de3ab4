"""FastAPI application entry point for Quorum Escrow.

Lifecycle:
    1. Startup: Initialize logging, database, Redis, create tables (dev mode).
    2. Running: Serve REST API + MCP tools on a single Uvicorn process.
    3. Shutdown: Close database and Redis connections gracefully.

The MCP server is mounted at /mcp so agents can discover tools alongside the
REST API at /api/v1/*.

Run with:
    uvicorn quorum_escrow.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from quorum_escrow.config import get_settings
from quorum_escrow.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        debug=settings.app_debug,
        faucet=settings.faucet_active,
    )

    from quorum_escrow.infrastructure.database.engine import close_db, init_db

    await init_db()

    from quorum_escrow.infrastructure.redis_client import close_redis, init_redis

    # Redis only backs idempotency keys; creates still work without it.
    idempotency = True
    try:
        await init_redis()
    except Exception as exc:
        idempotency = False
        logger.warning("app.redis_unavailable", error=str(exc))

    logger.info(
        "app.started",
        host=settings.app_host,
        port=settings.app_port,
        idempotency=idempotency,
    )

    yield

    logger.info("app.shutting_down")
    await close_db()
    await close_redis()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory: creates and configures the FastAPI app."""
    from quorum_escrow.api.routes.health import APP_VERSION

    settings = get_settings()

    app = FastAPI(
        title="Quorum Escrow",
        description=(
            "Multi-approver custody of a single deposit. Funds release to the "
            "beneficiary once enough designated approvers consent."
        ),
        version=APP_VERSION,
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    from quorum_escrow.api.middleware import setup_middleware

    setup_middleware(app)

    from quorum_escrow.api.routes.accounts import router as accounts_router
    from quorum_escrow.api.routes.counter import router as counter_router
    from quorum_escrow.api.routes.escrow import router as escrow_router
    from quorum_escrow.api.routes.health import router as health_router

    app.include_router(health_router)
    app.include_router(counter_router)
    app.include_router(escrow_router)
    app.include_router(accounts_router)

    from quorum_escrow.mcp_server.tools import mcp

    mcp_app = mcp.sse_app()
    app.mount("/mcp", mcp_app)

    return app


# The app instance used by Uvicorn
app = create_app()
