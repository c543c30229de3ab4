"""FastAPI middleware for request tracing, error handling, and CORS.

Middleware stack, outermost first:
    1. RequestIDMiddleware binds X-Request-ID and the caller identity to the log context.
    2. ErrorHandlerMiddleware turns EscrowError into {"error", "message"} JSON with a
       status chosen by the error category (see status_code_for).
    3. CORSMiddleware for browser wallet clients.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from quorum_escrow.config import get_settings
from quorum_escrow.domain.exceptions import (
    DuplicateOperationError,
    EscrowAuthorizationError,
    EscrowError,
    EscrowNotFoundError,
    EscrowResourceError,
    EscrowStateConflictError,
    EscrowValidationError,
    InsufficientCallerBalanceError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# 1. Request ID Middleware
# ---------------------------------------------------------------------------
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Inject a unique X-Request-ID into every request for log correlation."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            caller=request.headers.get("X-Caller-Identity"),
        )

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# ---------------------------------------------------------------------------
# 2. Error Handler Middleware
# ---------------------------------------------------------------------------
def status_code_for(exc: EscrowError) -> int:
    """HTTP status for a domain error, chosen by its category."""
    if isinstance(exc, EscrowNotFoundError):
        return 404
    if isinstance(exc, EscrowValidationError):
        return 422
    if isinstance(exc, EscrowAuthorizationError):
        return 403
    if isinstance(exc, InsufficientCallerBalanceError):
        return 402
    if isinstance(exc, (EscrowStateConflictError, EscrowResourceError, DuplicateOperationError)):
        return 409
    return 400


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch domain exceptions and return structured JSON error responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except EscrowError as exc:
            status_code = status_code_for(exc)
            logger.warning(
                "escrow.rejected",
                code=exc.code,
                error=exc.message,
                status_code=status_code,
            )
            return JSONResponse(
                status_code=status_code,
                content={"error": exc.code, "message": exc.message},
            )
        except Exception as exc:
            logger.exception("unhandled.error", error=str(exc))
            return JSONResponse(
                status_code=500,
                content={
                    "error": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                },
            )


# ---------------------------------------------------------------------------
# Setup function
# ---------------------------------------------------------------------------
def setup_middleware(app: FastAPI) -> None:
    """Register all middleware on the FastAPI application.

    Order matters: middleware is applied bottom-up, so the last added
    middleware runs first.
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_settings().cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(ErrorHandlerMiddleware)

    app.add_middleware(RequestIDMiddleware)
