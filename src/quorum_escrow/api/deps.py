"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database sessions,
services, the authenticated caller identity, and configuration.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Depends, Header, HTTPException

from quorum_escrow.config import Settings, get_settings
from quorum_escrow.infrastructure.database.engine import get_async_session
from quorum_escrow.services.escrow_service import EscrowService
from quorum_escrow.services.vault_service import VaultService

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from sqlalchemy.ext.asyncio import AsyncSession


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


async def get_escrow_service(
    session: AsyncSession = Depends(get_db_session),
) -> EscrowService:
    """Provide an EscrowService bound to the current session."""
    return EscrowService(session)


async def get_vault_service(
    session: AsyncSession = Depends(get_db_session),
) -> VaultService:
    """Provide a VaultService bound to the current session."""
    return VaultService(session)


def get_caller_identity(
    x_caller_identity: str | None = Header(default=None, max_length=64),
) -> str:
    """Return the caller identity the host has already authenticated.

    Signature checks happen in front of this service; the header carries
    the verified signer.
    """
    if not x_caller_identity:
        raise HTTPException(status_code=401, detail="X-Caller-Identity header is required")
    return x_caller_identity


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()
