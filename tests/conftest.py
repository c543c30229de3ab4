"""Shared test fixtures for the Quorum Escrow test suite.

Provides:
    - An in-memory SQLite database (aiosqlite) with the full schema
    - Sessions, services and a ready-to-use counter + funded creator
    - Deterministic identities for the parties of an escrow
"""

from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from quorum_escrow.infrastructure.database.orm_models import Base
from quorum_escrow.services.escrow_service import EscrowService
from quorum_escrow.services.vault_service import VaultService

CREATOR = "CreatorWa11et1111111111111111111111111111111"
BENEFICIARY = "BeneficiaryWa11et11111111111111111111111111"
APPROVER_X = "ApproverXWa11et1111111111111111111111111111"
APPROVER_Y = "ApproverYWa11et1111111111111111111111111111"
APPROVER_Z = "ApproverZWa11et1111111111111111111111111111"
STRANGER = "StrangerWa11et11111111111111111111111111111"

ONE_SOL = 1_000_000_000
STARTING_BALANCE = 5 * ONE_SOL

# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine) -> AsyncSession:
    factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Service Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def vault(session) -> VaultService:
    return VaultService(session)


@pytest.fixture
def service(session, vault) -> EscrowService:
    return EscrowService(session, vault=vault)


@pytest_asyncio.fixture
async def ready_service(service, vault) -> EscrowService:
    """Service with the counter initialized and the creator funded."""
    await service.initialize(CREATOR)
    await vault.credit(CREATOR, STARTING_BALANCE)
    return service


@pytest.fixture
def escrow_args() -> dict:
    """Keyword arguments for a two-approver escrow of 1 SOL."""
    return {
        "creator": CREATOR,
        "amount": ONE_SOL,
        "beneficiary": BENEFICIARY,
        "approver_a": APPROVER_X,
        "approver_b": APPROVER_Y,
        "approver_c": None,
        "description": "Test escrow with 2 approvers",
    }


# ---------------------------------------------------------------------------
# API Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def app(session):
    """FastAPI app whose requests share the test session.

    Each request commits on success and rolls back on error, like the
    production session dependency.
    """
    from quorum_escrow.api.deps import get_db_session
    from quorum_escrow.main import create_app

    application = create_app()

    async def _session_override():
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

    application.dependency_overrides[get_db_session] = _session_override
    return application


@pytest_asyncio.fixture
async def client(app):
    from httpx import ASGITransport, AsyncClient

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
