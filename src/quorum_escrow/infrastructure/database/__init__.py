"""Database infrastructure: engine, ORM models, and repositories."""

from quorum_escrow.infrastructure.database.engine import (
    close_db,
    get_async_session,
    init_db,
    session_scope,
)
from quorum_escrow.infrastructure.database.orm_models import (
    Account,
    Base,
    EscrowEvent,
    EscrowRecord,
    SequenceCounter,
    VaultCell,
)
from quorum_escrow.infrastructure.database.repositories import (
    CounterRepository,
    EscrowRepository,
    EventRepository,
    VaultRepository,
)

__all__ = [
    "session_scope",
    "Base",
    "Account",
    "EscrowEvent",
    "EscrowRecord",
    "SequenceCounter",
    "VaultCell",
    "CounterRepository",
    "EscrowRepository",
    "EventRepository",
    "VaultRepository",
    "get_async_session",
    "init_db",
    "close_db",
]
