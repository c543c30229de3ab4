"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).

Reads that precede a mutation use ``SELECT ... FOR UPDATE`` so that two
operations on the same row serialize on PostgreSQL. SQLite ignores the clause.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite

from quorum_escrow.infrastructure.database.orm_models import (
    Account,
    EscrowEvent,
    EscrowRecord,
    SequenceCounter,
    VaultCell,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from quorum_escrow.domain.enums import EscrowStatus, EventType


async def _insert_unless_exists(session: AsyncSession, model: type, **values) -> bool:
    """INSERT ... ON CONFLICT DO NOTHING. Returns whether a row was written.

    A missing row cannot be locked, so two transactions can both pass a
    "does it exist" SELECT. The loser writes nothing and keeps its session usable.
    """
    dialect = session.get_bind().dialect.name
    insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
    result = await session.execute(insert(model).values(**values).on_conflict_do_nothing())
    return result.rowcount == 1


class CounterRepository:
    """Data access for the singleton sequence counter."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, key: str, for_update: bool = False) -> SequenceCounter | None:
        stmt = select(SequenceCounter).where(SequenceCounter.key == key)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_if_absent(self, key: str, initialized_by: str) -> SequenceCounter | None:
        """Insert the counter at zero. Returns None when it already exists."""
        created = await _insert_unless_exists(
            self._session, SequenceCounter, key=key, count=0, initialized_by=initialized_by
        )
        if not created:
            return None
        return await self.get(key)


class EscrowRepository:
    """Data access for escrow records."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, record: EscrowRecord) -> EscrowRecord:
        """Insert a new escrow record."""
        self._session.add(record)
        await self._session.flush()
        return record

    async def get_by_key(self, key: str, for_update: bool = False) -> EscrowRecord | None:
        """Fetch a record by its storage key."""
        stmt = select(EscrowRecord).where(EscrowRecord.key == key)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def save(self, record: EscrowRecord) -> EscrowRecord:
        """Flush pending changes on a record (call AFTER state machine validation)."""
        await self._session.flush()
        return record


class VaultRepository:
    """Data access for vault cells and account balances."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_account(self, identity: str, for_update: bool = False) -> Account | None:
        stmt = select(Account).where(Account.identity == identity)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_create_account(self, identity: str) -> Account:
        """Fetch an account row for update, inserting an empty one if absent."""
        account = await self.get_account(identity, for_update=True)
        if account is None:
            await _insert_unless_exists(self._session, Account, identity=identity, balance=0)
            account = await self.get_account(identity, for_update=True)
        return account

    async def get_cell(self, escrow_key: str, for_update: bool = False) -> VaultCell | None:
        stmt = select(VaultCell).where(VaultCell.escrow_key == escrow_key)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_cell(self, cell: VaultCell) -> VaultCell:
        self._session.add(cell)
        await self._session.flush()
        return cell

    async def flush(self) -> None:
        await self._session.flush()


class EventRepository:
    """Data access for the append-only audit event log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        escrow_key: str,
        event_type: EventType,
        old_status: EscrowStatus | None,
        new_status: EscrowStatus,
        actor: str,
        metadata: dict | None = None,
    ) -> EscrowEvent:
        """Append a new audit event. This is the ONLY write operation allowed."""
        evt = EscrowEvent(
            escrow_key=escrow_key,
            event_type=event_type.value,
            old_status=old_status.value if old_status else None,
            new_status=new_status.value,
            actor=actor,
            metadata_json=metadata,
        )
        self._session.add(evt)
        await self._session.flush()
        return evt

    async def get_by_escrow(self, escrow_key: str) -> list[EscrowEvent]:
        """Fetch all events for a record in the order they were written."""
        result = await self._session.execute(
            select(EscrowEvent)
            .where(EscrowEvent.escrow_key == escrow_key)
            .order_by(EscrowEvent.id.asc())
        )
        return list(result.scalars().all())
