"""Vault Service: moves custodied value between accounts and vault cells.

The ledger that really holds value is an external collaborator. This service
models it with two tables on the same session as the escrow records, so a
fund movement commits or rolls back together with the record change that
caused it:

    accounts     identity -> available balance
    vault_cells  escrow key -> custodied balance (one cell per record)

A cell receives value once (on create) and releases it once (on release or
cancel). ``drained_to`` remembers where it went.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from quorum_escrow.domain.exceptions import (
    BalanceOverflowError,
    EscrowAlreadyCompletedError,
    EscrowNotFoundError,
    InsufficientCallerBalanceError,
    InvalidAmountError,
)
from quorum_escrow.domain.policy import MAX_AMOUNT
from quorum_escrow.infrastructure.database.orm_models import Account, VaultCell
from quorum_escrow.infrastructure.database.repositories import VaultRepository
from quorum_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


class VaultService:
    """Holds and moves custodied value."""

    def __init__(self, session: AsyncSession) -> None:
        self._repo = VaultRepository(session)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def balance_of(self, identity: str) -> int:
        account = await self._repo.get_account(identity)
        return account.balance if account else 0

    async def cell_balance(self, escrow_key: str) -> int:
        cell = await self._repo.get_cell(escrow_key)
        if cell is None:
            raise EscrowNotFoundError(escrow_key)
        return cell.balance

    async def ensure_available(self, identity: str, amount: int) -> None:
        """Raise InsufficientCallerBalanceError unless ``identity`` can cover ``amount``."""
        available = await self.balance_of(identity)
        if available < amount:
            raise InsufficientCallerBalanceError(identity, amount, available)

    async def ensure_can_receive(self, identity: str, amount: int) -> None:
        """Raise BalanceOverflowError if ``identity`` cannot hold another ``amount``."""
        balance = await self.balance_of(identity)
        if balance + amount > MAX_AMOUNT:
            raise BalanceOverflowError(identity, balance, amount)

    # ------------------------------------------------------------------
    # Movements
    # ------------------------------------------------------------------

    async def credit(self, identity: str, amount: int) -> Account:
        """Add value to an account from outside the system (development faucet)."""
        if amount <= 0:
            raise InvalidAmountError(amount)
        account = await self._repo.get_or_create_account(identity)
        if account.balance + amount > MAX_AMOUNT:
            raise BalanceOverflowError(identity, account.balance, amount)
        account.balance += amount
        await self._repo.flush()
        logger.info("vault.credited", identity=identity, amount=amount, balance=account.balance)
        return account

    async def lock(self, escrow_key: str, depositor: str, amount: int) -> VaultCell:
        """Move ``amount`` from the depositor's account into a new cell for ``escrow_key``."""
        account = await self._repo.get_or_create_account(depositor)
        if account.balance < amount:
            raise InsufficientCallerBalanceError(depositor, amount, account.balance)

        account.balance -= amount
        cell = await self._repo.create_cell(VaultCell(escrow_key=escrow_key, balance=amount))
        logger.info("vault.locked", escrow_key=escrow_key, source=depositor, amount=amount)
        return cell

    async def drain(self, escrow_key: str, destination: str) -> int:
        """Move the whole cell balance to ``destination``. Returns the amount moved."""
        cell = await self._repo.get_cell(escrow_key, for_update=True)
        if cell is None:
            raise EscrowNotFoundError(escrow_key)
        if cell.drained_to is not None:
            raise EscrowAlreadyCompletedError(escrow_key)

        amount = cell.balance
        account = await self._repo.get_or_create_account(destination)
        if account.balance + amount > MAX_AMOUNT:
            raise BalanceOverflowError(destination, account.balance, amount)
        account.balance += amount
        cell.balance = 0
        cell.drained_to = destination
        await self._repo.flush()

        logger.info("vault.drained", escrow_key=escrow_key, destination=destination, amount=amount)
        return amount
