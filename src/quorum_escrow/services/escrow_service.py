"""Escrow Service: lifecycle of multi-approver escrow records.

This is the application layer that coordinates between:
    - Approval policy and creation rules (pure domain functions)
    - Domain state machine (transition guard)
    - Repositories (data access)
    - Vault service (custodied value)
    - Event log (audit trail)

Both REST routes and MCP tools call into this service, ensuring a single
source of truth for all business rules. Every check runs before the first
write, and the caller's session commits or rolls back the whole operation.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from quorum_escrow.config import get_settings
from quorum_escrow.domain.enums import EscrowStatus, EventType
from quorum_escrow.domain.exceptions import (
    AlreadyApprovedError,
    AlreadyInitializedError,
    BeneficiaryMismatchError,
    CannotCancelAfterApprovalsError,
    EscrowAlreadyCompletedError,
    EscrowNotFoundError,
    InvalidStateTransitionError,
    SequenceNotInitializedError,
    SequenceOverflowError,
    UnauthorizedError,
)
from quorum_escrow.domain.keys import derive_counter_key, derive_escrow_key
from quorum_escrow.domain.policy import (
    MAX_ESCROW_ID,
    normalize_optional_approver,
    required_approvals,
    validate_creation,
)
from quorum_escrow.domain.state_machine import EscrowStateMachine
from quorum_escrow.infrastructure.database.orm_models import (
    EscrowEvent,
    EscrowRecord,
    SequenceCounter,
)
from quorum_escrow.infrastructure.database.repositories import (
    CounterRepository,
    EscrowRepository,
    EventRepository,
)
from quorum_escrow.logging_config import get_logger
from quorum_escrow.services.vault_service import VaultService

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


class EscrowService:
    """Manages the escrow record lifecycle."""

    def __init__(self, session: AsyncSession, vault: VaultService | None = None) -> None:
        self._session = session
        self._counter_repo = CounterRepository(session)
        self._escrow_repo = EscrowRepository(session)
        self._event_repo = EventRepository(session)
        self._vault = vault or VaultService(session)

    # ------------------------------------------------------------------
    # Sequence counter
    # ------------------------------------------------------------------

    async def initialize(self, caller: str) -> SequenceCounter:
        """Create the escrow id counter at zero. Allowed exactly once."""
        key = derive_counter_key()
        counter = await self._counter_repo.create_if_absent(key, initialized_by=caller)
        if counter is None:
            raise AlreadyInitializedError()
        logger.info("counter.initialized", counter_key=key, by=caller)
        return counter

    async def get_counter(self) -> SequenceCounter:
        counter = await self._counter_repo.get(derive_counter_key())
        if counter is None:
            raise SequenceNotInitializedError()
        return counter

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_escrow(
        self,
        creator: str,
        amount: int,
        beneficiary: str,
        approver_a: str | None,
        approver_b: str | None,
        approver_c: str | None = None,
        description: str = "",
    ) -> EscrowRecord:
        """Lock ``amount`` from the creator under a new ACTIVE record."""
        settings = get_settings()
        validate_creation(
            amount,
            approver_a,
            approver_b,
            description,
            max_description_length=settings.max_description_length,
        )
        approver_c = normalize_optional_approver(approver_c)

        counter = await self._counter_repo.get(derive_counter_key(), for_update=True)
        if counter is None:
            raise SequenceNotInitializedError()
        if counter.count >= MAX_ESCROW_ID:
            raise SequenceOverflowError(counter.count)
        await self._vault.ensure_available(creator, amount)

        # --- checks done, mutations start ---
        escrow_id = counter.count + 1
        counter.count = escrow_id
        key = derive_escrow_key(escrow_id)

        record = await self._escrow_repo.create(
            EscrowRecord(
                key=key,
                id=escrow_id,
                creator=creator,
                beneficiary=beneficiary,
                approver_a=approver_a,
                approver_b=approver_b,
                approver_c=approver_c,
                amount=amount,
                description=description,
                approvals=[],
                completed=False,
                status=EscrowStatus.ACTIVE.value,
            )
        )
        await self._vault.lock(key, creator, amount)

        await self._event_repo.record(
            escrow_key=key,
            event_type=EventType.ESCROW_CREATED,
            old_status=None,
            new_status=EscrowStatus.ACTIVE,
            actor=creator,
            metadata={
                "escrow_id": escrow_id,
                "amount": amount,
                "required_approvals": record.required_approvals,
            },
        )

        logger.info(
            "escrow.created",
            escrow_id=escrow_id,
            escrow_key=key,
            amount=amount,
            beneficiary=beneficiary,
            required_approvals=record.required_approvals,
        )
        return record

    # ------------------------------------------------------------------
    # Approval (release happens here once the threshold is reached)
    # ------------------------------------------------------------------

    async def approve(self, escrow_key: str, approver: str, beneficiary: str) -> EscrowRecord:
        """Record ``approver``'s consent and release the funds on threshold.

        Checks run in a fixed order so the reported reason is unambiguous:
        completed, approver membership, duplicate approval, beneficiary. A
        releasing approval is refused if the beneficiary cannot hold the amount.
        """
        record = await self._get_record_or_raise(escrow_key, for_update=True)

        if record.completed:
            raise EscrowAlreadyCompletedError(escrow_key)
        if not record.is_approver(approver):
            raise UnauthorizedError(approver, "approve")
        if record.has_approved(approver):
            raise AlreadyApprovedError(escrow_key, approver)
        if beneficiary != record.beneficiary:
            raise BeneficiaryMismatchError(escrow_key, beneficiary)

        approvals = [*record.approvals, approver]
        threshold = required_approvals(record.approvers)
        releasing = len(approvals) >= threshold
        if releasing:
            self._fire_transition(record, "threshold_reached")
            await self._vault.ensure_can_receive(record.beneficiary, record.amount)

        # --- checks done, mutations start ---
        record.approvals = approvals
        await self._escrow_repo.save(record)
        await self._event_repo.record(
            escrow_key=escrow_key,
            event_type=EventType.APPROVAL_RECORDED,
            old_status=EscrowStatus.ACTIVE,
            new_status=EscrowStatus.ACTIVE,
            actor=approver,
            metadata={"approvals": len(approvals), "required_approvals": threshold},
        )
        logger.info(
            "escrow.approved",
            escrow_id=record.id,
            approver=approver,
            approvals=len(approvals),
            required=threshold,
        )

        if releasing:
            await self._close(record, EscrowStatus.RELEASED, record.beneficiary, actor=approver)

        return record

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    async def cancel(self, escrow_key: str, caller: str) -> EscrowRecord:
        """Refund the creator in full. Only before any approval was recorded."""
        record = await self._get_record_or_raise(escrow_key, for_update=True)

        if record.completed:
            raise EscrowAlreadyCompletedError(escrow_key)
        if caller != record.creator:
            raise UnauthorizedError(caller, "cancel")
        if record.approvals:
            raise CannotCancelAfterApprovalsError(escrow_key, len(record.approvals))

        self._fire_transition(record, "creator_cancels")
        await self._vault.ensure_can_receive(record.creator, record.amount)

        await self._close(record, EscrowStatus.CANCELLED, record.creator, actor=caller)
        return record

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_escrow(self, escrow_key: str) -> EscrowRecord:
        """Get a record or raise."""
        return await self._get_record_or_raise(escrow_key)

    async def get_escrow_by_id(self, escrow_id: int) -> EscrowRecord:
        """Get a record by id; the key is recomputed, no index is consulted."""
        # Ids outside the stored range can never have been issued.
        if not 0 <= escrow_id <= MAX_ESCROW_ID:
            raise EscrowNotFoundError(f"id {escrow_id}")
        return await self._get_record_or_raise(derive_escrow_key(escrow_id))

    async def get_status(self, escrow_key: str) -> dict:
        """Get record status with approval progress and allowed events."""
        record = await self._get_record_or_raise(escrow_key)
        sm = EscrowStateMachine(current_status=record.status)
        return {
            "escrow_key": record.key,
            "escrow_id": record.id,
            "status": record.status,
            "completed": record.completed,
            "approvals": list(record.approvals),
            "approvals_count": record.approvals_count,
            "required_approvals": record.required_approvals,
            "allowed_events": sm.get_allowed_events(),
        }

    async def get_events(self, escrow_key: str) -> list[EscrowEvent]:
        """Get audit trail."""
        await self._get_record_or_raise(escrow_key)
        return await self._event_repo.get_by_escrow(escrow_key)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get_record_or_raise(
        self, escrow_key: str, for_update: bool = False
    ) -> EscrowRecord:
        record = await self._escrow_repo.get_by_key(escrow_key, for_update=for_update)
        if record is None:
            raise EscrowNotFoundError(escrow_key)
        return record

    async def _close(
        self,
        record: EscrowRecord,
        outcome: EscrowStatus,
        destination: str,
        actor: str,
    ) -> None:
        """Drain the vault cell to ``destination`` and mark the record terminal."""
        amount = await self._vault.drain(record.key, destination)

        record.completed = True
        record.status = outcome.value
        record.completed_at = datetime.now(UTC)
        await self._escrow_repo.save(record)

        event_type = (
            EventType.ESCROW_RELEASED
            if outcome is EscrowStatus.RELEASED
            else EventType.ESCROW_CANCELLED
        )
        await self._event_repo.record(
            escrow_key=record.key,
            event_type=event_type,
            old_status=EscrowStatus.ACTIVE,
            new_status=outcome,
            actor=actor,
            metadata={"amount": amount, "destination": destination},
        )

        logger.info(
            f"escrow.{outcome.value.lower()}",
            escrow_id=record.id,
            amount=amount,
            destination=destination,
        )

    def _fire_transition(self, record: EscrowRecord, event_name: str) -> str:
        """Validate a state machine transition and return the target status.

        Raises InvalidStateTransitionError if the transition is illegal.
        """
        from statemachine.exceptions import TransitionNotAllowed

        sm = EscrowStateMachine(current_status=record.status)
        event_method = getattr(sm, event_name, None)
        if event_method is None:
            raise InvalidStateTransitionError(record.status, event_name)
        try:
            event_method()
        except TransitionNotAllowed as err:
            raise InvalidStateTransitionError(record.status, event_name) from err
        return sm.status
