"""Lifecycle tests for EscrowService against an in-memory database.

Covers counter initialization, creation, approval with automatic release,
cancellation, and the ordering of failure reasons.
"""

from __future__ import annotations

import pytest
from conftest import (
    APPROVER_X,
    APPROVER_Y,
    APPROVER_Z,
    BENEFICIARY,
    CREATOR,
    ONE_SOL,
    STARTING_BALANCE,
    STRANGER,
)

from quorum_escrow.domain.enums import EscrowStatus, EventType
from quorum_escrow.domain.exceptions import (
    AlreadyApprovedError,
    AlreadyInitializedError,
    BalanceOverflowError,
    BeneficiaryMismatchError,
    CannotCancelAfterApprovalsError,
    DescriptionTooLongError,
    EscrowAlreadyCompletedError,
    EscrowNotFoundError,
    InsufficientCallerBalanceError,
    InvalidAmountError,
    InvalidApproverCountError,
    SequenceNotInitializedError,
    UnauthorizedError,
)
from quorum_escrow.domain.keys import derive_counter_key, derive_escrow_key
from quorum_escrow.domain.policy import MAX_AMOUNT, MAX_ESCROW_ID, NULL_IDENTITY

# ============================================================
# Sequence counter
# ============================================================


class TestInitialize:
    @pytest.mark.asyncio
    async def test_creates_counter_at_zero(self, service) -> None:
        counter = await service.initialize(CREATOR)
        assert counter.count == 0
        assert counter.key == derive_counter_key()

    @pytest.mark.asyncio
    async def test_second_initialize_fails(self, service) -> None:
        await service.initialize(CREATOR)
        with pytest.raises(AlreadyInitializedError):
            await service.initialize(STRANGER)

    @pytest.mark.asyncio
    async def test_losing_initialize_keeps_unit_of_work_usable(
        self, service, vault, escrow_args
    ) -> None:
        await service.initialize(CREATOR)
        with pytest.raises(AlreadyInitializedError):
            await service.initialize(STRANGER)

        counter = await service.get_counter()
        assert counter.initialized_by == CREATOR
        await vault.credit(CREATOR, STARTING_BALANCE)
        assert (await service.create_escrow(**escrow_args)).id == 1

    @pytest.mark.asyncio
    async def test_create_before_initialize_fails(self, service, vault, escrow_args) -> None:
        await vault.credit(CREATOR, STARTING_BALANCE)
        with pytest.raises(SequenceNotInitializedError):
            await service.create_escrow(**escrow_args)
        assert await vault.balance_of(CREATOR) == STARTING_BALANCE


# ============================================================
# Creation
# ============================================================


class TestCreate:
    @pytest.mark.asyncio
    async def test_creates_active_record(self, ready_service, escrow_args) -> None:
        record = await ready_service.create_escrow(**escrow_args)

        assert record.id == 1
        assert record.key == derive_escrow_key(1)
        assert record.creator == CREATOR
        assert record.beneficiary == BENEFICIARY
        assert record.approvers == [APPROVER_X, APPROVER_Y]
        assert record.amount == ONE_SOL
        assert record.approvals == []
        assert record.completed is False
        assert record.status == EscrowStatus.ACTIVE
        assert record.required_approvals == 2

    @pytest.mark.asyncio
    async def test_amount_moves_into_vault_cell(self, ready_service, vault, escrow_args) -> None:
        record = await ready_service.create_escrow(**escrow_args)

        assert await vault.cell_balance(record.key) == ONE_SOL
        assert await vault.balance_of(CREATOR) == STARTING_BALANCE - ONE_SOL

    @pytest.mark.asyncio
    async def test_each_escrow_has_its_own_cell(self, ready_service, vault, escrow_args) -> None:
        first = await ready_service.create_escrow(**escrow_args)
        second = await ready_service.create_escrow(**{**escrow_args, "amount": 3 * ONE_SOL})

        assert await vault.cell_balance(first.key) == ONE_SOL
        assert await vault.cell_balance(second.key) == 3 * ONE_SOL

    @pytest.mark.asyncio
    async def test_ids_strictly_increase(self, ready_service, escrow_args) -> None:
        before = (await ready_service.get_counter()).count
        ids = []
        for _ in range(3):
            escrow_args["amount"] = 1000
            ids.append((await ready_service.create_escrow(**escrow_args)).id)

        assert ids == [before + 1, before + 2, before + 3]
        assert (await ready_service.get_counter()).count == before + 3

    @pytest.mark.asyncio
    async def test_lookup_by_id_recomputes_key(self, ready_service, escrow_args) -> None:
        record = await ready_service.create_escrow(**escrow_args)
        assert (await ready_service.get_escrow_by_id(record.id)).key == record.key

    @pytest.mark.asyncio
    @pytest.mark.parametrize("escrow_id", [-1, MAX_ESCROW_ID + 1, 2**64])
    async def test_lookup_by_unissuable_id_is_not_found(self, ready_service, escrow_id) -> None:
        with pytest.raises(EscrowNotFoundError):
            await ready_service.get_escrow_by_id(escrow_id)

    @pytest.mark.asyncio
    async def test_null_third_approver_is_absent(self, ready_service, escrow_args) -> None:
        record = await ready_service.create_escrow(**{**escrow_args, "approver_c": NULL_IDENTITY})
        assert record.approver_c is None
        assert record.approvers == [APPROVER_X, APPROVER_Y]

    @pytest.mark.asyncio
    async def test_duplicate_approvers_collapse(self, ready_service, escrow_args) -> None:
        record = await ready_service.create_escrow(
            **{**escrow_args, "approver_b": APPROVER_X, "approver_c": APPROVER_X}
        )
        assert record.required_approvals == 1

    @pytest.mark.asyncio
    async def test_creation_event_recorded(self, ready_service, escrow_args) -> None:
        record = await ready_service.create_escrow(**escrow_args)
        events = await ready_service.get_events(record.key)

        assert [e.event_type for e in events] == [EventType.ESCROW_CREATED]
        assert events[0].actor == CREATOR
        assert events[0].metadata_json["amount"] == ONE_SOL


class TestCreateValidation:
    """Failed creates leave the counter and balances untouched."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("overrides", "error"),
        [
            ({"amount": 0}, InvalidAmountError),
            ({"approver_b": None}, InvalidApproverCountError),
            ({"approver_a": NULL_IDENTITY}, InvalidApproverCountError),
            ({"description": "x" * 201}, DescriptionTooLongError),
            ({"amount": STARTING_BALANCE + 1}, InsufficientCallerBalanceError),
        ],
    )
    async def test_rejected_without_side_effects(
        self, ready_service, vault, escrow_args, overrides, error
    ) -> None:
        with pytest.raises(error):
            await ready_service.create_escrow(**{**escrow_args, **overrides})

        assert (await ready_service.get_counter()).count == 0
        assert await vault.balance_of(CREATOR) == STARTING_BALANCE

    @pytest.mark.asyncio
    async def test_unfunded_caller(self, ready_service, escrow_args) -> None:
        with pytest.raises(InsufficientCallerBalanceError) as exc_info:
            await ready_service.create_escrow(**{**escrow_args, "creator": STRANGER})
        assert exc_info.value.available == 0

    @pytest.mark.asyncio
    async def test_description_measured_in_utf8_bytes(self, ready_service, escrow_args) -> None:
        with pytest.raises(DescriptionTooLongError):
            await ready_service.create_escrow(**{**escrow_args, "description": "\u00e9" * 150})
        assert (await ready_service.get_counter()).count == 0


# ============================================================
# Approval
# ============================================================


class TestApprove:
    @pytest.mark.asyncio
    async def test_two_approvers_release_on_second(
        self, ready_service, vault, escrow_args
    ) -> None:
        """Scenario: approvers (X, Y), threshold 2."""
        record = await ready_service.create_escrow(**escrow_args)

        record = await ready_service.approve(record.key, APPROVER_X, BENEFICIARY)
        assert record.approvals == [APPROVER_X]
        assert record.completed is False
        assert await vault.balance_of(BENEFICIARY) == 0

        record = await ready_service.approve(record.key, APPROVER_Y, BENEFICIARY)
        assert record.approvals == [APPROVER_X, APPROVER_Y]
        assert record.completed is True
        assert record.status == EscrowStatus.RELEASED
        assert record.completed_at is not None
        assert await vault.balance_of(BENEFICIARY) == ONE_SOL
        assert await vault.cell_balance(record.key) == 0

    @pytest.mark.asyncio
    async def test_three_approvers_two_suffice(self, ready_service, vault, escrow_args) -> None:
        """Scenario: approvers (X, Y, Z); the third approval comes too late."""
        record = await ready_service.create_escrow(**{**escrow_args, "approver_c": APPROVER_Z})
        assert record.required_approvals == 2

        await ready_service.approve(record.key, APPROVER_X, BENEFICIARY)
        record = await ready_service.approve(record.key, APPROVER_Y, BENEFICIARY)
        assert record.completed is True

        with pytest.raises(EscrowAlreadyCompletedError):
            await ready_service.approve(record.key, APPROVER_Z, BENEFICIARY)
        assert await vault.balance_of(BENEFICIARY) == ONE_SOL

    @pytest.mark.asyncio
    async def test_single_distinct_approver_releases_immediately(
        self, ready_service, vault, escrow_args
    ) -> None:
        record = await ready_service.create_escrow(**{**escrow_args, "approver_b": APPROVER_X})

        record = await ready_service.approve(record.key, APPROVER_X, BENEFICIARY)
        assert record.completed is True
        assert await vault.balance_of(BENEFICIARY) == ONE_SOL

    @pytest.mark.asyncio
    async def test_stranger_is_unauthorized(self, ready_service, escrow_args) -> None:
        """Scenario: approval by a random identity."""
        record = await ready_service.create_escrow(**escrow_args)

        with pytest.raises(UnauthorizedError):
            await ready_service.approve(record.key, STRANGER, BENEFICIARY)
        assert (await ready_service.get_escrow(record.key)).approvals == []

    @pytest.mark.asyncio
    async def test_creator_is_not_an_approver(self, ready_service, escrow_args) -> None:
        record = await ready_service.create_escrow(**escrow_args)
        with pytest.raises(UnauthorizedError):
            await ready_service.approve(record.key, CREATOR, BENEFICIARY)

    @pytest.mark.asyncio
    async def test_duplicate_approval(self, ready_service, escrow_args) -> None:
        record = await ready_service.create_escrow(**{**escrow_args, "approver_c": APPROVER_Z})
        await ready_service.approve(record.key, APPROVER_X, BENEFICIARY)

        with pytest.raises(AlreadyApprovedError):
            await ready_service.approve(record.key, APPROVER_X, BENEFICIARY)
        assert (await ready_service.get_escrow(record.key)).approvals == [APPROVER_X]

    @pytest.mark.asyncio
    async def test_beneficiary_must_match(self, ready_service, escrow_args) -> None:
        record = await ready_service.create_escrow(**escrow_args)

        with pytest.raises(BeneficiaryMismatchError):
            await ready_service.approve(record.key, APPROVER_X, STRANGER)
        assert (await ready_service.get_escrow(record.key)).approvals == []

    @pytest.mark.asyncio
    async def test_completed_is_reported_before_duplicate(
        self, ready_service, escrow_args
    ) -> None:
        record = await ready_service.create_escrow(**escrow_args)
        await ready_service.approve(record.key, APPROVER_X, BENEFICIARY)
        await ready_service.approve(record.key, APPROVER_Y, BENEFICIARY)

        with pytest.raises(EscrowAlreadyCompletedError):
            await ready_service.approve(record.key, APPROVER_X, BENEFICIARY)

    @pytest.mark.asyncio
    async def test_membership_checked_before_beneficiary(
        self, ready_service, escrow_args
    ) -> None:
        record = await ready_service.create_escrow(**escrow_args)
        with pytest.raises(UnauthorizedError):
            await ready_service.approve(record.key, STRANGER, STRANGER)

    @pytest.mark.asyncio
    async def test_unknown_escrow(self, ready_service) -> None:
        with pytest.raises(EscrowNotFoundError):
            await ready_service.approve(derive_escrow_key(999), APPROVER_X, BENEFICIARY)

    @pytest.mark.asyncio
    async def test_release_refused_when_beneficiary_balance_would_overflow(
        self, ready_service, vault, escrow_args
    ) -> None:
        await vault.credit(BENEFICIARY, MAX_AMOUNT)
        record = await ready_service.create_escrow(**escrow_args)
        await ready_service.approve(record.key, APPROVER_X, BENEFICIARY)

        with pytest.raises(BalanceOverflowError):
            await ready_service.approve(record.key, APPROVER_Y, BENEFICIARY)

        record = await ready_service.get_escrow(record.key)
        assert record.approvals == [APPROVER_X]
        assert record.completed is False
        assert await vault.cell_balance(record.key) == ONE_SOL
        assert await vault.balance_of(BENEFICIARY) == MAX_AMOUNT

    @pytest.mark.asyncio
    async def test_release_events(self, ready_service, escrow_args) -> None:
        record = await ready_service.create_escrow(**escrow_args)
        await ready_service.approve(record.key, APPROVER_X, BENEFICIARY)
        await ready_service.approve(record.key, APPROVER_Y, BENEFICIARY)

        events = await ready_service.get_events(record.key)
        assert [e.event_type for e in events] == [
            EventType.ESCROW_CREATED,
            EventType.APPROVAL_RECORDED,
            EventType.APPROVAL_RECORDED,
            EventType.ESCROW_RELEASED,
        ]
        assert events[-1].metadata_json == {"amount": ONE_SOL, "destination": BENEFICIARY}


# ============================================================
# Cancellation
# ============================================================


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_refunds_creator(self, ready_service, vault, escrow_args) -> None:
        """Scenario: cancel before any approval."""
        record = await ready_service.create_escrow(**escrow_args)

        record = await ready_service.cancel(record.key, CREATOR)
        assert record.completed is True
        assert record.status == EscrowStatus.CANCELLED
        assert record.approvals == []
        assert await vault.balance_of(CREATOR) == STARTING_BALANCE
        assert await vault.cell_balance(record.key) == 0

    @pytest.mark.asyncio
    async def test_cannot_cancel_after_approval(self, ready_service, vault, escrow_args) -> None:
        """Scenario: one approval blocks cancellation."""
        record = await ready_service.create_escrow(**escrow_args)
        await ready_service.approve(record.key, APPROVER_X, BENEFICIARY)

        with pytest.raises(CannotCancelAfterApprovalsError):
            await ready_service.cancel(record.key, CREATOR)

        record = await ready_service.get_escrow(record.key)
        assert record.completed is False
        assert await vault.cell_balance(record.key) == ONE_SOL

    @pytest.mark.asyncio
    async def test_only_creator_can_cancel(self, ready_service, escrow_args) -> None:
        record = await ready_service.create_escrow(**escrow_args)
        for caller in (APPROVER_X, BENEFICIARY, STRANGER):
            with pytest.raises(UnauthorizedError):
                await ready_service.cancel(record.key, caller)

    @pytest.mark.asyncio
    async def test_cancelled_escrow_is_terminal(self, ready_service, escrow_args) -> None:
        record = await ready_service.create_escrow(**escrow_args)
        await ready_service.cancel(record.key, CREATOR)

        with pytest.raises(EscrowAlreadyCompletedError):
            await ready_service.cancel(record.key, CREATOR)
        with pytest.raises(EscrowAlreadyCompletedError):
            await ready_service.approve(record.key, APPROVER_X, BENEFICIARY)

    @pytest.mark.asyncio
    async def test_released_escrow_cannot_be_cancelled(self, ready_service, escrow_args) -> None:
        record = await ready_service.create_escrow(**escrow_args)
        await ready_service.approve(record.key, APPROVER_X, BENEFICIARY)
        await ready_service.approve(record.key, APPROVER_Y, BENEFICIARY)

        with pytest.raises(EscrowAlreadyCompletedError):
            await ready_service.cancel(record.key, CREATOR)

    @pytest.mark.asyncio
    async def test_unknown_escrow(self, ready_service) -> None:
        with pytest.raises(EscrowNotFoundError):
            await ready_service.cancel(derive_escrow_key(12), CREATOR)


# ============================================================
# Status
# ============================================================


class TestStatus:
    @pytest.mark.asyncio
    async def test_active_status(self, ready_service, escrow_args) -> None:
        record = await ready_service.create_escrow(**escrow_args)
        await ready_service.approve(record.key, APPROVER_X, BENEFICIARY)

        status = await ready_service.get_status(record.key)
        assert status["status"] == "ACTIVE"
        assert status["approvals"] == [APPROVER_X]
        assert status["approvals_count"] == 1
        assert status["required_approvals"] == 2
        assert sorted(status["allowed_events"]) == ["creator_cancels", "threshold_reached"]

    @pytest.mark.asyncio
    async def test_cancelled_status(self, ready_service, escrow_args) -> None:
        record = await ready_service.create_escrow(**escrow_args)
        await ready_service.cancel(record.key, CREATOR)

        status = await ready_service.get_status(record.key)
        assert status["status"] == "CANCELLED"
        assert status["completed"] is True
        assert status["allowed_events"] == []
