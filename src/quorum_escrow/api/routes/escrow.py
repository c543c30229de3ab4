"""Escrow REST API routes.

These endpoints provide the HTTP interface for creating, approving and
cancelling escrows and for reading their state. The MCP tools in
mcp_server/tools.py call the same service layer, ensuring consistency.

The caller is taken from the ``X-Caller-Identity`` header: the depositor on
create, the approver on approve, the creator on cancel.

Routes:
    POST   /api/v1/escrow                  - Create a new escrow (locks funds)
    GET    /api/v1/escrow/by-id/{id}       - Get escrow details by numeric id
    GET    /api/v1/escrow/{key}            - Get escrow details
    GET    /api/v1/escrow/{key}/status     - Get approval progress
    GET    /api/v1/escrow/{key}/events     - Get audit trail
    POST   /api/v1/escrow/{key}/approve    - Approve (releases on threshold)
    POST   /api/v1/escrow/{key}/cancel     - Cancel and refund the creator
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from quorum_escrow.api.deps import get_caller_identity, get_escrow_service
from quorum_escrow.domain.exceptions import DuplicateOperationError
from quorum_escrow.infrastructure import redis_client
from quorum_escrow.logging_config import get_logger
from quorum_escrow.schemas.escrow import (
    ApproveEscrowRequest,
    ApproveEscrowResponse,
    CancelEscrowResponse,
    CreateEscrowRequest,
    EscrowEventResponse,
    EscrowResponse,
    EscrowStatusResponse,
)
from quorum_escrow.services.escrow_service import EscrowService

router = APIRouter(prefix="/api/v1/escrow", tags=["Escrow"])
logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=EscrowResponse,
    status_code=201,
    summary="Create a new escrow",
)
async def create_escrow(
    request: CreateEscrowRequest,
    caller: str = Depends(get_caller_identity),
    svc: EscrowService = Depends(get_escrow_service),
) -> EscrowResponse:
    """Lock ``amount`` from the caller under a new ACTIVE escrow record."""
    if request.idempotency_key:
        await _reject_replay(request.idempotency_key)

    record = await svc.create_escrow(
        creator=caller,
        amount=request.amount,
        beneficiary=request.beneficiary,
        approver_a=request.approver_a,
        approver_b=request.approver_b,
        approver_c=request.approver_c,
        description=request.description,
    )

    if request.idempotency_key:
        await _remember(request.idempotency_key, record.key)

    return EscrowResponse.model_validate(record)


# ---------------------------------------------------------------------------
# Approve
# ---------------------------------------------------------------------------


@router.post(
    "/{escrow_key}/approve",
    response_model=ApproveEscrowResponse,
    summary="Approve release of funds",
)
async def approve_escrow(
    escrow_key: str,
    request: ApproveEscrowRequest,
    caller: str = Depends(get_caller_identity),
    svc: EscrowService = Depends(get_escrow_service),
) -> ApproveEscrowResponse:
    """Record the caller's approval. Funds move to the beneficiary on threshold."""
    record = await svc.approve(
        escrow_key=escrow_key,
        approver=caller,
        beneficiary=request.beneficiary,
    )
    return ApproveEscrowResponse(
        escrow_key=record.key,
        escrow_id=record.id,
        approvals=list(record.approvals),
        approvals_count=record.approvals_count,
        required_approvals=record.required_approvals,
        completed=record.completed,
        status=record.status,
    )


# ---------------------------------------------------------------------------
# Cancel
# ---------------------------------------------------------------------------


@router.post(
    "/{escrow_key}/cancel",
    response_model=CancelEscrowResponse,
    summary="Cancel an escrow",
)
async def cancel_escrow(
    escrow_key: str,
    caller: str = Depends(get_caller_identity),
    svc: EscrowService = Depends(get_escrow_service),
) -> CancelEscrowResponse:
    """Refund the creator. Only the creator, only before any approval."""
    record = await svc.cancel(escrow_key=escrow_key, caller=caller)
    return CancelEscrowResponse(
        escrow_key=record.key,
        escrow_id=record.id,
        completed=record.completed,
        status=record.status,
        refunded_amount=record.amount,
    )


# ---------------------------------------------------------------------------
# Read endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/by-id/{escrow_id}",
    response_model=EscrowResponse,
    summary="Get escrow details by id",
)
async def get_escrow_by_id(
    escrow_id: int,
    svc: EscrowService = Depends(get_escrow_service),
) -> EscrowResponse:
    record = await svc.get_escrow_by_id(escrow_id)
    return EscrowResponse.model_validate(record)


@router.get(
    "/{escrow_key}",
    response_model=EscrowResponse,
    summary="Get escrow details",
)
async def get_escrow(
    escrow_key: str,
    svc: EscrowService = Depends(get_escrow_service),
) -> EscrowResponse:
    """Fetch an escrow by its storage key."""
    record = await svc.get_escrow(escrow_key)
    return EscrowResponse.model_validate(record)


@router.get(
    "/{escrow_key}/status",
    response_model=EscrowStatusResponse,
    summary="Get approval progress",
)
async def get_status(
    escrow_key: str,
    svc: EscrowService = Depends(get_escrow_service),
) -> EscrowStatusResponse:
    """Return the status, approvals so far and allowed next events."""
    status_data = await svc.get_status(escrow_key)
    return EscrowStatusResponse(**status_data)


@router.get(
    "/{escrow_key}/events",
    response_model=list[EscrowEventResponse],
    summary="Get audit trail",
)
async def get_events(
    escrow_key: str,
    svc: EscrowService = Depends(get_escrow_service),
) -> list[EscrowEventResponse]:
    """Return the full audit trail for an escrow."""
    events = await svc.get_events(escrow_key)
    return [EscrowEventResponse.model_validate(e) for e in events]


# ---------------------------------------------------------------------------
# Idempotency
# ---------------------------------------------------------------------------


async def _reject_replay(idempotency_key: str) -> None:
    try:
        existing = await redis_client.check_idempotency(idempotency_key)
    except RuntimeError:
        logger.warning("idempotency.unavailable", key=idempotency_key)
        return
    if existing is not None:
        raise DuplicateOperationError(idempotency_key)


async def _remember(idempotency_key: str, escrow_key: str) -> None:
    try:
        await redis_client.set_idempotency(idempotency_key, escrow_key)
    except RuntimeError:
        logger.warning("idempotency.unavailable", key=idempotency_key)
