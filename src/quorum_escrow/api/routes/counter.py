"""Sequence counter routes.

Routes:
    POST   /api/v1/counter   - Initialize the escrow id counter (once)
    GET    /api/v1/counter   - Current number of escrows ever created
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from quorum_escrow.api.deps import get_caller_identity, get_escrow_service
from quorum_escrow.schemas.escrow import CounterResponse
from quorum_escrow.services.escrow_service import EscrowService

router = APIRouter(prefix="/api/v1/counter", tags=["Counter"])


@router.post(
    "",
    response_model=CounterResponse,
    status_code=201,
    summary="Initialize the escrow counter",
)
async def initialize_counter(
    caller: str = Depends(get_caller_identity),
    svc: EscrowService = Depends(get_escrow_service),
) -> CounterResponse:
    """Create the counter at zero. Fails with ALREADY_INITIALIZED afterwards."""
    counter = await svc.initialize(caller)
    return CounterResponse(counter_key=counter.key, count=counter.count)


@router.get("", response_model=CounterResponse, summary="Read the escrow counter")
async def get_counter(
    svc: EscrowService = Depends(get_escrow_service),
) -> CounterResponse:
    counter = await svc.get_counter()
    return CounterResponse(counter_key=counter.key, count=counter.count)
