"""Pydantic API schemas."""

from quorum_escrow.schemas.escrow import (
    AccountResponse,
    ApproveEscrowRequest,
    ApproveEscrowResponse,
    CancelEscrowResponse,
    CounterResponse,
    CreateEscrowRequest,
    CreditAccountRequest,
    EscrowEventResponse,
    EscrowResponse,
    EscrowStatusResponse,
    HealthResponse,
)

__all__ = [
    "AccountResponse",
    "ApproveEscrowRequest",
    "ApproveEscrowResponse",
    "CancelEscrowResponse",
    "CounterResponse",
    "CreateEscrowRequest",
    "CreditAccountRequest",
    "EscrowEventResponse",
    "EscrowResponse",
    "EscrowStatusResponse",
    "HealthResponse",
]
