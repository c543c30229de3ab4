"""Pydantic schemas for the Escrow API.

These schemas define the request/response shapes for the REST API. They are
separate from the ORM models to maintain clean boundaries between the API and
database layers.

Request schemas only check types. Range and presence rules (positive amount,
two approvers, description length) belong to the domain so that callers get
the same error codes over HTTP and MCP.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateEscrowRequest(BaseModel):
    """Request body for locking a deposit under a new escrow record."""

    amount: int = Field(
        ...,
        description="Value to custody, in the ledger's smallest unit",
        examples=[1_000_000_000],
    )
    beneficiary: str = Field(
        ...,
        min_length=1,
        max_length=64,
        description="Identity that receives the funds on release",
    )
    approver_a: str | None = Field(default=None, max_length=64)
    approver_b: str | None = Field(default=None, max_length=64)
    approver_c: str | None = Field(
        default=None,
        max_length=64,
        description="Optional third approver; with three distinct approvers any two suffice",
    )
    description: str = Field(
        default="",
        description="Informational text, at most 200 UTF-8 bytes",
        examples=["Deposit for apartment 4B"],
    )
    idempotency_key: str | None = Field(
        default=None,
        max_length=128,
        description="Optional idempotency key to prevent duplicate escrow creation",
    )


class ApproveEscrowRequest(BaseModel):
    """Request body for an approver's consent."""

    beneficiary: str = Field(
        ...,
        min_length=1,
        max_length=64,
        description="Restated beneficiary, must match the record",
    )


class CreditAccountRequest(BaseModel):
    """Request body for the development faucet."""

    amount: int = Field(..., gt=0)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class EscrowResponse(BaseModel):
    """Response schema for an escrow record."""

    model_config = ConfigDict(from_attributes=True)

    key: str
    id: int
    creator: str
    beneficiary: str
    approver_a: str
    approver_b: str
    approver_c: str | None
    amount: int
    description: str
    approvals: list[str]
    approvals_count: int
    required_approvals: int
    completed: bool
    status: str
    created_at: datetime
    completed_at: datetime | None


class ApproveEscrowResponse(BaseModel):
    """Outcome of an approval: progress and whether it triggered release."""

    escrow_key: str
    escrow_id: int
    approvals: list[str]
    approvals_count: int
    required_approvals: int
    completed: bool
    status: str


class CancelEscrowResponse(BaseModel):
    escrow_key: str
    escrow_id: int
    completed: bool
    status: str
    refunded_amount: int


class EscrowStatusResponse(BaseModel):
    """Lightweight status check response."""

    escrow_key: str
    escrow_id: int
    status: str
    completed: bool
    approvals: list[str]
    approvals_count: int
    required_approvals: int
    allowed_events: list[str] = Field(
        description="State machine events that can fire from the current status"
    )


class EscrowEventResponse(BaseModel):
    """Response schema for an audit event."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    escrow_key: str
    event_type: str
    old_status: str | None
    new_status: str
    actor: str
    metadata: dict | None = Field(default=None, validation_alias="metadata_json")
    created_at: datetime


class CounterResponse(BaseModel):
    counter_key: str
    count: int


class AccountResponse(BaseModel):
    identity: str
    balance: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
    redis: str = "unknown"
