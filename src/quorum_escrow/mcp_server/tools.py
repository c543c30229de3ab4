"""MCP tools for Quorum Escrow.

Agents acting for depositors or approvers discover these tools at ``/mcp``.
They call the same service layer as the REST routes, so both surfaces share
error codes and audit events.

Tools:
    - initialize_counter: Create the escrow id counter (once)
    - create_escrow: Lock a deposit under a new escrow
    - approve_escrow: Approve release (funds move on threshold)
    - cancel_escrow: Cancel and refund the creator
    - check_status: Approval progress of an escrow
    - get_balance: Available balance of an identity

The caller identity is an explicit argument here. The MCP transport in front
of this server binds it to the signed-in agent.

Domain failures come back as ``{"error": CODE, "message": ...}`` instead of
raising, so an agent can read the reason and decide what to do next.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from mcp.server.fastmcp import FastMCP

from quorum_escrow.domain.exceptions import EscrowError
from quorum_escrow.infrastructure.database.engine import session_scope
from quorum_escrow.logging_config import get_logger
from quorum_escrow.services.escrow_service import EscrowService
from quorum_escrow.services.vault_service import VaultService

if TYPE_CHECKING:
    from quorum_escrow.infrastructure.database.orm_models import EscrowRecord

logger = get_logger(__name__)

mcp = FastMCP("Quorum Escrow", json_response=True)


def _error(tool: str, exc: EscrowError) -> dict:
    logger.warning("mcp.rejected", tool=tool, code=exc.code, error=exc.message)
    return {"error": exc.code, "message": exc.message}


def _progress(record: EscrowRecord) -> dict:
    return {
        "escrow_id": record.id,
        "escrow_key": record.key,
        "status": record.status,
        "completed": record.completed,
        "approvals_count": record.approvals_count,
        "required_approvals": record.required_approvals,
    }


@mcp.tool()
async def initialize_counter(caller: str) -> dict:
    """Create the escrow id counter. Needed once per deployment.

    Args:
        caller: Your identity.
    """
    try:
        async with session_scope() as session:
            counter = await EscrowService(session).initialize(caller)
    except EscrowError as exc:
        return _error("initialize_counter", exc)
    return {"counter_key": counter.key, "count": counter.count}


@mcp.tool()
async def create_escrow(
    caller: str,
    amount: int,
    beneficiary: str,
    approver_a: str,
    approver_b: str,
    approver_c: str = "",
    description: str = "",
) -> dict:
    """Lock funds from your account in a new escrow.

    Args:
        caller: Your identity; the amount is taken from this account.
        amount: Value to lock, in the ledger's smallest unit (> 0).
        beneficiary: Who receives the funds on release.
        approver_a: First approver identity.
        approver_b: Second approver identity.
        approver_c: Optional third approver. With three distinct approvers any two suffice.
        description: Up to 200 bytes (UTF-8) of free text.

    Returns:
        Escrow id, key and threshold. Keep the key for approve and cancel calls.
    """
    try:
        async with session_scope() as session:
            record = await EscrowService(session).create_escrow(
                creator=caller,
                amount=amount,
                beneficiary=beneficiary,
                approver_a=approver_a,
                approver_b=approver_b,
                approver_c=approver_c or None,
                description=description,
            )
    except EscrowError as exc:
        return _error("create_escrow", exc)
    return {**_progress(record), "amount": record.amount}


@mcp.tool()
async def approve_escrow(caller: str, escrow_key: str, beneficiary: str) -> dict:
    """Approve paying an escrow out to its beneficiary.

    Args:
        caller: Your identity; must be one of the escrow's approvers.
        escrow_key: Key of the escrow.
        beneficiary: The beneficiary you expect to be paid; must match the escrow.

    Returns:
        Approval progress. ``completed`` is true when this approval released the funds.
    """
    try:
        async with session_scope() as session:
            record = await EscrowService(session).approve(
                escrow_key=escrow_key,
                approver=caller,
                beneficiary=beneficiary,
            )
    except EscrowError as exc:
        return _error("approve_escrow", exc)
    return _progress(record)


@mcp.tool()
async def cancel_escrow(caller: str, escrow_key: str) -> dict:
    """Cancel an escrow you created and get the full amount back.

    Only possible before any approver has approved.

    Args:
        caller: Your identity; must be the escrow's creator.
        escrow_key: Key of the escrow.
    """
    try:
        async with session_scope() as session:
            record = await EscrowService(session).cancel(escrow_key=escrow_key, caller=caller)
    except EscrowError as exc:
        return _error("cancel_escrow", exc)
    return {**_progress(record), "refunded_amount": record.amount}


@mcp.tool()
async def check_status(escrow_key: str) -> dict:
    """Status, approvals so far, required approvals and allowed next events.

    Args:
        escrow_key: Key of the escrow.
    """
    try:
        async with session_scope() as session:
            return await EscrowService(session).get_status(escrow_key)
    except EscrowError as exc:
        return _error("check_status", exc)


@mcp.tool()
async def get_balance(identity: str) -> dict:
    """Available (not escrowed) balance of an identity."""
    async with session_scope() as session:
        balance = await VaultService(session).balance_of(identity)
    return {"identity": identity, "balance": balance}
