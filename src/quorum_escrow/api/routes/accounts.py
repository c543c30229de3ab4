"""Account balance routes.

Routes:
    GET    /api/v1/accounts/{identity}          - Available balance
    POST   /api/v1/accounts/{identity}/credit   - Development faucet
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from quorum_escrow.api.deps import get_app_settings, get_vault_service
from quorum_escrow.config import Settings
from quorum_escrow.logging_config import get_logger
from quorum_escrow.schemas.escrow import AccountResponse, CreditAccountRequest
from quorum_escrow.services.vault_service import VaultService

router = APIRouter(prefix="/api/v1/accounts", tags=["Accounts"])
logger = get_logger(__name__)


@router.get("/{identity}", response_model=AccountResponse, summary="Get available balance")
async def get_account(
    identity: str,
    vault: VaultService = Depends(get_vault_service),
) -> AccountResponse:
    balance = await vault.balance_of(identity)
    return AccountResponse(identity=identity, balance=balance)


@router.post(
    "/{identity}/credit",
    response_model=AccountResponse,
    summary="Credit an account (development only)",
)
async def credit_account(
    identity: str,
    request: CreditAccountRequest,
    vault: VaultService = Depends(get_vault_service),
    settings: Settings = Depends(get_app_settings),
) -> AccountResponse:
    """Mint value into an account so it can fund escrows in a sandbox."""
    if not settings.faucet_active:
        raise HTTPException(status_code=404, detail="Not Found")
    account = await vault.credit(identity, request.amount)
    return AccountResponse(identity=account.identity, balance=account.balance)
