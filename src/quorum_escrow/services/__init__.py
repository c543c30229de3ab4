"""Application services: use case orchestration."""

from quorum_escrow.services.escrow_service import EscrowService
from quorum_escrow.services.vault_service import VaultService

__all__ = ["EscrowService", "VaultService"]
