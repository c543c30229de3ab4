"""Domain layer: pure business logic with zero framework dependencies."""

from quorum_escrow.domain.enums import (
    EscrowStatus,
    EventType,
)
from quorum_escrow.domain.exceptions import (
    EscrowError,
    EscrowNotFoundError,
    InvalidStateTransitionError,
)
from quorum_escrow.domain.keys import (
    derive_counter_key,
    derive_escrow_key,
)
from quorum_escrow.domain.policy import (
    NULL_IDENTITY,
    distinct_approvers,
    required_approvals,
    validate_creation,
)
from quorum_escrow.domain.state_machine import (
    EscrowStateMachine,
    validate_transition,
)

__all__ = [
    "EscrowStatus",
    "EventType",
    "EscrowError",
    "EscrowNotFoundError",
    "InvalidStateTransitionError",
    "derive_counter_key",
    "derive_escrow_key",
    "NULL_IDENTITY",
    "distinct_approvers",
    "required_approvals",
    "validate_creation",
    "EscrowStateMachine",
    "validate_transition",
]
