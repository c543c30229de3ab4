"""Domain exceptions for Quorum Escrow.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware,
which keys off the category base classes below.

Every error is raised before the unit of work mutates anything, so catching
one never leaves a partially updated record behind.
"""


class EscrowError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "ESCROW_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Categories ---


class EscrowValidationError(EscrowError):
    """Caller supplied malformed or inconsistent input."""


class EscrowAuthorizationError(EscrowError):
    """Caller identity is not entitled to act on this record."""


class EscrowStateConflictError(EscrowError):
    """Action is inconsistent with the record's current lifecycle state."""


class EscrowResourceError(EscrowError):
    """Environment precondition outside the record's own state failed."""


# --- Lookup ---


class EscrowNotFoundError(EscrowError):
    """Raised when no record exists under the given key."""

    def __init__(self, escrow_key: str) -> None:
        super().__init__(
            message=f"Escrow not found: {escrow_key}",
            code="ESCROW_NOT_FOUND",
        )
        self.escrow_key = escrow_key


# --- Validation Errors ---


class InvalidAmountError(EscrowValidationError):
    def __init__(self, amount: int) -> None:
        super().__init__(
            message=f"Escrow amount must be a positive 64-bit integer, got {amount}",
            code="INVALID_AMOUNT",
        )
        self.amount = amount


class InvalidApproverCountError(EscrowValidationError):
    """Raised when the first two approver slots are not both filled."""

    def __init__(self) -> None:
        super().__init__(
            message="At least two approvers (approver_a and approver_b) are required",
            code="INVALID_APPROVER_COUNT",
        )


class DescriptionTooLongError(EscrowValidationError):
    def __init__(self, length: int, limit: int) -> None:
        super().__init__(
            message=f"Description is {length} bytes, limit is {limit}",
            code="DESCRIPTION_TOO_LONG",
        )
        self.length = length
        self.limit = limit


class BeneficiaryMismatchError(EscrowValidationError):
    """Raised when the restated beneficiary differs from the stored one."""

    def __init__(self, escrow_key: str, supplied: str) -> None:
        super().__init__(
            message=f"Beneficiary {supplied} does not match escrow {escrow_key}",
            code="BENEFICIARY_MISMATCH",
        )
        self.supplied = supplied


# --- Authorization Errors ---


class UnauthorizedError(EscrowAuthorizationError):
    def __init__(self, caller: str, action: str) -> None:
        super().__init__(
            message=f"{caller} is not allowed to {action} this escrow",
            code="UNAUTHORIZED",
        )
        self.caller = caller
        self.action = action


# --- State Conflict Errors ---


class AlreadyApprovedError(EscrowStateConflictError):
    def __init__(self, escrow_key: str, approver: str) -> None:
        super().__init__(
            message=f"{approver} has already approved escrow {escrow_key}",
            code="ALREADY_APPROVED",
        )
        self.approver = approver


class EscrowAlreadyCompletedError(EscrowStateConflictError):
    def __init__(self, escrow_key: str) -> None:
        super().__init__(
            message=f"Escrow already completed: {escrow_key}",
            code="ESCROW_ALREADY_COMPLETED",
        )
        self.escrow_key = escrow_key


class CannotCancelAfterApprovalsError(EscrowStateConflictError):
    def __init__(self, escrow_key: str, approvals: int) -> None:
        super().__init__(
            message=f"Escrow {escrow_key} has {approvals} approval(s) and can no longer be cancelled",
            code="CANNOT_CANCEL_AFTER_APPROVALS",
        )
        self.approvals = approvals


class InvalidStateTransitionError(EscrowStateConflictError):
    """Raised when the state machine guard rejects a transition.

    The service checks ``completed`` before firing, so this only surfaces if a
    stored status and flag have drifted apart.
    """

    def __init__(self, current_state: str, attempted_event: str) -> None:
        super().__init__(
            message=f"Invalid state transition: {attempted_event} from {current_state}",
            code="INVALID_STATE_TRANSITION",
        )
        self.current_state = current_state
        self.attempted_event = attempted_event


# --- Resource Errors ---


class AlreadyInitializedError(EscrowResourceError):
    def __init__(self) -> None:
        super().__init__(
            message="Escrow counter is already initialized",
            code="ALREADY_INITIALIZED",
        )


class SequenceNotInitializedError(EscrowResourceError):
    def __init__(self) -> None:
        super().__init__(
            message="Escrow counter has not been initialized",
            code="SEQUENCE_NOT_INITIALIZED",
        )


class SequenceOverflowError(EscrowResourceError):
    def __init__(self, count: int) -> None:
        super().__init__(
            message=f"Escrow counter cannot advance past {count}",
            code="SEQUENCE_OVERFLOW",
        )


class InsufficientCallerBalanceError(EscrowResourceError):
    """Raised when the creator cannot cover the escrow amount."""

    def __init__(self, identity: str, required: int, available: int) -> None:
        super().__init__(
            message=(
                f"Insufficient balance for {identity}: "
                f"required {required}, available {available}"
            ),
            code="INSUFFICIENT_CALLER_BALANCE",
        )
        self.required = required
        self.available = available


class BalanceOverflowError(EscrowResourceError):
    """Raised when crediting an account would exceed the storable balance."""

    def __init__(self, identity: str, balance: int, amount: int) -> None:
        super().__init__(
            message=(
                f"Balance of {identity} cannot receive {amount}: "
                f"current {balance} would exceed the maximum"
            ),
            code="BALANCE_OVERFLOW",
        )
        self.identity = identity
        self.balance = balance
        self.amount = amount


# --- Idempotency Errors ---


class DuplicateOperationError(EscrowError):
    """Raised when a duplicate idempotency key is detected."""

    def __init__(self, idempotency_key: str) -> None:
        super().__init__(
            message=f"Duplicate operation detected for key: {idempotency_key}",
            code="DUPLICATE_OPERATION",
        )
