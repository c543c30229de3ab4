"""Domain enumerations for Quorum Escrow.

These enums define the canonical states and event types used throughout the
system. They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum


class EscrowStatus(enum.StrEnum):
    """Lifecycle states of an escrow record.

    RELEASED and CANCELLED are both terminal and both imply ``completed=True``.
    The tag records which path closed the record.
    """

    ACTIVE = "ACTIVE"
    RELEASED = "RELEASED"
    CANCELLED = "CANCELLED"


class EventType(enum.StrEnum):
    """Types of audit events recorded in the escrow_events table.

    Every mutation of a record produces exactly one event, and a release
    produces an APPROVAL_RECORDED followed by an ESCROW_RELEASED.
    """

    ESCROW_CREATED = "ESCROW_CREATED"
    APPROVAL_RECORDED = "APPROVAL_RECORDED"
    ESCROW_RELEASED = "ESCROW_RELEASED"
    ESCROW_CANCELLED = "ESCROW_CANCELLED"
