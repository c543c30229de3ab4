"""SQLAlchemy 2.0 ORM models for Quorum Escrow.

Five tables:
    1. sequence_counters  - The singleton escrow id counter.
    2. escrow_records     - One row per escrow, keyed by its derived storage key.
    3. vault_cells        - Custodied value, bound one-to-one to a record.
    4. accounts           - Available balances of identities (creators, beneficiaries).
    5. escrow_events      - Append-only audit log of every record mutation.

Design decisions:
    - Records use the derived hex key as primary key; the numeric id is unique too.
    - BIGINT for amounts and ids, with CHECK constraints for sign.
    - Generic JSON for the approvals list so the schema also runs on SQLite.
    - escrow_events is append-only: no UPDATE or DELETE at the application level.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from quorum_escrow.domain.enums import EscrowStatus
from quorum_escrow.domain.policy import required_approvals


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def _set_updated_at(mapper, connection, target):  # noqa: ANN001
    """SQLAlchemy event listener that updates `updated_at` before flush."""
    if hasattr(target, "updated_at"):
        target.updated_at = datetime.now(UTC)


# ---------------------------------------------------------------------------
# 1. sequence_counters
# ---------------------------------------------------------------------------
class SequenceCounter(Base):
    """Number of escrows ever created. Exactly one row, under the counter key."""

    __tablename__ = "sequence_counters"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    initialized_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    __table_args__ = (CheckConstraint("count >= 0", name="ck_counter_non_negative"),)

    def __repr__(self) -> str:
        return f"<SequenceCounter count={self.count}>"


# ---------------------------------------------------------------------------
# 2. escrow_records
# ---------------------------------------------------------------------------
class EscrowRecord(Base):
    """A custodied deposit and its approval state."""

    __tablename__ = "escrow_records"

    # --- Identity ---
    key: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="sha256(b'escrow' || id as u64 little-endian), hex",
    )
    id: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    # --- Participants ---
    creator: Mapped[str] = mapped_column(String(64), nullable=False)
    beneficiary: Mapped[str] = mapped_column(String(64), nullable=False)
    approver_a: Mapped[str] = mapped_column(String(64), nullable=False)
    approver_b: Mapped[str] = mapped_column(String(64), nullable=False)
    approver_c: Mapped[str | None] = mapped_column(String(64), nullable=True, default=None)

    # --- Terms ---
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # --- Approval state ---
    approvals: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="Approver identities in arrival order",
    )
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(
        String(12),
        nullable=False,
        default=EscrowStatus.ACTIVE.value,
        comment="ACTIVE, RELEASED or CANCELLED (guarded by EscrowStateMachine)",
    )

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('ACTIVE', 'RELEASED', 'CANCELLED')",
            name="ck_escrow_valid_status",
        ),
        CheckConstraint("amount > 0", name="ck_escrow_positive_amount"),
        CheckConstraint("id > 0", name="ck_escrow_positive_id"),
        Index("idx_escrow_creator", "creator"),
        Index("idx_escrow_beneficiary", "beneficiary"),
        Index("idx_escrow_status", "status"),
    )

    @property
    def approvers(self) -> list[str]:
        """Designated approvers in slot order, absent third slot omitted."""
        slots = [self.approver_a, self.approver_b, self.approver_c]
        return [a for a in slots if a is not None]

    @property
    def required_approvals(self) -> int:
        return required_approvals(self.approvers)

    @property
    def approvals_count(self) -> int:
        return len(self.approvals)

    def is_approver(self, identity: str) -> bool:
        return identity in self.approvers

    def has_approved(self, identity: str) -> bool:
        return identity in self.approvals

    def __repr__(self) -> str:
        return (
            f"<EscrowRecord id={self.id} status={self.status} "
            f"approvals={len(self.approvals or [])}/{self.required_approvals}>"
        )


# ---------------------------------------------------------------------------
# 3. vault_cells
# ---------------------------------------------------------------------------
class VaultCell(Base):
    """Value custodied for one escrow record for the record's whole lifetime."""

    __tablename__ = "vault_cells"

    escrow_key: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("escrow_records.key", ondelete="RESTRICT"),
        primary_key=True,
    )
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    drained_to: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        default=None,
        comment="Destination of the single outbound movement",
    )

    __table_args__ = (CheckConstraint("balance >= 0", name="ck_vault_non_negative"),)

    def __repr__(self) -> str:
        return f"<VaultCell escrow={self.escrow_key[:12]} balance={self.balance}>"


# ---------------------------------------------------------------------------
# 4. accounts
# ---------------------------------------------------------------------------
class Account(Base):
    """Available (non-custodied) balance of an identity."""

    __tablename__ = "accounts"

    identity: Mapped[str] = mapped_column(String(64), primary_key=True)
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (CheckConstraint("balance >= 0", name="ck_account_non_negative"),)

    def __repr__(self) -> str:
        return f"<Account identity={self.identity} balance={self.balance}>"


# ---------------------------------------------------------------------------
# 5. escrow_events (Append-Only Audit Log)
# ---------------------------------------------------------------------------
class EscrowEvent(Base):
    """Immutable audit record of every mutation in a record's lifecycle.

    RELEASED and CANCELLED records both carry ``completed=True``; the events
    here also keep the destination and amount of the final movement.
    """

    __tablename__ = "escrow_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    escrow_key: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("escrow_records.key", ondelete="CASCADE"),
        nullable=False,
    )
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    old_status: Mapped[str | None] = mapped_column(
        String(12),
        nullable=True,
        comment="Record status before this event (null for creation)",
    )
    new_status: Mapped[str] = mapped_column(String(12), nullable=False)
    actor: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Caller identity that triggered this event",
    )
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
        default=None,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        Index("idx_event_escrow", "escrow_key"),
        Index("idx_event_type", "event_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<EscrowEvent id={self.id} type={self.event_type} "
            f"{self.old_status}->{self.new_status}>"
        )


event.listen(EscrowRecord, "before_update", _set_updated_at)
event.listen(Account, "before_update", _set_updated_at)
