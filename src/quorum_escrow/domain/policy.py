"""Approval policy and creation rules.

Pure functions only. The threshold is derived from the number of *distinct*
approvers named at creation, so a creator who lists the same identity twice
gets a single-signer escrow:

    distinct approvers   required approvals
    ------------------   ------------------
            1                    1
            2                    2
            3                    2
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from quorum_escrow.domain.exceptions import (
    DescriptionTooLongError,
    InvalidAmountError,
    InvalidApproverCountError,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

# All-zero public key in base58; clients send it for "no approver".
NULL_IDENTITY = "11111111111111111111111111111111"

# Amounts and ids are stored as signed BIGINT.
MAX_AMOUNT = 2**63 - 1
MAX_ESCROW_ID = 2**63 - 1

DEFAULT_MAX_DESCRIPTION_LENGTH = 200


def is_null_identity(identity: str | None) -> bool:
    return not identity or identity == NULL_IDENTITY


def distinct_approvers(approvers: Iterable[str | None]) -> list[str]:
    """Return the non-null approvers with duplicates removed, first occurrence kept."""
    seen: list[str] = []
    for approver in approvers:
        if is_null_identity(approver) or approver in seen:
            continue
        seen.append(approver)
    return seen


def required_approvals(approvers: Iterable[str | None]) -> int:
    """Number of distinct approvals needed before funds are released."""
    return min(len(distinct_approvers(approvers)), 2)


def normalize_optional_approver(approver: str | None) -> str | None:
    """Map the null placeholder for the optional third slot to ``None``."""
    return None if is_null_identity(approver) else approver


def validate_creation(
    amount: int,
    approver_a: str | None,
    approver_b: str | None,
    description: str,
    max_description_length: int = DEFAULT_MAX_DESCRIPTION_LENGTH,
) -> None:
    """Check create inputs in order: amount, approvers, description.

    Raises:
        InvalidAmountError: amount is not in ``1..MAX_AMOUNT``.
        InvalidApproverCountError: approver_a or approver_b is missing.
        DescriptionTooLongError: description is longer than the limit in UTF-8 bytes.
    """
    if amount <= 0 or amount > MAX_AMOUNT:
        raise InvalidAmountError(amount)
    if is_null_identity(approver_a) or is_null_identity(approver_b):
        raise InvalidApproverCountError()
    size = len(description.encode("utf-8"))
    if size > max_description_length:
        raise DescriptionTooLongError(size, max_description_length)
