"""Deterministic storage keys.

Records are addressed by ``sha256(namespace || id_le64)`` so anyone who knows
an escrow id can recompute its key without a lookup table. The counter lives
under a fixed key derived from its namespace alone.
"""

from __future__ import annotations

import hashlib

ESCROW_NAMESPACE = b"escrow"
COUNTER_NAMESPACE = b"counter"


def derive_key(namespace: bytes, *parts: bytes) -> str:
    digest = hashlib.sha256(namespace)
    for part in parts:
        digest.update(part)
    return digest.hexdigest()


def derive_escrow_key(escrow_id: int) -> str:
    """Storage key for the escrow with the given id."""
    if escrow_id < 0:
        raise ValueError(f"escrow id must be non-negative, got {escrow_id}")
    return derive_key(ESCROW_NAMESPACE, escrow_id.to_bytes(8, "little"))


def derive_counter_key() -> str:
    return derive_key(COUNTER_NAMESPACE)
