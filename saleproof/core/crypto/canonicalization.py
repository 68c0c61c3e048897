"""Canonicalization helpers for stable cross-platform hashing."""

from __future__ import annotations

import hashlib
from decimal import Decimal, InvalidOperation
from typing import Any

import rfc8785

from saleproof.core.exceptions import InvalidRecord

CANONICALIZATION_RFC8785 = "rfc8785"
SHA256_ALGORITHM = "sha-256"

# Monetary values enter the hash preimage as integer minor units (cents).
MINOR_UNIT_EXPONENT = 2
_MINOR_UNIT_SCALE = Decimal(10) ** MINOR_UNIT_EXPONENT


def canonicalize_jcs_bytes(data: Any) -> bytes:
    """Return RFC 8785 (JCS) canonical bytes.

    Raises
    ------
    InvalidRecord
        If ``data`` holds a value outside the JCS domain (floats that are
        not finite, integers beyond the IEEE-754 safe range, non-JSON types).
    """
    try:
        canonical = rfc8785.dumps(data)
    except rfc8785.CanonicalizationError as exc:
        raise InvalidRecord(f"Value cannot be canonicalized: {exc}") from exc
    if isinstance(canonical, bytes):
        return canonical
    return str(canonical).encode("utf-8")


def sha256_hex(data: bytes | str) -> str:
    """Lowercase hex SHA-256 of raw bytes or a UTF-8 string."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def sha256_hex_jcs(data: Any) -> str:
    """Compute SHA-256 hex digest over RFC 8785 canonical bytes."""
    return sha256_hex(canonicalize_jcs_bytes(data))


def to_minor_units(value: Decimal | int | str, *, field: str = "amount") -> int:
    """Convert a decimal money value to an exact integer count of minor units.

    ``Decimal("3.50")`` becomes ``350``. Values with more fractional digits
    than :data:`MINOR_UNIT_EXPONENT`, NaN and infinities are rejected rather
    than rounded.
    """
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise InvalidRecord(f"{field} is not a decimal value: {value!r}") from exc
    if not amount.is_finite():
        raise InvalidRecord(f"{field} must be finite, got {value!r}")
    scaled = amount * _MINOR_UNIT_SCALE
    if scaled != scaled.to_integral_value():
        raise InvalidRecord(
            f"{field} has more than {MINOR_UNIT_EXPONENT} fractional digits: {value!r}"
        )
    return int(scaled)
