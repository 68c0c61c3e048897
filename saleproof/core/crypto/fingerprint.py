"""
Deterministic fingerprints for sale transactions.

The fingerprint of a record is ``SHA256(JCS(payload))`` where ``payload`` is::

    {
        "amount": <int minor units>,
        "items": [{"id": str, "name": str, "price": <int minor units>,
                   "quantity": int}, ...],          # original list order
        "operatorId": str,
        "paymentMethod": str,
        "timestamp": <int milliseconds>,
    }

and ``JCS`` is RFC 8785 canonical JSON (sorted keys, no whitespace). This
payload is the hash preimage contract: changing it invalidates every
fingerprint already stored or anchored.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from saleproof.core.crypto.canonicalization import (
    canonicalize_jcs_bytes,
    sha256_hex,
    to_minor_units,
)
from saleproof.core.exceptions import InvalidRecord
from saleproof.core.records import TransactionRecord

FINGERPRINT_HEX_LENGTH = 64

_DIGEST_RE = re.compile(r"^[0-9a-f]{64}$")


def is_digest(value: object) -> bool:
    """Return ``True`` for a 64-char lowercase hex string."""
    return isinstance(value, str) and _DIGEST_RE.match(value) is not None


def canonical_record_payload(record: TransactionRecord) -> dict[str, Any]:
    """Reduce a record to the fixed field subset that is fingerprinted."""
    items = []
    for index, item in enumerate(record.items):
        if not item.id or not item.name:
            raise InvalidRecord(f"items.{index}: line item requires id and name")
        items.append(
            {
                "id": item.id,
                "name": item.name,
                "price": to_minor_units(item.price, field=f"items.{index}.price"),
                "quantity": item.quantity,
            }
        )
    return {
        "amount": to_minor_units(record.amount),
        "items": items,
        "operatorId": record.operator_id,
        "paymentMethod": record.payment_method,
        "timestamp": record.timestamp,
    }


def canonical_record_bytes(record: TransactionRecord) -> bytes:
    """Return the canonical byte encoding hashed by :func:`fingerprint`."""
    return canonicalize_jcs_bytes(canonical_record_payload(record))


def fingerprint(record: TransactionRecord | Mapping[str, Any]) -> str:
    """Compute the SHA-256 fingerprint of a sale.

    Parameters
    ----------
    record:
        A :class:`TransactionRecord`, or a raw mapping that is validated
        into one first.

    Returns
    -------
    str
        64 lowercase hex characters, no ``0x`` prefix.

    Raises
    ------
    InvalidRecord
        If required fields are absent or malformed.
    """
    if not isinstance(record, TransactionRecord):
        record = TransactionRecord.from_payload(record)
    return sha256_hex(canonical_record_bytes(record))


def to_bytes32_hex(digest: str) -> str:
    """Format a digest as a ``0x``-prefixed 32-byte hex word for external ledgers."""
    if not is_digest(digest):
        raise ValueError(f"Not a SHA-256 hex digest: {digest!r}")
    return f"0x{digest}"


def from_bytes32_hex(value: str) -> str:
    """Strip the ``0x`` prefix an external ledger adds and normalise case."""
    digest = value[2:] if value[:2].lower() == "0x" else value
    digest = digest.lower()
    if not is_digest(digest):
        raise ValueError(f"Not a 32-byte hex word: {value!r}")
    return digest
