"""
SHA-256 hash chaining for the append-only ledger.

Each entry hash is computed as ``SHA256(JCS(entry_data) + prev_hash)``,
so editing, dropping, or reordering any stored entry invalidates every
later entry hash.
"""

from __future__ import annotations

import hashlib
from typing import Any

from saleproof.core.crypto.canonicalization import canonicalize_jcs_bytes

# Convenience constant for the first entry in a chain.
GENESIS_HASH: str = "0" * 64


def compute_entry_hash(entry_data: dict[str, Any], prev_hash: str) -> str:
    """Compute the SHA-256 hash for a ledger entry in a chain.

    Parameters
    ----------
    entry_data:
        ``sequence``, ``kind`` and ``payload`` of the entry.
    prev_hash:
        Hex-encoded hash of the previous entry, or :data:`GENESIS_HASH`.

    Returns
    -------
    str
        Hex-encoded SHA-256 digest.
    """
    hasher = hashlib.sha256()
    hasher.update(canonicalize_jcs_bytes(entry_data))
    hasher.update(prev_hash.encode("utf-8"))
    return hasher.hexdigest()
