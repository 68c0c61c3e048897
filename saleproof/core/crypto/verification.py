"""
Integrity verification for sales, Merkle proofs, audits and the ledger log.

Every check here is a pure function. A mismatch is a normal outcome and is
returned as ``False`` or recorded on a result object; it is never raised.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from pydantic import ValidationError

from saleproof.core.crypto.fingerprint import fingerprint
from saleproof.core.crypto.hash_chain import GENESIS_HASH, compute_entry_hash
from saleproof.core.crypto.merkle import (
    EMPTY_ROOT,
    MerkleProof,
    compute_merkle_root,
    root_from_proof,
)
from saleproof.core.exceptions import InvalidRecord
from saleproof.core.records import AuditRecord, EntryKind, LedgerEntry, TransactionRecord


@dataclass
class LedgerVerificationResult:
    """Result of verifying the ledger log.

    Attributes
    ----------
    is_valid:
        ``True`` if the hash chain is intact and every stored fingerprint
        matches its record.
    verified_count:
        Number of entries whose chain link verified.
    first_break_at:
        Sequence number where the chain first broke, or ``None``.
    mismatched_ids:
        Transaction ids whose recomputed fingerprint differs from the stored one.
    errors:
        Human-readable descriptions of integrity violations.
    """

    is_valid: bool = True
    verified_count: int = 0
    first_break_at: int | None = None
    mismatched_ids: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def verify_record(record: TransactionRecord, stored_fingerprint: str) -> bool:
    """Recompute a sale's fingerprint and compare it to the stored one.

    A record that can no longer be fingerprinted is reported as a mismatch.
    """
    try:
        return fingerprint(record) == stored_fingerprint
    except InvalidRecord:
        return False


def verify_proof(leaf: str, proof: MerkleProof, root: str) -> bool:
    """Check that ``proof`` links ``leaf`` to ``root``.

    Returns ``False`` for an empty-batch root or a proof issued for another leaf.
    """
    if root == EMPTY_ROOT or proof.leaf != leaf:
        return False
    return root_from_proof(leaf, proof.siblings) == root


def verify_audit(audit: AuditRecord, fingerprints: Sequence[str]) -> bool:
    """Rebuild an audit root from the fingerprints it claims to cover."""
    if audit.record_count != len(fingerprints) or not fingerprints:
        return False
    return compute_merkle_root(fingerprints) == audit.merkle_root


def verify_ledger(entries: Sequence[LedgerEntry]) -> LedgerVerificationResult:
    """Verify the integrity of the ledger log.

    Entries must be ordered by ``sequence``. The chain check stops at the
    first broken link; fingerprint checks continue over every transaction
    so that all tampered sales are reported.
    """
    result = LedgerVerificationResult()
    expected_prev = GENESIS_HASH
    chain_intact = True

    for entry in entries:
        if chain_intact:
            if entry.prev_entry_hash != expected_prev:
                chain_intact = False
                result.first_break_at = entry.sequence
                result.errors.append(
                    f"Entry {entry.sequence}: prev_entry_hash mismatch "
                    f"(stored={entry.prev_entry_hash!r}, expected={expected_prev!r})"
                )
            else:
                recomputed = compute_entry_hash(entry.chain_data(), expected_prev)
                if recomputed != entry.entry_hash:
                    chain_intact = False
                    result.first_break_at = entry.sequence
                    result.errors.append(
                        f"Entry {entry.sequence}: hash mismatch "
                        f"(stored={entry.entry_hash!r}, recomputed={recomputed!r})"
                    )
                else:
                    result.verified_count += 1
                    expected_prev = entry.entry_hash

        if entry.kind == EntryKind.TRANSACTION:
            _check_transaction_payload(entry, result)

    result.is_valid = chain_intact and not result.mismatched_ids
    return result


def _check_transaction_payload(entry: LedgerEntry, result: LedgerVerificationResult) -> None:
    payload = entry.payload
    record_data = payload.get("record")
    record_id = str(record_data.get("id")) if isinstance(record_data, dict) else "?"
    try:
        record = TransactionRecord.model_validate(record_data)
    except ValidationError:
        result.mismatched_ids.append(record_id)
        result.errors.append(f"Entry {entry.sequence}: transaction record is malformed")
        return
    if not verify_record(record, str(payload.get("fingerprint", ""))):
        result.mismatched_ids.append(record.id)
        result.errors.append(
            f"Entry {entry.sequence}: fingerprint mismatch for transaction {record.id!r}"
        )
