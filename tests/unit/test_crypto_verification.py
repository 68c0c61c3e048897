"""Tests for crypto verification module."""

from __future__ import annotations

import hashlib
from decimal import Decimal

from saleproof.core.crypto.fingerprint import fingerprint
from saleproof.core.crypto.hash_chain import GENESIS_HASH, compute_entry_hash
from saleproof.core.crypto.merkle import EMPTY_ROOT, MerkleProof, build_tree, prove_inclusion
from saleproof.core.crypto.verification import (
    LedgerVerificationResult,
    verify_audit,
    verify_ledger,
    verify_proof,
    verify_record,
)
from saleproof.core.records import AuditRecord, EntryKind, LedgerEntry, TransactionEntry


def _sha256_hex(data: str) -> str:
    return hashlib.sha256(data.encode()).hexdigest()


def _build_chain(payloads: list[dict[str, object]]) -> list[LedgerEntry]:
    """Build a valid chain of transaction entries with proper hashes."""
    chain: list[LedgerEntry] = []
    prev_hash = GENESIS_HASH
    for i, payload in enumerate(payloads, start=1):
        data = {"sequence": i, "kind": EntryKind.TRANSACTION.value, "payload": payload}
        entry_hash = compute_entry_hash(data, prev_hash)
        chain.append(
            LedgerEntry(
                sequence=i,
                kind=EntryKind.TRANSACTION,
                payload=payload,
                prev_entry_hash=prev_hash,
                entry_hash=entry_hash,
            )
        )
        prev_hash = entry_hash
    return chain


def _transaction_payloads(make_sale, count: int) -> list[dict[str, object]]:
    payloads = []
    for i in range(count):
        record = make_sale(id=f"sale-{i}", timestamp=1700000000000 + i)
        entry = TransactionEntry(record=record, fingerprint=fingerprint(record))
        payloads.append(entry.model_dump(mode="json"))
    return payloads


class TestVerifyRecord:
    """Tests for single-record verification."""

    def test_round_trip(self, make_sale) -> None:
        record = make_sale()
        assert verify_record(record, fingerprint(record))

    def test_other_record_fingerprint_fails(self, make_sale) -> None:
        record = make_sale()
        other = make_sale(amount=Decimal("9.26"))
        assert verify_record(record, fingerprint(other)) is False

    def test_unfingerprintable_record_is_mismatch(self, make_sale) -> None:
        record = make_sale(amount=Decimal("9.251"))
        assert verify_record(record, "a" * 64) is False


class TestVerifyProof:
    """Tests for proof verification."""

    LEAVES = [_sha256_hex(f"leaf{i}") for i in range(4)]

    def test_valid_proof(self) -> None:
        tree = build_tree(self.LEAVES)
        assert verify_proof(self.LEAVES[3], prove_inclusion(tree, 3), tree.root)

    def test_wrong_leaf_fails(self) -> None:
        tree = build_tree(self.LEAVES)
        proof = prove_inclusion(tree, 0)
        assert not verify_proof(_sha256_hex("wrong"), proof, tree.root)

    def test_forged_leaf_with_same_siblings_fails(self) -> None:
        tree = build_tree(self.LEAVES)
        proof = prove_inclusion(tree, 0)
        forged = MerkleProof(leaf=_sha256_hex("wrong"), leaf_index=0, siblings=proof.siblings)
        assert not verify_proof(forged.leaf, forged, tree.root)

    def test_wrong_root_fails(self) -> None:
        tree = build_tree(self.LEAVES)
        proof = prove_inclusion(tree, 0)
        assert not verify_proof(self.LEAVES[0], proof, "bad" * 16)

    def test_empty_root_never_verifies(self) -> None:
        proof = MerkleProof(leaf=self.LEAVES[0], leaf_index=0)
        assert not verify_proof(self.LEAVES[0], proof, EMPTY_ROOT)


class TestVerifyAudit:
    """Tests for audit root re-derivation."""

    LEAVES = [_sha256_hex(f"leaf{i}") for i in range(3)]

    def test_matching_root(self) -> None:
        audit = AuditRecord(merkle_root=build_tree(self.LEAVES).root, record_count=3)
        assert verify_audit(audit, self.LEAVES)

    def test_count_mismatch(self) -> None:
        audit = AuditRecord(merkle_root=build_tree(self.LEAVES).root, record_count=2)
        assert not verify_audit(audit, self.LEAVES)

    def test_altered_leaf(self) -> None:
        audit = AuditRecord(merkle_root=build_tree(self.LEAVES).root, record_count=3)
        assert not verify_audit(audit, [self.LEAVES[0], self.LEAVES[1], _sha256_hex("x")])

    def test_empty_batch(self) -> None:
        audit = AuditRecord(merkle_root=EMPTY_ROOT, record_count=0)
        assert not verify_audit(audit, [])


class TestVerifyLedger:
    """Tests for ledger chain verification."""

    def test_empty_ledger(self) -> None:
        result = verify_ledger([])
        assert isinstance(result, LedgerVerificationResult)
        assert result.is_valid
        assert result.verified_count == 0

    def test_valid_chain(self, make_sale) -> None:
        chain = _build_chain(_transaction_payloads(make_sale, 3))
        result = verify_ledger(chain)
        assert result.is_valid
        assert result.verified_count == 3
        assert result.first_break_at is None
        assert result.errors == []

    def test_edited_record_breaks_chain_and_fingerprint(self, make_sale) -> None:
        chain = _build_chain(_transaction_payloads(make_sale, 3))
        chain[1].payload["record"]["amount"] = "1.00"
        result = verify_ledger(chain)
        assert not result.is_valid
        assert result.first_break_at == 2
        assert result.verified_count == 1
        assert result.mismatched_ids == ["sale-1"]

    def test_rechained_edit_still_caught_by_fingerprint(self, make_sale) -> None:
        payloads = _transaction_payloads(make_sale, 2)
        payloads[0]["record"]["operator_id"] = "op-evil"
        result = verify_ledger(_build_chain(payloads))
        assert result.first_break_at is None
        assert not result.is_valid
        assert result.mismatched_ids == ["sale-0"]

    def test_relinked_entry(self, make_sale) -> None:
        chain = _build_chain(_transaction_payloads(make_sale, 2))
        tampered = chain[1].model_copy(update={"prev_entry_hash": "f" * 64})
        result = verify_ledger([chain[0], tampered])
        assert not result.is_valid
        assert result.first_break_at == 2
        assert "prev_entry_hash mismatch" in result.errors[0]

    def test_malformed_record_reported(self, make_sale) -> None:
        payloads = _transaction_payloads(make_sale, 1)
        del payloads[0]["record"]["items"]
        result = verify_ledger(_build_chain(payloads))
        assert not result.is_valid
        assert result.mismatched_ids == ["sale-0"]
