"""Service layer for building, signing and anchoring audit Merkle roots."""

from __future__ import annotations

from saleproof.core.config import Settings, get_settings
from saleproof.core.crypto.anchoring import AnchorClient, corroborate
from saleproof.core.crypto.merkle import build_tree
from saleproof.core.crypto.signing import SIGNATURE_ALGORITHM, sign_merkle_root, verify_signature
from saleproof.core.crypto.verification import verify_audit, verify_proof, verify_record
from saleproof.core.exceptions import AnchorUnavailable, LedgerError
from saleproof.core.logging import get_logger
from saleproof.core.records import (
    AnchorEntry,
    AuditEntry,
    AuditRecord,
    EntryKind,
    StoredAudit,
    StoredTransaction,
)
from saleproof.modules.audit.schemas import AuditVerification, SaleInclusionProof
from saleproof.modules.ledger.store import LedgerStore

logger = get_logger(__name__)


class AuditAnchoringService:
    """Batch unaudited sales into Merkle roots and record them in the ledger.

    Each batch is the run of sales appended after the previous audit, read
    once as a snapshot. Sales appended while a batch is being built belong
    to the next batch.
    """

    def __init__(
        self,
        store: LedgerStore,
        anchor: AnchorClient | None = None,
        *,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._anchor = anchor
        self._settings = settings or get_settings()

    async def anchor_next_batch(self) -> StoredAudit | None:
        """Audit the next batch of sales, or return ``None`` if nothing is pending."""
        start_after = await self._store.last_audited_sequence()
        pending = await self._store.snapshot_transactions(
            after_sequence=start_after,
            limit=max(1, int(self._settings.audit_batch_size)),
        )
        if not pending:
            return None

        tree = build_tree([stored.fingerprint for stored in pending])

        signature: str | None = None
        signature_kid: str | None = None
        signature_algorithm: str | None = None
        if self._settings.audit_signing_key:
            signature = sign_merkle_root(tree.root, self._settings.audit_signing_key)
            signature_kid = self._settings.audit_signing_key_id
            signature_algorithm = SIGNATURE_ALGORITHM

        audit = AuditRecord(
            merkle_root=tree.root,
            record_count=tree.size,
            first_sequence=pending[0].sequence,
            last_sequence=pending[-1].sequence,
            signature=signature,
            signature_kid=signature_kid,
            signature_algorithm=signature_algorithm,
        )
        entry = await self._store.append(AuditEntry(audit=audit))
        logger.info(
            "audit_root_recorded",
            merkle_root=tree.root,
            record_count=tree.size,
            first_sequence=audit.first_sequence,
            last_sequence=audit.last_sequence,
            signed=signature is not None,
        )

        stored = StoredAudit(audit=audit, sequence=entry.sequence)
        if self._anchor is None:
            return stored
        return await self._anchor_root(self._anchor, stored)

    async def anchor_audit(self, audit_sequence: int) -> StoredAudit:
        """Submit an already recorded audit root, e.g. after an anchor outage.

        Raises
        ------
        LedgerError
            If no audit entry exists at ``audit_sequence``.
        """
        for stored in await self._store.list_audit_records():
            if stored.sequence == audit_sequence:
                break
        else:
            raise LedgerError(f"Audit at sequence {audit_sequence} not found")
        if stored.audit.anchor_ref is not None or self._anchor is None:
            return stored
        return await self._anchor_root(self._anchor, stored)

    async def anchor_unanchored_roots(self) -> list[StoredAudit]:
        """Retry every stored root without an anchor reference.

        Returns the audits that are now anchored.
        """
        if self._anchor is None:
            return []
        anchored: list[StoredAudit] = []
        for stored in await self._store.list_audit_records():
            if stored.audit.anchor_ref is not None:
                continue
            result = await self._anchor_root(self._anchor, stored)
            if result.audit.anchor_ref is not None:
                anchored.append(result)
        return anchored

    async def anchor_all_pending(self, *, max_batches: int | None = None) -> list[StoredAudit]:
        """Audit all currently pending sales, one batch at a time."""
        audits: list[StoredAudit] = []
        while max_batches is None or len(audits) < max_batches:
            audit = await self.anchor_next_batch()
            if audit is None:
                break
            audits.append(audit)
        return audits

    async def covered_transactions(self, stored: StoredAudit) -> list[StoredTransaction]:
        """Sales whose fingerprints are the leaves of ``stored``'s root, in order."""
        first = stored.audit.first_sequence
        last = stored.audit.last_sequence
        if first is None or last is None:
            return []
        return [
            transaction
            for transaction in await self._store.list_transactions()
            if first <= transaction.sequence <= last
        ]

    async def verify_audits(self, *, public_key_pem: str | None = None) -> list[AuditVerification]:
        """Re-derive every stored audit root and, where possible, its signature and anchor."""
        results: list[AuditVerification] = []
        for stored in await self._store.list_audit_records():
            audit = stored.audit
            covered = await self.covered_transactions(stored)
            leaves = [t.fingerprint for t in covered]
            mismatched_ids = [
                t.transaction_id
                for t in covered
                if t.record is None or not verify_record(t.record, t.fingerprint)
            ]
            try:
                root_match = verify_audit(audit, leaves)
            except ValueError:
                root_match = False

            signature_valid: bool | None = None
            if public_key_pem and audit.signature:
                signature_valid = verify_signature(
                    audit.merkle_root, audit.signature, public_key_pem
                )

            anchor_match: bool | None = None
            if self._anchor is not None and audit.anchor_ref is not None:
                anchor_match = await corroborate(self._anchor, audit.anchor_ref, audit.merkle_root)

            if (
                not root_match
                or mismatched_ids
                or signature_valid is False
                or anchor_match is False
            ):
                logger.warning(
                    "audit_integrity_mismatch",
                    audit_sequence=stored.sequence,
                    root_match=root_match,
                    mismatched_ids=mismatched_ids,
                    signature_valid=signature_valid,
                    anchor_match=anchor_match,
                )
            results.append(
                AuditVerification(
                    audit_sequence=stored.sequence,
                    merkle_root=audit.merkle_root,
                    record_count=audit.record_count,
                    root_match=root_match,
                    mismatched_ids=mismatched_ids,
                    signature_valid=signature_valid,
                    anchor_match=anchor_match,
                )
            )
        return results

    async def prove_sale(self, transaction_id: str) -> SaleInclusionProof | None:
        """Build an inclusion proof tying a sale to the audit root that covers it.

        Returns ``None`` if the sale is unknown or not yet covered by an audit.
        ``is_valid`` covers the stored fingerprint's inclusion in the root;
        ``record_intact`` whether the stored record still matches that fingerprint.
        """
        transaction = await self._store.find_transaction(transaction_id)
        if transaction is None:
            return None

        for stored in await self._store.list_audit_records():
            audit = stored.audit
            if audit.first_sequence is None or audit.last_sequence is None:
                continue
            if not audit.first_sequence <= transaction.sequence <= audit.last_sequence:
                continue

            covered = await self.covered_transactions(stored)
            index = next(
                (i for i, t in enumerate(covered) if t.sequence == transaction.sequence),
                None,
            )
            record_intact = transaction.record is not None and verify_record(
                transaction.record, transaction.fingerprint
            )
            siblings: list[str] = []
            is_valid = False
            if index is not None:
                try:
                    proof = build_tree([t.fingerprint for t in covered]).inclusion_proof(index)
                except ValueError:
                    logger.warning(
                        "audit_proof_malformed_leaf",
                        audit_sequence=stored.sequence,
                        transaction_id=transaction_id,
                    )
                else:
                    siblings = list(proof.siblings)
                    is_valid = verify_proof(transaction.fingerprint, proof, audit.merkle_root)
            return SaleInclusionProof(
                transaction_id=transaction_id,
                fingerprint=transaction.fingerprint,
                leaf_index=index if index is not None else -1,
                siblings=siblings,
                merkle_root=audit.merkle_root,
                audit_sequence=stored.sequence,
                anchor_ref=audit.anchor_ref,
                is_valid=is_valid,
                record_intact=record_intact,
            )
        return None

    async def _anchor_root(self, anchor: AnchorClient, stored: StoredAudit) -> StoredAudit:
        root = stored.audit.merkle_root
        try:
            ref = await anchor.submit_root(root)
        except AnchorUnavailable as exc:
            logger.warning(
                "audit_anchor_failed",
                audit_sequence=stored.sequence,
                merkle_root=root,
                error=str(exc),
            )
            return stored

        await self._store.append(
            AnchorEntry(target_kind=EntryKind.AUDIT, digest=root, anchor_ref=ref)
        )
        logger.info(
            "audit_root_anchored",
            audit_sequence=stored.sequence,
            merkle_root=root,
            anchor_ref=ref,
        )
        return stored.model_copy(
            update={"audit": stored.audit.model_copy(update={"anchor_ref": ref})}
        )
