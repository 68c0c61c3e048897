"""Service layer for recording and verifying sales."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from saleproof.core.crypto.anchoring import AnchorClient, corroborate
from saleproof.core.crypto.fingerprint import fingerprint
from saleproof.core.exceptions import AnchorUnavailable, InvalidRecord, LedgerError
from saleproof.core.logging import get_logger
from saleproof.core.records import AnchorEntry, EntryKind, TransactionEntry, TransactionRecord
from saleproof.modules.ledger.store import LedgerStore
from saleproof.modules.sales.schemas import SaleReceipt, SaleVerification

logger = get_logger(__name__)


class SaleRecordingService:
    """Fingerprint sales, append them to the ledger, then anchor them.

    The ledger append always completes before the anchor is contacted. An
    anchor failure is logged and reported on the receipt; the sale stays in
    the ledger and remains verifiable locally.
    """

    def __init__(self, store: LedgerStore, anchor: AnchorClient | None = None) -> None:
        self._store = store
        self._anchor = anchor

    async def record_sale(self, sale: TransactionRecord | Mapping[str, Any]) -> SaleReceipt:
        """Record a completed sale.

        Raises
        ------
        InvalidRecord
            If the sale is malformed. Nothing is appended in that case.
        DuplicateEntryError
            If a sale with the same id is already in the ledger.
        """
        if isinstance(sale, TransactionRecord):
            record = sale
        else:
            record = TransactionRecord.from_payload(sale)
        digest = fingerprint(record)
        stored = await self._store.append(TransactionEntry(record=record, fingerprint=digest))
        logger.info(
            "sale_recorded",
            transaction_id=record.id,
            fingerprint=digest,
            sequence=stored.sequence,
        )

        receipt = SaleReceipt(
            transaction_id=record.id,
            fingerprint=digest,
            sequence=stored.sequence,
        )
        if self._anchor is None:
            return receipt
        return await self._anchor_receipt(self._anchor, receipt)

    async def anchor_sale(self, transaction_id: str) -> SaleReceipt:
        """Submit an already recorded sale to the anchor, e.g. after an earlier failure."""
        stored = await self._store.find_transaction(transaction_id)
        if stored is None:
            raise LedgerError(f"Transaction {transaction_id!r} not found")
        receipt = SaleReceipt(
            transaction_id=transaction_id,
            fingerprint=stored.fingerprint,
            sequence=stored.sequence,
            anchor_ref=stored.anchor_ref,
            anchored=stored.anchor_ref is not None,
        )
        if receipt.anchored or self._anchor is None:
            return receipt
        return await self._anchor_receipt(self._anchor, receipt)

    async def verify_sale(self, transaction_id: str) -> SaleVerification:
        """Recompute a stored sale's fingerprint and corroborate it with the anchor."""
        stored = await self._store.find_transaction(transaction_id)
        if stored is None:
            return SaleVerification(transaction_id=transaction_id, found=False)

        computed: str | None = None
        if stored.record is not None:
            try:
                computed = fingerprint(stored.record)
            except InvalidRecord:
                computed = None
        matches = computed is not None and computed == stored.fingerprint

        anchor_match: bool | None = None
        if self._anchor is not None and stored.anchor_ref is not None:
            anchor_match = await corroborate(self._anchor, stored.anchor_ref, stored.fingerprint)

        if not matches or anchor_match is False:
            logger.warning(
                "sale_integrity_mismatch",
                transaction_id=transaction_id,
                malformed=stored.malformed,
                fingerprint_match=matches,
                anchor_match=anchor_match,
            )
        return SaleVerification(
            transaction_id=transaction_id,
            found=True,
            fingerprint_match=matches,
            malformed=stored.malformed,
            stored_fingerprint=stored.fingerprint,
            computed_fingerprint=computed,
            anchor_ref=stored.anchor_ref,
            anchor_match=anchor_match,
        )

    async def _anchor_receipt(self, anchor: AnchorClient, receipt: SaleReceipt) -> SaleReceipt:
        try:
            ref = await anchor.submit_fingerprint(receipt.fingerprint)
        except AnchorUnavailable as exc:
            logger.warning(
                "anchor_submit_failed",
                transaction_id=receipt.transaction_id,
                fingerprint=receipt.fingerprint,
                error=str(exc),
            )
            return receipt.model_copy(update={"anchor_error": str(exc)})

        await self._store.append(
            AnchorEntry(
                target_kind=EntryKind.TRANSACTION,
                digest=receipt.fingerprint,
                anchor_ref=ref,
            )
        )
        logger.info("sale_anchored", transaction_id=receipt.transaction_id, anchor_ref=ref)
        return receipt.model_copy(update={"anchor_ref": ref, "anchored": True})
