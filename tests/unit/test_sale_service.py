"""Tests for the sale recording service."""

from __future__ import annotations

from decimal import Decimal

import pytest

from saleproof.core.crypto.anchoring import InMemoryAnchorClient
from saleproof.core.crypto.fingerprint import fingerprint
from saleproof.core.exceptions import DuplicateEntryError, InvalidRecord, LedgerError
from saleproof.core.records import EntryKind
from saleproof.modules.ledger.store import InMemoryLedgerStore
from saleproof.modules.sales.service import SaleRecordingService


class TestRecordSale:
    """Tests for recording sales."""

    @pytest.mark.asyncio
    async def test_record_without_anchor(self, store: InMemoryLedgerStore, sale_payload) -> None:
        receipt = await SaleRecordingService(store).record_sale(sale_payload)

        assert receipt.transaction_id == "sale-1"
        assert receipt.sequence == 1
        assert receipt.anchored is False
        assert receipt.anchor_error is None
        stored = await store.find_transaction("sale-1")
        assert stored is not None
        assert stored.fingerprint == receipt.fingerprint

    @pytest.mark.asyncio
    async def test_record_and_anchor(
        self,
        store: InMemoryLedgerStore,
        anchor: InMemoryAnchorClient,
        make_sale,
    ) -> None:
        record = make_sale()
        receipt = await SaleRecordingService(store, anchor).record_sale(record)

        assert receipt.anchored is True
        assert receipt.anchor_ref is not None
        assert await anchor.read_back(receipt.anchor_ref) == fingerprint(record)
        entries = await store.list_entries()
        assert [e.kind for e in entries] == [EntryKind.TRANSACTION, EntryKind.ANCHOR]
        stored = await store.find_transaction(record.id)
        assert stored is not None and stored.anchor_ref == receipt.anchor_ref

    @pytest.mark.asyncio
    async def test_anchor_failure_keeps_sale(
        self,
        store: InMemoryLedgerStore,
        anchor: InMemoryAnchorClient,
        make_sale,
    ) -> None:
        anchor.available = False
        receipt = await SaleRecordingService(store, anchor).record_sale(make_sale())

        assert receipt.anchored is False
        assert receipt.anchor_error
        assert len(await store.list_entries()) == 1

    @pytest.mark.asyncio
    async def test_invalid_sale_appends_nothing(
        self, store: InMemoryLedgerStore, sale_payload
    ) -> None:
        service = SaleRecordingService(store)
        with pytest.raises(InvalidRecord):
            await service.record_sale({**sale_payload, "amount": Decimal("1.005")})
        with pytest.raises(InvalidRecord):
            await service.record_sale({k: v for k, v in sale_payload.items() if k != "items"})
        assert await store.list_entries() == []

    @pytest.mark.asyncio
    async def test_duplicate_sale_rejected(self, store: InMemoryLedgerStore, make_sale) -> None:
        service = SaleRecordingService(store)
        await service.record_sale(make_sale())
        with pytest.raises(DuplicateEntryError):
            await service.record_sale(make_sale())


class TestAnchorSale:
    """Tests for anchoring a previously recorded sale."""

    @pytest.mark.asyncio
    async def test_retry_after_outage(
        self,
        store: InMemoryLedgerStore,
        anchor: InMemoryAnchorClient,
        make_sale,
    ) -> None:
        service = SaleRecordingService(store, anchor)
        anchor.available = False
        await service.record_sale(make_sale())

        anchor.available = True
        receipt = await service.anchor_sale("sale-1")

        assert receipt.anchored is True
        stored = await store.find_transaction("sale-1")
        assert stored is not None and stored.anchor_ref == receipt.anchor_ref

    @pytest.mark.asyncio
    async def test_already_anchored_is_not_resubmitted(
        self,
        store: InMemoryLedgerStore,
        anchor: InMemoryAnchorClient,
        make_sale,
    ) -> None:
        service = SaleRecordingService(store, anchor)
        first = await service.record_sale(make_sale())
        again = await service.anchor_sale("sale-1")

        assert again.anchor_ref == first.anchor_ref
        assert len(await store.list_entries()) == 2

    @pytest.mark.asyncio
    async def test_unknown_sale(self, store: InMemoryLedgerStore) -> None:
        with pytest.raises(LedgerError, match="not found"):
            await SaleRecordingService(store).anchor_sale("missing")


class TestVerifySale:
    """Tests for re-deriving stored sales."""

    @pytest.mark.asyncio
    async def test_untouched_sale_matches(
        self,
        store: InMemoryLedgerStore,
        anchor: InMemoryAnchorClient,
        make_sale,
    ) -> None:
        service = SaleRecordingService(store, anchor)
        await service.record_sale(make_sale())

        result = await service.verify_sale("sale-1")

        assert result.found is True
        assert result.fingerprint_match is True
        assert result.computed_fingerprint == result.stored_fingerprint
        assert result.anchor_match is True

    @pytest.mark.asyncio
    async def test_missing_sale(self, store: InMemoryLedgerStore) -> None:
        result = await SaleRecordingService(store).verify_sale("missing")
        assert result.found is False
        assert result.fingerprint_match is False

    @pytest.mark.asyncio
    async def test_tampered_record_detected(self, store: InMemoryLedgerStore, make_sale) -> None:
        service = SaleRecordingService(store)
        await service.record_sale(make_sale())
        store._entries[0].payload["record"]["amount"] = "1.00"

        result = await service.verify_sale("sale-1")

        assert result.found is True
        assert result.fingerprint_match is False
        assert result.computed_fingerprint != result.stored_fingerprint

    @pytest.mark.asyncio
    async def test_rewritten_fingerprint_caught_by_anchor(
        self,
        store: InMemoryLedgerStore,
        anchor: InMemoryAnchorClient,
        make_sale,
    ) -> None:
        service = SaleRecordingService(store, anchor)
        await service.record_sale(make_sale())
        forged = fingerprint(make_sale(amount=Decimal("1.00")))
        store._entries[0].payload["record"]["amount"] = "1.00"
        store._entries[0].payload["fingerprint"] = forged
        store._entries[1].payload["digest"] = forged

        result = await service.verify_sale("sale-1")

        assert result.fingerprint_match is True
        assert result.anchor_match is False

    @pytest.mark.asyncio
    async def test_anchor_offline_is_unknown(
        self,
        store: InMemoryLedgerStore,
        anchor: InMemoryAnchorClient,
        make_sale,
    ) -> None:
        service = SaleRecordingService(store, anchor)
        await service.record_sale(make_sale())
        anchor.available = False

        result = await service.verify_sale("sale-1")

        assert result.fingerprint_match is True
        assert result.anchor_match is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("field", "value"),
        [("amount", "lots"), ("items", [{"id": "1", "name": "", "price": "1", "quantity": 1}])],
    )
    async def test_malformed_record_reported_as_mismatch(
        self, store: InMemoryLedgerStore, make_sale, field: str, value: object
    ) -> None:
        service = SaleRecordingService(store)
        await service.record_sale(make_sale())
        store._entries[0].payload["record"][field] = value

        result = await service.verify_sale("sale-1")

        assert result.found is True
        assert result.malformed is True
        assert result.fingerprint_match is False
        assert result.computed_fingerprint is None
        assert result.stored_fingerprint == fingerprint(make_sale())
