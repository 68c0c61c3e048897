"""
Pytest fixtures for SaleProof tests.
Provides ledger stores, anchor clients and sale record factories.
"""

from collections.abc import Callable
from decimal import Decimal
from types import SimpleNamespace
from typing import Any

import pytest

from saleproof.core.config import get_settings
from saleproof.core.crypto.anchoring import InMemoryAnchorClient
from saleproof.core.records import TransactionRecord
from saleproof.modules.ledger.store import InMemoryLedgerStore


@pytest.fixture(autouse=True)
def clear_settings_cache(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep tests independent of any local .env or SALEPROOF_* variables."""
    monkeypatch.setenv("SALEPROOF_ENVIRONMENT", "development")
    monkeypatch.setenv("SALEPROOF_AUDIT_SIGNING_KEY", "")
    get_settings.cache_clear()


@pytest.fixture
def sale_payload() -> dict[str, Any]:
    """Two-line cash sale used throughout the suite."""
    return {
        "id": "sale-1",
        "timestamp": 1700000000000,
        "amount": Decimal("9.25"),
        "items": [
            {"id": "1", "name": "Coffee", "price": Decimal("3.50"), "quantity": 2},
            {"id": "2", "name": "Muffin", "price": Decimal("2.25"), "quantity": 1},
        ],
        "paymentMethod": "cash",
        "operatorId": "op-1",
    }


@pytest.fixture
def make_sale(sale_payload: dict[str, Any]) -> Callable[..., TransactionRecord]:
    """Factory for sales; keyword overrides replace top-level fields."""

    def _make(**overrides: Any) -> TransactionRecord:
        return TransactionRecord.from_payload({**sale_payload, **overrides})

    return _make


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def anchor() -> InMemoryAnchorClient:
    return InMemoryAnchorClient()


@pytest.fixture
def audit_settings() -> SimpleNamespace:
    return SimpleNamespace(
        audit_batch_size=100,
        audit_signing_key="",
        audit_signing_key_id="audit-kid-1",
    )
