"""Append-only ledger stores."""

from saleproof.modules.ledger.sql_store import SqlLedgerStore
from saleproof.modules.ledger.store import InMemoryLedgerStore, LedgerStore

__all__ = ["LedgerStore", "InMemoryLedgerStore", "SqlLedgerStore"]
