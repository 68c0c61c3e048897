"""
Append-only ledger of sales, audit roots and anchor references.

``append`` is the only mutator. A sale is never edited: a correction is a
new sale with its own id, and an anchor reference obtained after the fact is
recorded as a separate ``anchor`` entry pointing at the digest it
corroborates. Read-side projections fold those anchor entries back onto the
sale or audit they refer to.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from pydantic import ValidationError

from saleproof.core.crypto.hash_chain import GENESIS_HASH, compute_entry_hash
from saleproof.core.exceptions import DuplicateEntryError, LedgerError
from saleproof.core.logging import get_logger
from saleproof.core.records import (
    AnchorEntry,
    AppendableEntry,
    AuditEntry,
    AuditRecord,
    EntryKind,
    LedgerEntry,
    StoredAudit,
    StoredTransaction,
    TransactionEntry,
    TransactionRecord,
)

logger = get_logger(__name__)


def describe_entry(entry: AppendableEntry) -> tuple[EntryKind, str, str | None, dict[str, Any]]:
    """Return ``(kind, digest, transaction_id, payload)`` for an entry to append."""
    payload = entry.model_dump(mode="json")
    if isinstance(entry, TransactionEntry):
        return EntryKind.TRANSACTION, entry.fingerprint, entry.record.id, payload
    if isinstance(entry, AuditEntry):
        return EntryKind.AUDIT, entry.audit.merkle_root, None, payload
    if isinstance(entry, AnchorEntry):
        return EntryKind.ANCHOR, entry.digest, None, payload
    raise LedgerError(f"Unsupported ledger entry type: {type(entry).__name__}")


def seal_entry(
    *,
    sequence: int,
    kind: EntryKind,
    payload: dict[str, Any],
    prev_entry_hash: str,
) -> LedgerEntry:
    """Attach the chain hash to a new entry."""
    entry_hash = compute_entry_hash(
        {"sequence": sequence, "kind": kind.value, "payload": payload},
        prev_entry_hash,
    )
    return LedgerEntry(
        sequence=sequence,
        kind=kind,
        payload=payload,
        prev_entry_hash=prev_entry_hash,
        entry_hash=entry_hash,
    )


def anchor_refs(entries: Sequence[LedgerEntry]) -> dict[tuple[EntryKind, str], str]:
    """Latest anchor reference per ``(target_kind, digest)``.

    Anchor entries that no longer validate are skipped and logged.
    """
    refs: dict[tuple[EntryKind, str], str] = {}
    for entry in entries:
        if entry.kind != EntryKind.ANCHOR:
            continue
        try:
            anchor = AnchorEntry.model_validate(entry.payload)
        except ValidationError:
            logger.warning("ledger_anchor_entry_malformed", sequence=entry.sequence)
            continue
        refs[(anchor.target_kind, anchor.digest)] = anchor.anchor_ref
    return refs


def to_stored_transaction(
    entry: LedgerEntry,
    refs: dict[tuple[EntryKind, str], str],
) -> StoredTransaction:
    """Project a transaction entry, keeping it visible even if its record is malformed."""
    payload = entry.payload
    fingerprint = str(payload.get("fingerprint", ""))
    raw_record = payload.get("record")
    raw_record = dict(raw_record) if isinstance(raw_record, dict) else {}

    record: TransactionRecord | None
    try:
        record = TransactionRecord.model_validate(raw_record)
    except ValidationError:
        logger.warning("ledger_transaction_malformed", sequence=entry.sequence)
        record = None

    stored_ref = payload.get("anchor_ref")
    return StoredTransaction(
        transaction_id=record.id if record is not None else str(raw_record.get("id", "?")),
        record=record,
        raw_record=raw_record,
        fingerprint=fingerprint,
        sequence=entry.sequence,
        anchor_ref=refs.get(
            (EntryKind.TRANSACTION, fingerprint),
            stored_ref if isinstance(stored_ref, str) else None,
        ),
    )


def to_stored_audit(
    entry: LedgerEntry,
    refs: dict[tuple[EntryKind, str], str],
) -> StoredAudit | None:
    """Project an audit entry, or ``None`` if its payload no longer validates."""
    try:
        audit = AuditRecord.model_validate(entry.payload.get("audit"))
    except ValidationError:
        logger.warning("ledger_audit_malformed", sequence=entry.sequence)
        return None
    ref = refs.get((EntryKind.AUDIT, audit.merkle_root))
    if ref is not None:
        audit = audit.model_copy(update={"anchor_ref": ref})
    return StoredAudit(audit=audit, sequence=entry.sequence)


class LedgerStore(ABC):
    """Append-only, key-ordered ledger contract.

    Reads reflect every prior append. Implementations must reject a second
    transaction with an id that is already stored.
    """

    @abstractmethod
    async def append(self, entry: AppendableEntry) -> LedgerEntry:
        """Append an entry and return it as persisted."""

    @abstractmethod
    async def list_entries(self) -> list[LedgerEntry]:
        """Every entry, ordered by sequence."""

    async def list_transactions(self) -> list[StoredTransaction]:
        entries = await self.list_entries()
        refs = anchor_refs(entries)
        return [
            to_stored_transaction(entry, refs)
            for entry in entries
            if entry.kind == EntryKind.TRANSACTION
        ]

    async def list_audit_records(self) -> list[StoredAudit]:
        entries = await self.list_entries()
        refs = anchor_refs(entries)
        audits = [
            to_stored_audit(entry, refs) for entry in entries if entry.kind == EntryKind.AUDIT
        ]
        return [stored for stored in audits if stored is not None]

    async def find_transaction(self, transaction_id: str) -> StoredTransaction | None:
        for stored in await self.list_transactions():
            if stored.transaction_id == transaction_id:
                return stored
        return None

    async def snapshot_transactions(
        self,
        *,
        after_sequence: int = 0,
        limit: int | None = None,
    ) -> list[StoredTransaction]:
        """Transactions appended after ``after_sequence``, read at one point in time."""
        pending = [
            stored
            for stored in await self.list_transactions()
            if stored.sequence > after_sequence
        ]
        return pending[:limit] if limit is not None else pending

    async def last_audited_sequence(self) -> int:
        """Highest transaction sequence covered by an audit, or 0."""
        covered = [
            stored.audit.last_sequence
            for stored in await self.list_audit_records()
            if stored.audit.last_sequence is not None
        ]
        return max(covered, default=0)


class InMemoryLedgerStore(LedgerStore):
    """Ledger kept in process memory, for tests and single-session use."""

    def __init__(self) -> None:
        self._entries: list[LedgerEntry] = []
        self._transaction_index: dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def append(self, entry: AppendableEntry) -> LedgerEntry:
        kind, _digest, transaction_id, payload = describe_entry(entry)
        async with self._lock:
            if transaction_id is not None and transaction_id in self._transaction_index:
                raise DuplicateEntryError(f"Transaction {transaction_id!r} already in ledger")
            prev_hash = self._entries[-1].entry_hash if self._entries else GENESIS_HASH
            stored = seal_entry(
                sequence=len(self._entries) + 1,
                kind=kind,
                payload=payload,
                prev_entry_hash=prev_hash,
            )
            self._entries.append(stored)
            if transaction_id is not None:
                self._transaction_index[transaction_id] = len(self._entries) - 1
        return stored

    async def list_entries(self) -> list[LedgerEntry]:
        return list(self._entries)

    async def find_transaction(self, transaction_id: str) -> StoredTransaction | None:
        position = self._transaction_index.get(transaction_id)
        if position is None:
            return None
        entries = list(self._entries)
        return to_stored_transaction(entries[position], anchor_refs(entries))
