"""SQLAlchemy-backed ledger store."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from saleproof.core.crypto.hash_chain import GENESIS_HASH
from saleproof.core.exceptions import DuplicateEntryError
from saleproof.core.logging import get_logger
from saleproof.core.records import (
    AppendableEntry,
    EntryKind,
    LedgerEntry,
    StoredTransaction,
)
from saleproof.db.models import LedgerEntryRow
from saleproof.modules.ledger.store import (
    LedgerStore,
    anchor_refs,
    describe_entry,
    seal_entry,
    to_stored_transaction,
)

logger = get_logger(__name__)


def _row_to_entry(row: LedgerEntryRow) -> LedgerEntry:
    return LedgerEntry(
        sequence=int(row.sequence),
        kind=EntryKind(row.kind),
        payload=dict(row.payload),
        prev_entry_hash=row.prev_entry_hash,
        entry_hash=row.entry_hash,
    )


class SqlLedgerStore(LedgerStore):
    """Ledger persisted in the ``ledger_entries`` table.

    Each append is committed before it returns, so a later failure (for
    example an unreachable anchor) cannot roll the entry back.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(self, entry: AppendableEntry) -> LedgerEntry:
        kind, digest, transaction_id, payload = describe_entry(entry)

        if transaction_id is not None and await self._has_transaction(transaction_id):
            raise DuplicateEntryError(f"Transaction {transaction_id!r} already in ledger")

        last = await self._last_row()
        stored = seal_entry(
            sequence=(int(last.sequence) + 1) if last is not None else 1,
            kind=kind,
            payload=payload,
            prev_entry_hash=last.entry_hash if last is not None else GENESIS_HASH,
        )
        self._session.add(
            LedgerEntryRow(
                sequence=stored.sequence,
                kind=kind.value,
                transaction_id=transaction_id,
                digest=digest,
                payload=payload,
                prev_entry_hash=stored.prev_entry_hash,
                entry_hash=stored.entry_hash,
            )
        )
        try:
            await self._session.commit()
        except IntegrityError as exc:
            await self._session.rollback()
            logger.warning(
                "ledger_append_conflict",
                sequence=stored.sequence,
                transaction_id=transaction_id,
            )
            raise DuplicateEntryError(
                f"Ledger append conflicted at sequence {stored.sequence}"
            ) from exc
        return stored

    async def list_entries(self) -> list[LedgerEntry]:
        result = await self._session.execute(
            select(LedgerEntryRow).order_by(LedgerEntryRow.sequence.asc())
        )
        return [_row_to_entry(row) for row in result.scalars().all()]

    async def find_transaction(self, transaction_id: str) -> StoredTransaction | None:
        result = await self._session.execute(
            select(LedgerEntryRow).where(LedgerEntryRow.transaction_id == transaction_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        anchors = await self._session.execute(
            select(LedgerEntryRow)
            .where(
                LedgerEntryRow.kind == EntryKind.ANCHOR.value,
                LedgerEntryRow.digest == row.digest,
            )
            .order_by(LedgerEntryRow.sequence.asc())
        )
        anchor_entries = [_row_to_entry(anchor) for anchor in anchors.scalars().all()]
        return to_stored_transaction(_row_to_entry(row), anchor_refs(anchor_entries))

    async def _has_transaction(self, transaction_id: str) -> bool:
        result = await self._session.execute(
            select(LedgerEntryRow.sequence).where(
                LedgerEntryRow.transaction_id == transaction_id
            )
        )
        return result.scalar_one_or_none() is not None

    async def _last_row(self) -> LedgerEntryRow | None:
        result = await self._session.execute(
            select(LedgerEntryRow).order_by(LedgerEntryRow.sequence.desc()).limit(1)
        )
        return result.scalar_one_or_none()
