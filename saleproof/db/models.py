"""
SQLAlchemy ORM models for the append-only ledger.

Rows are only ever inserted. Nothing in the codebase issues UPDATE or
DELETE against ``ledger_entries``.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, DateTime, Index, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    type_annotation_map = {
        dict[str, Any]: JSON,
    }


class LedgerEntryRow(Base):
    """
    One entry of the ledger log.

    ``entry_hash`` chains each row to its predecessor so that edits made
    directly in the database are detectable.
    """

    __tablename__ = "ledger_entries"

    sequence: Mapped[int] = mapped_column(
        BigInteger,
        primary_key=True,
        autoincrement=False,
        comment="1-based position in the log",
    )
    kind: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="transaction, audit or anchor",
    )
    transaction_id: Mapped[str | None] = mapped_column(
        String(255),
        unique=True,
        comment="Sale identifier; set only on transaction entries",
    )
    digest: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Fingerprint, audit root, or anchored digest",
    )
    payload: Mapped[dict[str, Any]] = mapped_column(nullable=False)
    prev_entry_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    entry_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_ledger_entries_kind", "kind"),
        Index("ix_ledger_entries_digest", "digest"),
    )
