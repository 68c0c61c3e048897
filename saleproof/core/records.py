"""
Sale and audit record models.

Records are frozen pydantic models: once a sale has been fingerprinted, its
fields cannot change in place. A corrected sale is a new record.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from saleproof.core.exceptions import InvalidRecord


def now_millis() -> int:
    """Current Unix time in milliseconds."""
    return time.time_ns() // 1_000_000


def new_transaction_id() -> str:
    """Time-derived transaction identifier with a random suffix."""
    return f"{now_millis()}-{uuid4().hex[:8]}"


class _RecordModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class LineItem(_RecordModel):
    """A single receipt line. ``category`` is descriptive and not fingerprinted."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    price: Decimal = Field(allow_inf_nan=False)
    quantity: int
    category: str = ""


class TransactionRecord(_RecordModel):
    """A completed retail sale."""

    id: str = Field(default_factory=new_transaction_id, min_length=1)
    timestamp: int = Field(default_factory=now_millis, ge=0)
    amount: Decimal = Field(allow_inf_nan=False)
    items: tuple[LineItem, ...]
    payment_method: str
    operator_id: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> TransactionRecord:
        """Validate a raw mapping (camelCase or snake_case keys).

        Raises
        ------
        InvalidRecord
            If a required field is missing or malformed.
        """
        try:
            return cls.model_validate(dict(payload))
        except ValidationError as exc:
            raise InvalidRecord(_describe_validation_error(exc)) from exc


class AuditRecord(_RecordModel):
    """A Merkle root covering a contiguous run of ledger transactions."""

    merkle_root: str
    timestamp: int = Field(default_factory=now_millis, ge=0)
    record_count: int = Field(ge=0)
    first_sequence: int | None = None
    last_sequence: int | None = None
    signature: str | None = None
    signature_kid: str | None = None
    signature_algorithm: str | None = None
    anchor_ref: str | None = None


class EntryKind(str, Enum):
    """Kinds of entry in the append-only ledger."""

    TRANSACTION = "transaction"
    AUDIT = "audit"
    ANCHOR = "anchor"


class TransactionEntry(_RecordModel):
    """A sale with the fingerprint computed for it at append time."""

    record: TransactionRecord
    fingerprint: str
    anchor_ref: str | None = None


class AuditEntry(_RecordModel):
    audit: AuditRecord


class AnchorEntry(_RecordModel):
    """Links a fingerprint or audit root to the reference an anchor returned."""

    target_kind: EntryKind
    digest: str
    anchor_ref: str


AppendableEntry = TransactionEntry | AuditEntry | AnchorEntry


class LedgerEntry(_RecordModel):
    """An entry as persisted: sequence, payload and hash-chain fields."""

    sequence: int = Field(ge=1)
    kind: EntryKind
    payload: dict[str, Any]
    prev_entry_hash: str
    entry_hash: str

    def chain_data(self) -> dict[str, Any]:
        """The part of the entry covered by ``entry_hash``."""
        return {"sequence": self.sequence, "kind": self.kind.value, "payload": self.payload}


class StoredTransaction(_RecordModel):
    """Read-side view of a sale in the ledger.

    ``record`` is ``None`` when the stored payload no longer validates as a
    sale; ``raw_record`` always holds the payload as stored.
    """

    transaction_id: str
    record: TransactionRecord | None
    raw_record: dict[str, Any] = Field(default_factory=dict)
    fingerprint: str
    sequence: int
    anchor_ref: str | None = None

    @property
    def malformed(self) -> bool:
        return self.record is None


class StoredAudit(_RecordModel):
    """Read-side view of an audit root in the ledger."""

    audit: AuditRecord
    sequence: int


def _describe_validation_error(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "record"
        problems.append(f"{location}: {error['msg']}")
    return "; ".join(problems)
