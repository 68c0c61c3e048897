"""Pydantic schemas for audit results and reports."""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field


class SaleInclusionProof(BaseModel):
    """Proof that a sale's fingerprint is covered by an audit root.

    ``leaf_index`` is -1 when the sale could not be located among the leaves.
    """

    transaction_id: str
    fingerprint: str
    leaf_index: int
    siblings: list[str]
    merkle_root: str
    audit_sequence: int
    anchor_ref: str | None = None
    is_valid: bool
    record_intact: bool = True


class AuditVerification(BaseModel):
    """Result of re-deriving one stored audit root.

    ``mismatched_ids`` lists covered sales whose stored record no longer
    matches its fingerprint.
    """

    audit_sequence: int
    merkle_root: str
    record_count: int
    root_match: bool
    mismatched_ids: list[str] = Field(default_factory=list)
    signature_valid: bool | None = None
    anchor_match: bool | None = None


class AuditReport(BaseModel):
    """Snapshot of the ledger projected through the verification functions.

    ``merkle_root`` is empty when the ledger holds no sales; it must not be
    anchored in that case.
    """

    generated_at: int
    total_records: int
    total_amount: Decimal
    merkle_root: str
    verified_records: int
    mismatched_ids: list[str] = Field(default_factory=list)
    chain_intact: bool
    audit_count: int = 0
    audits_verified: int = 0
