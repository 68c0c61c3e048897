"""Pydantic schemas returned by the sale recording service."""

from __future__ import annotations

from pydantic import BaseModel


class SaleReceipt(BaseModel):
    """Outcome of recording one sale."""

    transaction_id: str
    fingerprint: str
    sequence: int
    anchor_ref: str | None = None
    anchored: bool = False
    anchor_error: str | None = None


class SaleVerification(BaseModel):
    """Result of re-deriving one stored sale's fingerprint.

    ``malformed`` is set when the stored record no longer validates as a sale.
    ``anchor_match`` is ``None`` when the sale was never anchored or the
    anchor could not be reached.
    """

    transaction_id: str
    found: bool
    fingerprint_match: bool = False
    malformed: bool = False
    stored_fingerprint: str | None = None
    computed_fingerprint: str | None = None
    anchor_ref: str | None = None
    anchor_match: bool | None = None
