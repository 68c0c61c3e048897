"""
Error types raised by the tamper-evidence engine.

Integrity mismatches are never raised: fingerprint and proof checks return
booleans or result objects. Exceptions are reserved for malformed input,
ledger contract violations, and an unreachable anchor.
"""


class SaleProofError(Exception):
    """Base class for all SaleProof errors."""


class InvalidRecord(SaleProofError, ValueError):
    """Raised when a transaction record is missing or has malformed required fields."""


class LedgerError(SaleProofError):
    """Raised when the ledger store cannot honour an append or read."""


class DuplicateEntryError(LedgerError):
    """Raised when a transaction id is appended twice."""


class AnchorUnavailable(SaleProofError):
    """Raised when the external anchor rejects, times out, or returns garbage.

    Never fatal to local integrity: the ledger entry already exists and stays
    verifiable without the anchor.
    """
