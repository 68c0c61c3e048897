"""Database package."""

from saleproof.db.models import Base, LedgerEntryRow
from saleproof.db.session import close_db, get_background_session, init_db

__all__ = [
    "init_db",
    "close_db",
    "get_background_session",
    "Base",
    "LedgerEntryRow",
]
