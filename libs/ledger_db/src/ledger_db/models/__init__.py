"""Shared SQLAlchemy models registry for the local ledger database.

Currently includes the manual transactions table used by ``pluggy_ledger``.
"""

from .ledger import Base, LedgerTransaction

__all__ = [
    "Base",
    "LedgerTransaction",
]
