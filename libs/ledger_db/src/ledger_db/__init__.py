"""ledger_db: local transaction store library (SQLAlchemy).

Public exports
--------------
- ``Base`` and ``metadata`` for table creation
- ORM models in ``ledger_db.models.ledger`` (re-exported for convenience)
- Engine/session helpers in ``ledger_db.client``
"""

from __future__ import annotations

from .models.ledger import Base, LedgerTransaction

metadata = Base.metadata

__all__ = [
    "Base",
    "metadata",
    "LedgerTransaction",
]
