from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------
# Core: ledger_transactions
# ---------------------------


class LedgerTransaction(Base):
    """A manually entered transaction owned by the user-facing CRUD layer.

    Bank-synced transactions are never written here; they are fetched fresh on
    every sync and merged in memory.
    """

    __tablename__ = "ledger_transactions"

    # Opaque UUID string; bank ids use the disjoint ``bank_`` namespace.
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    # Non-negative; sign lives in ``direction``.
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    direction: Mapped[str] = mapped_column(String(16), nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False, default="Uncategorized")
    date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_ledger_tx_amount_non_negative"),
        CheckConstraint(
            "direction in ('income','expense')",
            name="ck_ledger_tx_direction",
        ),
    )


__all__ = [
    "Base",
    "LedgerTransaction",
]
