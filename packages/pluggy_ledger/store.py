# ruff: noqa: I001
"""Local (manual) transaction store.

CRUD over ``ledger_transactions`` owned by ``libs/ledger_db``. Functions take
an open SQLAlchemy ``Session`` (see ``ledger_db.client.session_scope``) and
return ``NormalizedTransaction`` values with ``is_bank_sourced=False`` so the
results can be merged straight into a ledger.

Bank-synced transactions are never persisted here.
"""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_db.models.ledger import LedgerTransaction
from .logging_setup import get_logger
from .models import DEFAULT_CATEGORY, Direction, NormalizedTransaction, to_decimal

_logger = get_logger("pluggy_ledger.store")

_UPDATABLE = frozenset({"description", "amount", "direction", "category", "date"})


def _to_decimal_2(raw: Any) -> Decimal:
    d = to_decimal(raw).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    if d < 0:
        raise ValueError("amount must be non-negative; use direction for the sign")
    return d


def _to_row_values(field: str, value: Any) -> Any:
    if field == "amount":
        return _to_decimal_2(value)
    if field == "direction":
        return Direction(value).value
    if field == "description":
        text = str(value).strip()
        if not text:
            raise ValueError("description must be non-empty")
        return text
    if field == "category":
        return (str(value).strip() if value is not None else "") or DEFAULT_CATEGORY
    if field == "date":
        if not isinstance(value, date):
            raise ValueError("date must be a datetime.date")
        return value
    raise ValueError(f"unknown field: {field}")


def _to_normalized(row: LedgerTransaction) -> NormalizedTransaction:
    return NormalizedTransaction(
        id=row.id,
        description=row.description,
        amount=Decimal(row.amount),
        direction=Direction(row.direction),
        category=row.category,
        date=row.date,
        is_bank_sourced=False,
    )


def add_transaction(
    session: Session,
    *,
    description: str,
    amount: Decimal | float | str,
    direction: Direction | str,
    category: str | None = None,
    on: date,
) -> NormalizedTransaction:
    """Insert a manual transaction and return it as a ledger entry."""

    row = LedgerTransaction(
        id=str(uuid.uuid4()),
        description=_to_row_values("description", description),
        amount=_to_row_values("amount", amount),
        direction=_to_row_values("direction", direction),
        category=_to_row_values("category", category),
        date=_to_row_values("date", on),
    )
    session.add(row)
    session.flush()
    _logger.info("store:add id=%s date=%s", row.id, row.date)
    return _to_normalized(row)


def list_transactions(
    session: Session,
    *,
    since: date | None = None,
    until: date | None = None,
) -> list[NormalizedTransaction]:
    """Manual transactions ordered by date descending (newest first)."""

    stmt = select(LedgerTransaction)
    if since is not None:
        stmt = stmt.where(LedgerTransaction.date >= since)
    if until is not None:
        stmt = stmt.where(LedgerTransaction.date <= until)
    stmt = stmt.order_by(LedgerTransaction.date.desc(), LedgerTransaction.created_at.desc())
    return [_to_normalized(r) for r in session.scalars(stmt)]


def get_transaction(session: Session, tx_id: str) -> NormalizedTransaction | None:
    row = session.get(LedgerTransaction, tx_id)
    return _to_normalized(row) if row is not None else None


def update_transaction(
    session: Session, tx_id: str, **changes: Any
) -> NormalizedTransaction | None:
    """Apply ``changes`` (description/amount/direction/category/date).

    Returns ``None`` when the id does not exist.
    """

    unknown = set(changes) - _UPDATABLE
    if unknown:
        raise ValueError(f"cannot update field(s): {', '.join(sorted(unknown))}")
    row = session.get(LedgerTransaction, tx_id)
    if row is None:
        return None
    for name, value in changes.items():
        setattr(row, name, _to_row_values(name, value))
    row.updated_at = datetime.now(UTC)
    session.flush()
    return _to_normalized(row)


def delete_transaction(session: Session, tx_id: str) -> bool:
    row = session.get(LedgerTransaction, tx_id)
    if row is None:
        return False
    session.delete(row)
    session.flush()
    _logger.info("store:delete id=%s", tx_id)
    return True


__all__ = [
    "add_transaction",
    "delete_transaction",
    "get_transaction",
    "list_transactions",
    "update_transaction",
]
