"""Period reports computed over a ledger.

- ``monthly_summary``: income, expenses, balance and transaction count for one
  calendar month (defaults to the current month).
- ``category_breakdown``: spending per category over a trailing window of
  ``period_days`` days, largest first, with each category's share of the
  total.

Both work on any ledger (manual, bank-synced or merged) and never touch the
network.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal

from .ledger import ledger_totals
from .models import Direction, NormalizedTransaction

_PCT_STEP = Decimal("0.01")


@dataclass(frozen=True, slots=True)
class MonthlySummary:
    month: int
    year: int
    income: Decimal
    expenses: Decimal
    total_transactions: int

    @property
    def balance(self) -> Decimal:
        return self.income - self.expenses


@dataclass(frozen=True, slots=True)
class CategorySpend:
    category: str
    total_spent: Decimal
    # Share of all spending in the window, 0-100 with two decimals.
    percentage: Decimal
    transaction_count: int


def monthly_summary(
    ledger: Iterable[NormalizedTransaction],
    month: int | None = None,
    year: int | None = None,
    *,
    today: date | None = None,
) -> MonthlySummary:
    today = today or date.today()
    month = month or today.month
    year = year or today.year
    if not 1 <= month <= 12:
        raise ValueError(f"month must be within 1..12, got {month}")

    in_month = [t for t in ledger if t.date.year == year and t.date.month == month]
    totals = ledger_totals(in_month)
    return MonthlySummary(
        month=month,
        year=year,
        income=totals.income,
        expenses=totals.expenses,
        total_transactions=len(in_month),
    )


def category_breakdown(
    ledger: Iterable[NormalizedTransaction],
    period_days: int = 30,
    *,
    today: date | None = None,
) -> list[CategorySpend]:
    """Expense totals per category for the last ``period_days`` days (inclusive of today)."""

    if period_days < 1:
        raise ValueError("period_days must be a positive integer")
    today = today or date.today()
    since = today - timedelta(days=period_days)

    totals: dict[str, Decimal] = {}
    counts: dict[str, int] = {}
    for t in ledger:
        if t.direction is not Direction.EXPENSE or not since < t.date <= today:
            continue
        totals[t.category] = totals.get(t.category, Decimal(0)) + t.amount
        counts[t.category] = counts.get(t.category, 0) + 1

    grand_total = sum(totals.values(), Decimal(0))
    out: list[CategorySpend] = []
    for category, spent in totals.items():
        pct = (spent * 100 / grand_total) if grand_total else Decimal(0)
        out.append(
            CategorySpend(
                category=category,
                total_spent=spent,
                percentage=pct.quantize(_PCT_STEP, rounding=ROUND_HALF_UP),
                transaction_count=counts[category],
            )
        )
    # Largest first; ties by name for a stable presentation.
    out.sort(key=lambda c: (-c.total_spent, c.category))
    return out


__all__ = [
    "CategorySpend",
    "MonthlySummary",
    "category_breakdown",
    "monthly_summary",
]
