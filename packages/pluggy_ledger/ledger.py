"""Ledger view: the union of manual and bank-synced transactions.

``merge`` concatenates, then sorts by date descending. There is no
deduplication: manual ids (opaque UUIDs) and bank ids (``bank_<raw id>``) live
in disjoint namespaces, and a manually recorded transaction that a later bank
sync also reports shows up twice.

The helpers below (filtering, totals, counts by source) back the transaction
history screen.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum

from .models import Direction, NormalizedTransaction

type Ledger = list[NormalizedTransaction]


class LedgerSource(StrEnum):
    ALL = "all"
    MANUAL = "manual"
    BANK = "bank"


def merge(
    local: Iterable[NormalizedTransaction],
    bank_synced: Iterable[NormalizedTransaction],
) -> Ledger:
    """Return ``local + bank_synced`` ordered by ``date`` descending.

    The sort is stable, so on equal dates local entries keep preceding bank
    entries and each input keeps its own order.
    """

    combined = [*local, *bank_synced]
    combined.sort(key=lambda t: t.date, reverse=True)
    return combined


def filter_ledger(
    ledger: Iterable[NormalizedTransaction],
    *,
    search: str | None = None,
    direction: Direction | None = None,
    category: str | None = None,
    source: LedgerSource = LedgerSource.ALL,
) -> Ledger:
    """Filter a ledger the way the history view does; order is preserved.

    ``search`` is a case-insensitive substring match on the description.
    """

    needle = search.casefold() if search else None

    def _keep(t: NormalizedTransaction) -> bool:
        if needle is not None and needle not in t.description.casefold():
            return False
        if direction is not None and t.direction is not direction:
            return False
        if category is not None and t.category != category:
            return False
        if source is LedgerSource.MANUAL and t.is_bank_sourced:
            return False
        if source is LedgerSource.BANK and not t.is_bank_sourced:
            return False
        return True

    return [t for t in ledger if _keep(t)]


@dataclass(frozen=True, slots=True)
class LedgerTotals:
    income: Decimal
    expenses: Decimal

    @property
    def balance(self) -> Decimal:
        return self.income - self.expenses


def ledger_totals(ledger: Iterable[NormalizedTransaction]) -> LedgerTotals:
    income = Decimal(0)
    expenses = Decimal(0)
    for t in ledger:
        if t.direction is Direction.INCOME:
            income += t.amount
        else:
            expenses += t.amount
    return LedgerTotals(income=income, expenses=expenses)


@dataclass(frozen=True, slots=True)
class SourceCounts:
    manual: int
    bank: int

    @property
    def total(self) -> int:
        return self.manual + self.bank


def source_counts(ledger: Sequence[NormalizedTransaction]) -> SourceCounts:
    bank = sum(1 for t in ledger if t.is_bank_sourced)
    return SourceCounts(manual=len(ledger) - bank, bank=bank)


__all__ = [
    "Ledger",
    "LedgerSource",
    "LedgerTotals",
    "SourceCounts",
    "filter_ledger",
    "ledger_totals",
    "merge",
    "source_counts",
]
