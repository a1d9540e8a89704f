from datetime import date
from decimal import Decimal

import pytest

from pluggy_ledger.ledger import (
    LedgerSource,
    filter_ledger,
    ledger_totals,
    merge,
    source_counts,
)
from pluggy_ledger.models import Direction, NormalizedTransaction


def _tx(
    tx_id: str,
    on: date,
    amount: str = "10.00",
    direction: Direction = Direction.EXPENSE,
    *,
    bank: bool = False,
    description: str = "Groceries",
    category: str = "Food",
) -> NormalizedTransaction:
    return NormalizedTransaction(
        id=f"bank_{tx_id}" if bank else tx_id,
        description=description,
        amount=Decimal(amount),
        direction=direction,
        category=category,
        date=on,
        is_bank_sourced=bank,
    )


def test_merge_orders_by_date_descending_without_dedup():
    local = [_tx("L1", date(2024, 1, 5)), _tx("L2", date(2024, 1, 20))]
    bank = [_tx("B1", date(2024, 1, 10), bank=True), _tx("B2", date(2024, 1, 1), bank=True)]

    merged = merge(local, bank)

    assert [t.id for t in merged] == ["L2", "bank_B1", "L1", "bank_B2"]
    assert len(merged) == len(local) + len(bank)


def test_merge_keeps_local_first_on_equal_dates():
    same = date(2024, 2, 2)
    local = [_tx("L1", same), _tx("L2", same)]
    bank = [_tx("B1", same, bank=True)]

    assert [t.id for t in merge(local, bank)] == ["L1", "L2", "bank_B1"]


def test_merge_keeps_lookalike_duplicates():
    on = date(2024, 3, 3)
    manual = _tx("L1", on, "42.50", description="Coffee")
    synced = _tx("X", on, "42.50", description="Coffee", bank=True)

    assert merge([manual], [synced]) == [manual, synced]


def test_merge_of_empty_inputs():
    assert merge([], []) == []


def test_filter_ledger_combines_criteria():
    ledger = [
        _tx("a", date(2024, 1, 3), description="Uber ride", category="Transport"),
        _tx("b", date(2024, 1, 2), direction=Direction.INCOME, description="Salary", bank=True),
        _tx("c", date(2024, 1, 1), description="UBER eats", category="Food", bank=True),
    ]

    assert [t.id for t in filter_ledger(ledger, search="uber")] == ["a", "bank_c"]
    assert [t.id for t in filter_ledger(ledger, direction=Direction.INCOME)] == ["bank_b"]
    assert [t.id for t in filter_ledger(ledger, category="Food")] == ["bank_b", "bank_c"]
    assert [t.id for t in filter_ledger(ledger, source=LedgerSource.MANUAL)] == ["a"]
    assert [
        t.id for t in filter_ledger(ledger, search="uber", source=LedgerSource.BANK)
    ] == ["bank_c"]


def test_totals_and_counts():
    ledger = [
        _tx("a", date(2024, 1, 3), "100.00", Direction.INCOME),
        _tx("b", date(2024, 1, 2), "42.50", bank=True),
        _tx("c", date(2024, 1, 1), "7.50"),
    ]

    totals = ledger_totals(ledger)
    counts = source_counts(ledger)

    assert (totals.income, totals.expenses, totals.balance) == (
        Decimal("100.00"),
        Decimal("50.00"),
        Decimal("50.00"),
    )
    assert (counts.manual, counts.bank, counts.total) == (2, 1, 3)


@pytest.mark.parametrize("amount", [Decimal("-1"), 5])
def test_normalized_transaction_rejects_bad_amounts(amount):
    with pytest.raises(ValueError):
        NormalizedTransaction(
            id="x",
            description="d",
            amount=amount,
            direction=Direction.EXPENSE,
            category="c",
            date=date(2024, 1, 1),
        )


def test_signed_amount():
    assert _tx("a", date(2024, 1, 1), "3.00").signed_amount == Decimal("-3.00")
    assert _tx("b", date(2024, 1, 1), "3.00", Direction.INCOME).signed_amount == Decimal("3.00")
