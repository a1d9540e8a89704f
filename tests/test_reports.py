from datetime import date
from decimal import Decimal

import pytest

from pluggy_ledger.models import Direction, NormalizedTransaction
from pluggy_ledger.reports import category_breakdown, monthly_summary

TODAY = date(2024, 3, 15)


def _tx(on: date, amount: str, category: str = "Food", income: bool = False):
    return NormalizedTransaction(
        id=f"{on.isoformat()}-{category}-{amount}",
        description=category,
        amount=Decimal(amount),
        direction=Direction.INCOME if income else Direction.EXPENSE,
        category=category,
        date=on,
    )


LEDGER = [
    _tx(date(2024, 3, 14), "60.00", "Food"),
    _tx(date(2024, 3, 10), "30.00", "Transport"),
    _tx(date(2024, 3, 1), "2000.00", "Salary", income=True),
    _tx(date(2024, 2, 28), "10.00", "Food"),
    _tx(date(2024, 2, 1), "500.00", "Rent"),
]


def test_monthly_summary_defaults_to_current_month():
    s = monthly_summary(LEDGER, today=TODAY)

    assert (s.month, s.year) == (3, 2024)
    assert s.income == Decimal("2000.00")
    assert s.expenses == Decimal("90.00")
    assert s.balance == Decimal("1910.00")
    assert s.total_transactions == 3


def test_monthly_summary_for_explicit_month():
    s = monthly_summary(LEDGER, 2, 2024)
    assert (s.income, s.expenses, s.total_transactions) == (Decimal(0), Decimal("510.00"), 2)


def test_monthly_summary_rejects_bad_month():
    with pytest.raises(ValueError):
        monthly_summary(LEDGER, 13, 2024)


def test_category_breakdown_over_trailing_window():
    rows = category_breakdown(LEDGER, 30, today=TODAY)

    # 2024-02-14 < date <= 2024-03-15: Rent (02-01) falls outside
    assert [(r.category, r.total_spent, r.transaction_count) for r in rows] == [
        ("Food", Decimal("70.00"), 2),
        ("Transport", Decimal("30.00"), 1),
    ]
    assert [r.percentage for r in rows] == [Decimal("70.00"), Decimal("30.00")]


def test_category_breakdown_rounds_percentages_and_breaks_ties_by_name():
    ledger = [
        _tx(TODAY, "1.00", "b"),
        _tx(TODAY, "1.00", "a"),
        _tx(TODAY, "1.00", "c"),
    ]

    rows = category_breakdown(ledger, 7, today=TODAY)

    assert [r.category for r in rows] == ["a", "b", "c"]
    assert {r.percentage for r in rows} == {Decimal("33.33")}


def test_category_breakdown_empty_and_invalid_period():
    assert category_breakdown([], 30, today=TODAY) == []
    with pytest.raises(ValueError):
        category_breakdown(LEDGER, 0, today=TODAY)
