from datetime import date
from decimal import Decimal

import pytest

from ledger_db.client import session_scope
from pluggy_ledger.models import Direction
from pluggy_ledger.store import (
    add_transaction,
    delete_transaction,
    get_transaction,
    list_transactions,
    update_transaction,
)
from tests.helpers.db import bootstrap_sqlite_db


@pytest.fixture()
def db_url(tmp_path):
    return bootstrap_sqlite_db(tmp_path / "ledger.sqlite")


def test_add_and_list_newest_first(db_url):
    with session_scope(database_url=db_url) as s:
        first = add_transaction(
            s, description="Rent", amount="1500", direction="expense", on=date(2024, 1, 1)
        )
        add_transaction(
            s,
            description="Salary",
            amount=Decimal("5000.00"),
            direction=Direction.INCOME,
            category="Work",
            on=date(2024, 1, 5),
        )

    assert len(first.id) == 36
    assert not first.is_bank_sourced
    assert first.category == "Uncategorized"
    assert first.amount == Decimal("1500.00")

    with session_scope(database_url=db_url) as s:
        rows = list_transactions(s)

    assert [(t.description, t.direction) for t in rows] == [
        ("Salary", Direction.INCOME),
        ("Rent", Direction.EXPENSE),
    ]


def test_list_filters_by_date_window(db_url):
    with session_scope(database_url=db_url) as s:
        for day in (1, 10, 20):
            add_transaction(
                s, description=f"d{day}", amount="1", direction="expense", on=date(2024, 1, day)
            )

    with session_scope(database_url=db_url) as s:
        rows = list_transactions(s, since=date(2024, 1, 5), until=date(2024, 1, 20))

    assert [t.description for t in rows] == ["d20", "d10"]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"amount": "-1"},
        {"description": "   "},
        {"direction": "transfer"},
        {"on": "2024-01-01"},
    ],
)
def test_add_rejects_invalid_values(db_url, kwargs):
    values = {"description": "x", "amount": "1", "direction": "expense", "on": date(2024, 1, 1)}
    values.update(kwargs)
    with session_scope(database_url=db_url) as s:
        with pytest.raises(ValueError):
            add_transaction(s, **values)


def test_update_get_and_delete(db_url):
    with session_scope(database_url=db_url) as s:
        tx = add_transaction(
            s, description="Coffe", amount="4.5", direction="expense", on=date(2024, 2, 2)
        )

    with session_scope(database_url=db_url) as s:
        updated = update_transaction(s, tx.id, description="Coffee", category="Food")
    assert updated is not None
    assert (updated.description, updated.category, updated.amount) == (
        "Coffee",
        "Food",
        Decimal("4.50"),
    )

    with session_scope(database_url=db_url) as s:
        assert get_transaction(s, tx.id).description == "Coffee"
        assert delete_transaction(s, tx.id) is True

    with session_scope(database_url=db_url) as s:
        assert get_transaction(s, tx.id) is None
        assert delete_transaction(s, tx.id) is False
        assert update_transaction(s, tx.id, description="gone") is None


def test_update_rejects_unknown_fields(db_url):
    with session_scope(database_url=db_url) as s:
        with pytest.raises(ValueError, match="cannot update"):
            update_transaction(s, "whatever", id="other")
