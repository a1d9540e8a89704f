from datetime import date

import pytest
from typer.testing import CliRunner

from pluggy_ledger import cli
from pluggy_ledger.api import BankSync
from tests.helpers.pluggy_stub import BASE_URL, PluggyStub, raw_account, raw_tx, tx_page

runner = CliRunner()


# ---- Helpers -----------------------------------------------------------------


def _use_stub(monkeypatch: pytest.MonkeyPatch, stub: PluggyStub) -> None:
    """Route every ``BankSync`` the CLI builds through the fake provider."""

    def _factory(credential, **kw):
        return BankSync(credential, http=stub.http(), base_url=BASE_URL, **kw)

    monkeypatch.setattr(cli, "BankSync", _factory)


def _set_credentials(monkeypatch: pytest.MonkeyPatch, items: str = "A,B") -> None:
    monkeypatch.setenv("PLUGGY_CLIENT_ID", "cid")
    monkeypatch.setenv("PLUGGY_CLIENT_SECRET", "secret")
    monkeypatch.setenv("PLUGGY_ITEM_IDS", items)


def _db_args(tmp_path) -> list[str]:
    return ["--database-url", f"sqlite+pysqlite:///{tmp_path / 'cli.sqlite'}"]


def _rows(result) -> list[str]:
    """Data lines on stdout, without the ``#`` summary or stderr notes."""

    prefixes = ("#", "Note:", "Warning:", "Error:")
    return [ln for ln in result.stdout.splitlines() if ln and not ln.startswith(prefixes)]


# ---- Tests -------------------------------------------------------------------


def test_status_reports_missing_configuration():
    result = runner.invoke(cli.app, ["status"])
    assert result.exit_code == 0
    assert "configured\tno" in result.stdout


def test_status_with_credentials(monkeypatch):
    _set_credentials(monkeypatch)
    result = runner.invoke(cli.app, ["status"])
    assert result.exit_code == 0
    assert "configured\tyes" in result.stdout
    assert "item_ids\t2" in result.stdout


def test_accounts_lists_partial_results(monkeypatch):
    _set_credentials(monkeypatch)
    _use_stub(
        monkeypatch,
        PluggyStub(
            accounts={"A": [raw_account("acc-1", name="Checking", balance=150.25)]},
            failures={"B": (404, {"message": "Item not found"})},
        ),
    )

    result = runner.invoke(cli.app, ["accounts"])

    assert result.exit_code == 0
    assert "acc-1\tChecking\tBANK\t150.25\tBRL" in result.stdout
    assert "Warning: item B: list accounts failed: 404 - Item not found" in result.output


def test_accounts_exit_non_zero_when_every_item_fails(monkeypatch):
    _set_credentials(monkeypatch)
    _use_stub(monkeypatch, PluggyStub(failures={"X": (500, {})}))

    result = runner.invoke(cli.app, ["accounts", "--item-ids", "X"])

    assert result.exit_code == 1
    assert "Could not load accounts: all 1 item id(s) failed" in result.output


def test_accounts_without_credentials_fails():
    result = runner.invoke(cli.app, ["accounts"])
    assert result.exit_code == 1
    assert "Error:" in result.output


def test_accounts_reports_bad_credentials(monkeypatch):
    _set_credentials(monkeypatch)
    _use_stub(monkeypatch, PluggyStub(auth_status=401, auth_body={"message": "bad"}))

    result = runner.invoke(cli.app, ["accounts"])

    assert result.exit_code == 1
    assert "Check your Pluggy credentials." in result.output


def test_transactions_prints_sandbox_history(monkeypatch):
    _set_credentials(monkeypatch)
    stub = PluggyStub(
        accounts={"A": [raw_account("demo", owner="John Doe", balance=100)]},
        transactions={
            "demo": [
                tx_page(
                    [
                        raw_tx("t1", -42.5, "2021-05-01", description="Bakery"),
                        raw_tx("t2", 1000, "2021-05-03", description="Salary", category="Income"),
                    ]
                )
            ]
        },
    )
    _use_stub(monkeypatch, stub)

    result = runner.invoke(cli.app, ["transactions", "--account-id", "demo"])

    assert result.exit_code == 0
    lines = _rows(result)
    assert lines == [
        "2021-05-03\tincome\t1000.00\tIncome\tSalary\tChecking\tsandbox",
        "2021-05-01\texpense\t42.50\tFood\tBakery\tChecking\tsandbox",
    ]
    (req,) = [r for r in stub.calls if r.url.path == "/transactions"]
    assert req.url.params["from"] == "2000-01-01"


def test_add_transaction_then_ledger_without_bank(tmp_path):
    db = _db_args(tmp_path)

    added = runner.invoke(
        cli.app,
        [
            "add-transaction",
            "--description",
            "Groceries",
            "--amount",
            "42.50",
            "--type",
            "expense",
            "--category",
            "Food",
            "--date",
            "2024-02-10",
            *db,
        ],
    )
    assert added.exit_code == 0, added.output
    tx_id = added.stdout.strip()
    assert len(tx_id) == 36

    result = runner.invoke(cli.app, ["ledger", "--no-bank", *db])

    assert result.exit_code == 0, result.output
    assert "2024-02-10\texpense\t42.50\tFood\tGroceries\tmanual" in result.stdout
    assert "expenses=42.50" in result.output


def test_add_transaction_rejects_bad_input(tmp_path):
    db = _db_args(tmp_path)
    base = ["add-transaction", "--description", "x", *db]

    bad_type = runner.invoke(cli.app, [*base, "--amount", "1", "--type", "transfer"])
    bad_amount = runner.invoke(cli.app, [*base, "--amount", "lots", "--type", "expense"])
    negative = runner.invoke(cli.app, [*base, "--amount=-1", "--type", "income"])

    assert bad_type.exit_code == 1
    assert bad_amount.exit_code == 1
    assert negative.exit_code == 1
    assert "non-negative" in negative.output


def test_ledger_merges_manual_and_bank(monkeypatch, tmp_path):
    db = _db_args(tmp_path)
    _set_credentials(monkeypatch, items="A")
    _use_stub(
        monkeypatch,
        PluggyStub(
            accounts={"A": [raw_account("acc-1", name="Checking")]},
            transactions={
                "acc-1": [tx_page([raw_tx("t1", -10, "2024-02-12", description="Taxi")])]
            },
        ),
    )
    runner.invoke(
        cli.app,
        [
            "add-transaction",
            "--description",
            "Rent",
            "--amount",
            "900",
            "--type",
            "expense",
            "--date",
            "2024-02-01",
            *db,
        ],
    )

    result = runner.invoke(cli.app, ["ledger", "--since", "2024-01-01", *db])

    assert result.exit_code == 0, result.output
    rows = [ln.split("\t") for ln in _rows(result)]
    assert [(r[0], r[4], r[5]) for r in rows] == [
        ("2024-02-12", "Taxi", "Checking"),
        ("2024-02-01", "Rent", "manual"),
    ]
    assert "manual=1 bank=1" in result.output

    only_bank = runner.invoke(
        cli.app, ["ledger", "--since", "2024-01-01", "--source", "bank", *db]
    )
    assert [ln.split("\t")[4] for ln in _rows(only_bank)] == ["Taxi"]


def test_report_monthly_from_local_store(tmp_path):
    db = _db_args(tmp_path)
    today = date.today().isoformat()
    for desc, amount, kind in (("Pay", "1000", "income"), ("Food", "250.50", "expense")):
        runner.invoke(
            cli.app,
            [
                "add-transaction",
                "--description",
                desc,
                "--amount",
                amount,
                "--type",
                kind,
                "--date",
                today,
                *db,
            ],
        )

    result = runner.invoke(cli.app, ["report", "monthly", "--no-bank", *db])

    assert result.exit_code == 0, result.output
    assert "income\t1000.00" in result.stdout
    assert "expenses\t250.50" in result.stdout
    assert "balance\t749.50" in result.stdout
    assert "transactions\t2" in result.stdout


def test_report_categories_from_local_store(tmp_path):
    db = _db_args(tmp_path)
    today = date.today().isoformat()
    for desc, amount, cat in (("Bus", "30", "Transport"), ("Lunch", "70", "Food")):
        runner.invoke(
            cli.app,
            [
                "add-transaction",
                "--description",
                desc,
                "--amount",
                amount,
                "--type",
                "expense",
                "--category",
                cat,
                "--date",
                today,
                *db,
            ],
        )

    result = runner.invoke(cli.app, ["report", "categories", "--days", "7", "--no-bank", *db])

    assert result.exit_code == 0, result.output
    assert _rows(result) == [
        "Food\t70.00\t70.00%\t1",
        "Transport\t30.00\t30.00%\t1",
    ]


@pytest.mark.parametrize(
    ("today", "months", "expected"),
    [
        (date(2024, 8, 31), 6, date(2024, 2, 29)),
        (date(2024, 3, 15), 3, date(2023, 12, 15)),
        (date(2024, 1, 31), 0, date(2024, 1, 31)),
        (date(2023, 3, 31), 1, date(2023, 2, 28)),
    ],
)
def test_months_ago_clamps_day(today, months, expected):
    assert cli.months_ago(today, months) == expected
