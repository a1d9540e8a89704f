# ruff: noqa: I001
"""CLI for the ``pluggy_ledger`` package.

Command handlers (``cmd_*``) hold the logic and return a process exit code;
the Typer wrappers below only parse options. ``.env`` in the working
directory is loaded via ``python-dotenv`` (without overriding the existing
environment) before any command runs, so ``PLUGGY_*`` and ``DATABASE_URL`` can
live there.

Output is plain tab-separated lines on stdout; errors go to stderr with a
non-zero exit status.
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
from collections.abc import Coroutine
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer
from dotenv import load_dotenv

from .accounts import describe_empty_resolution
from .api import BankSync
from .config import load_credential
from .errors import AuthenticationError, ConfigurationError, PluggyLedgerError
from .ledger import LedgerSource, filter_ledger, ledger_totals, merge, source_counts
from .logging_setup import configure_logging
from .models import Direction, NormalizedTransaction
from .reports import category_breakdown, monthly_summary

T = TypeVar("T")

DEFAULT_HISTORY_MONTHS = 6


# ---- Small module-level helpers used by CLI commands -------------------------


def _run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


def _err(msg: str) -> None:
    print(f"Error: {msg}", file=sys.stderr)


def _report_failure(e: Exception) -> int:
    if isinstance(e, AuthenticationError):
        _err(f"{e}. Check your Pluggy credentials.")
    else:
        _err(str(e))
    return 1


def months_ago(today: date, months: int) -> date:
    """``today`` shifted back by ``months`` calendar months (day clamped)."""

    if months < 0:
        raise ValueError("months must be non-negative")
    idx = today.year * 12 + (today.month - 1) - months
    year, month0 = divmod(idx, 12)
    month = month0 + 1
    # Clamp the day to the target month's length
    next_first = date(year + (month == 12), (month % 12) + 1, 1)
    last_day = (next_first - date(year, month, 1)).days
    return date(year, month, min(today.day, last_day))


def _as_date(value: datetime | date | None) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    return value


def _fmt_tx(t: NormalizedTransaction) -> str:
    source = t.source_account_name or ("manual" if not t.is_bank_sourced else "bank")
    flag = "\tsandbox" if t.sandbox else ""
    return (
        f"{t.date.isoformat()}\t{t.direction.value}\t{t.amount:.2f}\t"
        f"{t.category}\t{t.description}\t{source}{flag}"
    )


def _load_local(
    database_url: str | None, *, since: date | None = None
) -> list[NormalizedTransaction]:
    # DB imports stay local to the commands that touch the store
    from ledger_db.client import create_tables, session_scope
    from .store import list_transactions

    create_tables(database_url=database_url)
    with session_scope(database_url=database_url) as session:
        return list_transactions(session, since=since)


def _database_configured(database_url: str | None) -> bool:
    return bool(database_url or os.getenv("DATABASE_URL"))


# ---- Command handlers -----------------------------------------------------------


def cmd_status() -> int:
    """Print whether credentials and item ids are configured."""

    try:
        cred = load_credential()
    except ConfigurationError as e:
        print("configured\tno")
        print(f"reason\t{e}")
        return 0
    print(f"configured\t{'yes' if cred.is_configured(require_items=True) else 'no'}")
    print(f"item_ids\t{len(cred.connection_ids)}")
    return 0


def cmd_accounts(item_ids: str | None = None) -> int:
    """List the accounts reachable from the configured (or given) item ids.

    One line per account: ``<id>\\t<name>\\t<type>\\t<balance>\\t<currency>``.
    Per-item failures are printed to stderr; the exit status is non-zero only
    when every item failed.
    """

    try:
        cred = load_credential(item_ids=item_ids, require_items=True)
    except ConfigurationError as e:
        return _report_failure(e)

    async def _go():
        async with BankSync(cred) as bank:
            return await bank.resolve_accounts()

    try:
        resolution = _run(_go())
    except PluggyLedgerError as e:
        return _report_failure(e)

    for item_id, message in resolution.errors.items():
        print(f"Warning: item {item_id}: {message}", file=sys.stderr)
    for a in resolution.accounts:
        print(f"{a.id}\t{a.name}\t{a.type}\t{a.balance}\t{a.currency_code}")

    empty_msg = describe_empty_resolution(resolution)
    if empty_msg:
        print(empty_msg, file=sys.stderr)
    return 1 if resolution.total_failure else 0


def cmd_transactions(
    account_id: str,
    *,
    since: date | None = None,
    to: date | None = None,
    months: int = DEFAULT_HISTORY_MONTHS,
) -> int:
    """Sync one account and print its normalized transactions, newest first."""

    try:
        cred = load_credential()
    except ConfigurationError as e:
        return _report_failure(e)
    cutoff = since or months_ago(date.today(), months)

    async def _go():
        async with BankSync(cred) as bank:
            return await bank.sync_report(account_id, cutoff, to)

    try:
        report = _run(_go())
    except PluggyLedgerError as e:
        return _report_failure(e)

    for t in merge([], report.transactions):
        print(_fmt_tx(t))
    print(
        f"# account={report.account.id} name={report.account.name!r} "
        f"sandbox={'yes' if report.sandbox else 'no'} "
        f"transactions={report.total_transactions} "
        f"starting_balance={report.starting_balance} {report.account.currency_code} "
        f"from={report.start_date or 'provider-default'} to={report.end_date or 'present'}",
        file=sys.stderr,
    )
    return 0


def cmd_item(item_id: str) -> int:
    try:
        cred = load_credential()
    except ConfigurationError as e:
        return _report_failure(e)

    async def _go():
        async with BankSync(cred) as bank:
            return await bank.get_item(item_id)

    try:
        item = _run(_go())
    except PluggyLedgerError as e:
        return _report_failure(e)
    print(json.dumps(item, indent=2, sort_keys=True, default=str))
    return 0


def cmd_add_transaction(
    *,
    description: str,
    amount: str,
    direction: str,
    category: str | None,
    on: date | None,
    database_url: str | None = None,
) -> int:
    """Record a manual transaction in the local store and print its id."""

    from ledger_db.client import create_tables, session_scope
    from .store import add_transaction

    try:
        value = Decimal(amount)
    except InvalidOperation:
        _err(f"invalid amount: {amount!r}")
        return 1
    try:
        kind = Direction(direction.lower())
    except ValueError:
        _err("type must be 'income' or 'expense'")
        return 1

    try:
        create_tables(database_url=database_url)
        with session_scope(database_url=database_url) as session:
            tx = add_transaction(
                session,
                description=description,
                amount=value,
                direction=kind,
                category=category,
                on=on or date.today(),
            )
    except ValueError as e:
        _err(str(e))
        return 1
    except Exception as e:
        _err(f"persistence failed: {e}")
        return 1
    print(tx.id)
    return 0


def build_ledger(
    *,
    database_url: str | None = None,
    since: date | None = None,
    include_bank: bool = True,
) -> list[NormalizedTransaction]:
    """Merge the local store with a fresh bank sync of every configured account.

    Either side is skipped (with a note on stderr) when it isn't configured;
    bank sync failures for single items/accounts are reported as warnings.
    """

    local: list[NormalizedTransaction] = []
    if _database_configured(database_url):
        local = _load_local(database_url, since=since)
    else:
        print("Note: DATABASE_URL not set; manual transactions skipped.", file=sys.stderr)

    bank: list[NormalizedTransaction] = []
    if include_bank:
        try:
            cred = load_credential(require_items=True)
        except ConfigurationError as e:
            print(f"Note: bank sync skipped: {e}", file=sys.stderr)
        else:
            cutoff = since or months_ago(date.today(), DEFAULT_HISTORY_MONTHS)

            async def _go():
                async with BankSync(cred) as bank_sync:
                    return await bank_sync.sync_all(cutoff)

            result = _run(_go())
            for item_id, message in result.resolution.errors.items():
                print(f"Warning: item {item_id}: {message}", file=sys.stderr)
            for account_id, error in result.batch.errors.items():
                print(f"Warning: account {account_id}: {error}", file=sys.stderr)
            empty_msg = describe_empty_resolution(result.resolution)
            if empty_msg:
                print(f"Warning: {empty_msg}", file=sys.stderr)
            bank = result.transactions

    return merge(local, bank)


def cmd_ledger(
    *,
    database_url: str | None = None,
    since: date | None = None,
    search: str | None = None,
    direction: str | None = None,
    category: str | None = None,
    source: str = "all",
    include_bank: bool = True,
) -> int:
    """Print the merged ledger (filtered) followed by totals on stderr."""

    try:
        kind = Direction(direction.lower()) if direction else None
        src = LedgerSource(source.lower())
    except ValueError:
        _err("type must be income/expense and source must be all/manual/bank")
        return 1

    try:
        ledger = build_ledger(database_url=database_url, since=since, include_bank=include_bank)
    except PluggyLedgerError as e:
        return _report_failure(e)
    except Exception as e:
        _err(f"failed to build ledger: {e}")
        return 1

    shown = filter_ledger(ledger, search=search, direction=kind, category=category, source=src)
    for t in shown:
        print(_fmt_tx(t))

    totals = ledger_totals(shown)
    counts = source_counts(ledger)
    print(
        f"# income={totals.income:.2f} expenses={totals.expenses:.2f} "
        f"balance={totals.balance:.2f} shown={len(shown)} "
        f"manual={counts.manual} bank={counts.bank}",
        file=sys.stderr,
    )
    return 0


def cmd_report_monthly(
    *,
    month: int | None = None,
    year: int | None = None,
    database_url: str | None = None,
    include_bank: bool = True,
) -> int:
    today = date.today()
    target_month = month or today.month
    target_year = year or today.year
    if not 1 <= target_month <= 12:
        _err("month must be within 1..12")
        return 1

    try:
        since = date(target_year, target_month, 1)
        ledger = build_ledger(database_url=database_url, since=since, include_bank=include_bank)
    except PluggyLedgerError as e:
        return _report_failure(e)
    except Exception as e:
        _err(f"failed to build ledger: {e}")
        return 1

    s = monthly_summary(ledger, target_month, target_year)
    print(f"month\t{s.year:04d}-{s.month:02d}")
    print(f"income\t{s.income:.2f}")
    print(f"expenses\t{s.expenses:.2f}")
    print(f"balance\t{s.balance:.2f}")
    print(f"transactions\t{s.total_transactions}")
    return 0


def cmd_report_categories(
    *,
    days: int = 30,
    database_url: str | None = None,
    include_bank: bool = True,
) -> int:
    if days < 1:
        _err("days must be a positive integer")
        return 1
    try:
        since = date.today() - timedelta(days=days)
        ledger = build_ledger(database_url=database_url, since=since, include_bank=include_bank)
    except PluggyLedgerError as e:
        return _report_failure(e)
    except Exception as e:
        _err(f"failed to build ledger: {e}")
        return 1

    rows = category_breakdown(ledger, days)
    if not rows:
        print("No expenses in the selected period.")
        return 0
    for r in rows:
        print(f"{r.category}\t{r.total_spent:.2f}\t{r.percentage:.2f}%\t{r.transaction_count}")
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Sync bank accounts through the Pluggy Open Finance API and merge them with "
        "manually entered transactions. Loads PLUGGY_* and DATABASE_URL from a local .env."
    ),
)
report_app = typer.Typer(no_args_is_help=True, help="Ledger reports.")
app.add_typer(report_app, name="report")

DATE_FORMATS = ["%Y-%m-%d"]

DATABASE_URL_OPTION = typer.Option(None, help="Override DATABASE_URL (falls back to env var).")
NO_BANK_OPTION = typer.Option(False, "--no-bank", help="Skip the bank sync; local store only.")


@app.command("status")
def status_cmd() -> None:
    """Show whether Pluggy credentials are configured."""

    raise typer.Exit(cmd_status())


@app.command("accounts")
def accounts_cmd(
    item_ids: str | None = typer.Option(
        None, help="Comma-separated item ids (overrides PLUGGY_ITEM_IDS)."
    ),
) -> None:
    """List accounts for each item id."""

    raise typer.Exit(cmd_accounts(item_ids))


@app.command("transactions")
def transactions_cmd(
    account_id: Annotated[str, typer.Option(help="Pluggy account id.")],
    since: datetime | None = typer.Option(None, formats=DATE_FORMATS, help="Start date."),
    to: datetime | None = typer.Option(None, formats=DATE_FORMATS, help="End date."),
    months: int = typer.Option(
        DEFAULT_HISTORY_MONTHS, min=0, help="History window when --since is omitted."
    ),
) -> None:
    """Sync one account and print its transactions."""

    raise typer.Exit(
        cmd_transactions(account_id, since=_as_date(since), to=_as_date(to), months=months)
    )


@app.command("item")
def item_cmd(
    item_id: Annotated[str, typer.Option(help="Pluggy item (connection) id.")],
) -> None:
    """Print item metadata (diagnostics)."""

    raise typer.Exit(cmd_item(item_id))


@app.command("add-transaction")
def add_transaction_cmd(
    description: Annotated[str, typer.Option(help="What the transaction was.")],
    amount: Annotated[str, typer.Option(help="Non-negative amount, e.g. 42.50.")],
    type_: Annotated[str, typer.Option("--type", help="income or expense.")],
    category: str | None = typer.Option(None, help="Category name."),
    on: datetime | None = typer.Option(
        None, "--date", formats=DATE_FORMATS, help="Transaction date (default today)."
    ),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Record a manual transaction."""

    raise typer.Exit(
        cmd_add_transaction(
            description=description,
            amount=amount,
            direction=type_,
            category=category,
            on=_as_date(on),
            database_url=database_url,
        )
    )


@app.command("ledger")
def ledger_cmd(
    since: datetime | None = typer.Option(None, formats=DATE_FORMATS, help="Start date."),
    search: str | None = typer.Option(None, help="Case-insensitive description filter."),
    type_: str | None = typer.Option(None, "--type", help="income or expense."),
    category: str | None = typer.Option(None, help="Exact category name."),
    source: str = typer.Option("all", help="all, manual or bank."),
    no_bank: bool = NO_BANK_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Print manual and bank transactions as one ledger, newest first."""

    raise typer.Exit(
        cmd_ledger(
            database_url=database_url,
            since=_as_date(since),
            search=search,
            direction=type_,
            category=category,
            source=source,
            include_bank=not no_bank,
        )
    )


@report_app.command("monthly")
def report_monthly_cmd(
    month: int | None = typer.Option(None, min=1, max=12, help="Month (default current)."),
    year: int | None = typer.Option(None, help="Year (default current)."),
    no_bank: bool = NO_BANK_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Income, expenses and balance for one month."""

    raise typer.Exit(
        cmd_report_monthly(
            month=month, year=year, database_url=database_url, include_bank=not no_bank
        )
    )


@report_app.command("categories")
def report_categories_cmd(
    days: int = typer.Option(30, min=1, help="Trailing window in days."),
    no_bank: bool = NO_BANK_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Spending by category over the last N days."""

    raise typer.Exit(
        cmd_report_categories(days=days, database_url=database_url, include_bank=not no_bank)
    )


@app.callback()
def _root(
    log_level: str | None = typer.Option(
        None, help="Log level (default PLUGGY_LEDGER_LOG_LEVEL or INFO)."
    ),
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging once.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)


def main() -> None:  # pragma: no cover - console script entry
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
