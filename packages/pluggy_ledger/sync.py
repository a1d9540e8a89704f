"""Transaction sync for aggregator accounts.

``sync_account`` pages through every transaction of one account since a
cutoff date and normalizes each into a ``NormalizedTransaction``:

- Sandbox accounts (``owner == "John Doe"``, the aggregator's documented demo
  owner) always start at ``2000-01-01`` and every result is tagged
  ``sandbox=True``.
- Pages are fetched sequentially (``totalPages`` is only known after page 1)
  and the loop refuses to continue when the provider's paging is
  inconsistent, so a misbehaving provider can never spin it forever.
- Any failure while paging aborts the account with ``SyncError``; pages
  already fetched are dropped rather than returning a partial history.

Amount units
------------
The aggregator documents amounts in major units (``-42.5``), but integer
cents have been observed. ``AmountUnit.MAJOR`` (default) trusts the contract
and logs a warning when a batch looks like cents; ``AmountUnit.MINOR`` always
divides by 100; ``AmountUnit.AUTO`` decides once per account, over every
page of the sync together, via ``detect_amount_unit``.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Awaitable, Callable, Hashable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import TypeVar

from . import config
from .client import AggregatorClient
from .errors import ProviderError, SyncError
from .logging_setup import get_logger
from .models import (
    DEFAULT_CATEGORY,
    Account,
    AccountType,
    AmountUnit,
    BalanceSnapshot,
    Direction,
    NormalizedTransaction,
    RawBankTransaction,
    SyncReport,
)
from .pmap import a_map

SANDBOX_START_DATE = date(2000, 1, 1)
BANK_ID_PREFIX = "bank_"
DEFAULT_DESCRIPTION = "Bank transaction"

_CENTS = Decimal(100)

T = TypeVar("T")

_logger = get_logger("pluggy_ledger.sync")


# ----------------------------------------------------------------------------
# Normalization
# ----------------------------------------------------------------------------


def detect_amount_unit(items: Sequence[RawBankTransaction]) -> AmountUnit:
    """Guess the unit of one account's batch: cents only if every amount is an int literal."""

    if items and all(t.amount_was_int for t in items):
        return AmountUnit.MINOR
    return AmountUnit.MAJOR


def normalize_transaction(
    raw: RawBankTransaction,
    account: Account,
    *,
    unit: AmountUnit = AmountUnit.MAJOR,
    sandbox: bool = False,
) -> NormalizedTransaction:
    if unit is AmountUnit.AUTO:
        raise ValueError("resolve AmountUnit.AUTO per batch before normalizing")

    amount = abs(raw.amount)
    if unit is AmountUnit.MINOR:
        amount = amount / _CENTS

    return NormalizedTransaction(
        id=f"{BANK_ID_PREFIX}{raw.id}",
        description=raw.description or DEFAULT_DESCRIPTION,
        amount=amount,
        direction=Direction.INCOME if raw.amount > 0 else Direction.EXPENSE,
        category=raw.category or DEFAULT_CATEGORY,
        date=raw.date,
        source_account_id=account.id,
        source_account_name=account.name,
        is_bank_sourced=True,
        sandbox=sandbox,
    )


def normalize_transactions(
    items: Sequence[RawBankTransaction],
    account: Account,
    *,
    amount_unit: AmountUnit = AmountUnit.MAJOR,
    sandbox: bool = False,
) -> list[NormalizedTransaction]:
    detected = detect_amount_unit(items)
    unit = detected if amount_unit is AmountUnit.AUTO else amount_unit
    if amount_unit is AmountUnit.MAJOR and detected is AmountUnit.MINOR:
        _logger.warning(
            "sync:amounts_look_like_cents account=%s count=%d; "
            "set PLUGGY_AMOUNT_UNIT=minor or auto if totals look 100x too large",
            account.id,
            len(items),
        )
    elif amount_unit is AmountUnit.AUTO:
        _logger.debug("sync:amount_unit account=%s detected=%s", account.id, unit)
    return [normalize_transaction(t, account, unit=unit, sandbox=sandbox) for t in items]


def compute_starting_balance(account: Account) -> int:
    """Account balance in minor units, in the ledger's sign convention.

    Credit accounts report debt as a positive balance; it is negated so debt
    reduces net worth.
    """

    minor = int((account.balance * _CENTS).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    if account.type == AccountType.CREDIT:
        minor = -minor
    return minor


def balance_snapshot(account: Account, *, today: date | None = None) -> BalanceSnapshot:
    reference = account.updated_at.date() if account.updated_at else (today or date.today())
    return BalanceSnapshot(
        amount_minor_units=compute_starting_balance(account),
        currency_code=account.currency_code,
        reference_date=reference,
    )


def effective_start_date(account: Account, cutoff_date: date | None) -> date | None:
    return SANDBOX_START_DATE if account.is_sandbox else cutoff_date


# ----------------------------------------------------------------------------
# Paging
# ----------------------------------------------------------------------------


async def fetch_all_pages(
    client: AggregatorClient,
    account_id: str,
    *,
    from_date: date | None,
    to_date: date | None = None,
    page_size: int = config.DEFAULT_PAGE_SIZE,
) -> list[RawBankTransaction]:
    """Fetch pages 1..totalPages for one account.

    Raises ``SyncError`` when a page fails or when the provider's paging is
    inconsistent: a page other than the one requested, or a ``totalPages``
    that differs from what page 1 reported.
    """

    items: list[RawBankTransaction] = []
    page = 1
    expected_pages: int | None = None

    while True:
        try:
            result = await client.list_transactions_page(
                account_id,
                from_date=from_date,
                to_date=to_date,
                page_size=page_size,
                page=page,
            )
        except ProviderError as e:
            raise SyncError(account_id, page, e) from e

        reported_page = result.page if result.page is not None else page
        if reported_page != page:
            raise SyncError(
                account_id, page, f"provider returned page {reported_page} for page {page}"
            )

        total_pages = result.total_pages if result.total_pages is not None else 1
        if total_pages == 0 and page == 1 and not result.items:
            # Empty accounts report zero pages.
            total_pages = 1
        if total_pages < 1:
            raise SyncError(account_id, page, f"invalid totalPages={total_pages}")
        if expected_pages is None:
            expected_pages = total_pages
        elif total_pages != expected_pages:
            raise SyncError(
                account_id,
                page,
                f"totalPages changed from {expected_pages} to {total_pages} mid-sync",
            )

        items.extend(result.items)
        _logger.debug(
            "sync:page account=%s page=%d/%d items=%d",
            account_id,
            page,
            total_pages,
            len(result.items),
        )
        if page >= total_pages:
            return items
        page += 1


# ----------------------------------------------------------------------------
# Single-flight per account
# ----------------------------------------------------------------------------


class AccountSyncGuard:
    """Share one in-flight sync among concurrent callers with the same key.

    The key should identify the account and the sync parameters so callers
    asking for different windows don't receive each other's results.
    A run stays registered until it finishes, even when the caller that
    started it is cancelled.
    """

    def __init__(self) -> None:
        self._inflight: dict[Hashable, asyncio.Future[object]] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._inflight

    async def run(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        existing = self._inflight.get(key)
        if existing is not None:
            return await asyncio.shield(existing)  # type: ignore[return-value]

        task = asyncio.ensure_future(factory())
        self._inflight[key] = task  # type: ignore[assignment]
        # Registered on the task, not the caller: a cancelled caller leaves the
        # run in flight for anyone else waiting on the same key.
        task.add_done_callback(functools.partial(self._finished, key))
        return await asyncio.shield(task)

    def _finished(self, key: Hashable, task: asyncio.Future[object]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled() and task.exception() is not None:
            _logger.debug("sync:guard_finished key=%r error=%r", key, task.exception())


# ----------------------------------------------------------------------------
# Public operations
# ----------------------------------------------------------------------------


async def sync_account(
    client: AggregatorClient,
    account: Account,
    cutoff_date: date | None,
    as_of: date | None = None,
    *,
    page_size: int = config.DEFAULT_PAGE_SIZE,
    amount_unit: AmountUnit = AmountUnit.MAJOR,
    guard: AccountSyncGuard | None = None,
) -> list[NormalizedTransaction]:
    """Return every transaction of ``account`` since ``cutoff_date``, normalized.

    The result is unsorted; ordering is the ledger's job.
    """

    start = effective_start_date(account, cutoff_date)
    sandbox = account.is_sandbox

    async def _run() -> list[NormalizedTransaction]:
        _logger.info(
            "sync:start account=%s name=%r sandbox=%s from=%s to=%s",
            account.id,
            account.name,
            sandbox,
            start,
            as_of or "present",
        )
        raw = await fetch_all_pages(
            client, account.id, from_date=start, to_date=as_of, page_size=page_size
        )
        out = normalize_transactions(raw, account, amount_unit=amount_unit, sandbox=sandbox)
        _logger.info("sync:done account=%s transactions=%d", account.id, len(out))
        return out

    if guard is None:
        return await _run()
    key = (account.id, start, as_of, page_size, amount_unit)
    return await guard.run(key, _run)


async def sync_account_report(
    client: AggregatorClient,
    account_id: str,
    cutoff_date: date | None,
    as_of: date | None = None,
    *,
    page_size: int = config.DEFAULT_PAGE_SIZE,
    amount_unit: AmountUnit = AmountUnit.MAJOR,
    guard: AccountSyncGuard | None = None,
) -> SyncReport:
    """Fetch the account by id, sync it, and attach balance information."""

    account = await client.get_account(account_id)
    transactions = await sync_account(
        client,
        account,
        cutoff_date,
        as_of,
        page_size=page_size,
        amount_unit=amount_unit,
        guard=guard,
    )
    snapshot = balance_snapshot(account)
    return SyncReport(
        account=account,
        transactions=transactions,
        starting_balance=snapshot.amount_minor_units,
        balances=[snapshot],
        start_date=effective_start_date(account, cutoff_date),
        end_date=as_of,
    )


@dataclass(frozen=True, slots=True)
class BatchSyncResult:
    """Per-account outcome of ``sync_accounts``.

    A ``SyncError`` for one account is recorded in ``errors`` and does not
    affect the others.
    """

    transactions: dict[str, list[NormalizedTransaction]] = field(default_factory=dict)
    errors: dict[str, SyncError] = field(default_factory=dict)

    @property
    def all_transactions(self) -> list[NormalizedTransaction]:
        out: list[NormalizedTransaction] = []
        for items in self.transactions.values():
            out.extend(items)
        return out


async def sync_accounts(
    client: AggregatorClient,
    accounts: Sequence[Account],
    cutoff_date: date | None,
    as_of: date | None = None,
    *,
    concurrency: int = config.DEFAULT_CONCURRENCY,
    page_size: int = config.DEFAULT_PAGE_SIZE,
    amount_unit: AmountUnit = AmountUnit.MAJOR,
    guard: AccountSyncGuard | None = None,
) -> BatchSyncResult:
    """Sync several accounts concurrently.

    ``AuthenticationError`` still propagates: the credential is shared, so it
    would fail every account the same way.
    """

    async def _one(account: Account) -> tuple[str, list[NormalizedTransaction] | SyncError]:
        try:
            return account.id, await sync_account(
                client,
                account,
                cutoff_date,
                as_of,
                page_size=page_size,
                amount_unit=amount_unit,
                guard=guard,
            )
        except SyncError as e:
            _logger.warning("sync:account_failed account=%s error=%s", account.id, e)
            return account.id, e

    result = BatchSyncResult()
    for account_id, outcome in await a_map(accounts, _one, concurrency=concurrency):
        if isinstance(outcome, SyncError):
            result.errors[account_id] = outcome
        else:
            result.transactions.setdefault(account_id, []).extend(outcome)
    return result


__all__ = [
    "AccountSyncGuard",
    "BANK_ID_PREFIX",
    "BatchSyncResult",
    "SANDBOX_START_DATE",
    "balance_snapshot",
    "compute_starting_balance",
    "detect_amount_unit",
    "effective_start_date",
    "fetch_all_pages",
    "normalize_transaction",
    "normalize_transactions",
    "sync_account",
    "sync_account_report",
    "sync_accounts",
]
