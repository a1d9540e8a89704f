"""Session-scoped orchestration for callers (CLI, web handlers, UIs).

``BankSync`` bundles one ``AggregatorClient`` (and therefore one cached API
key) with the settings read from the environment, and exposes the three
operations the UI consumes (``resolve_accounts``, ``sync_account``,
``merge``) plus the batch and report helpers built on them. Construct one per
user session; it is an async context manager that closes its HTTP client.

The underlying functions in ``accounts``, ``sync`` and ``ledger`` remain the
primary API and take the client explicitly.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from types import TracebackType
from typing import Any

import httpx

from . import config
from .accounts import resolve_accounts as _resolve_accounts
from .client import AggregatorClient
from .ledger import Ledger, merge
from .logging_setup import get_logger
from .models import (
    Account,
    AccountResolution,
    AmountUnit,
    Credential,
    NormalizedTransaction,
    SyncReport,
)
from .sync import (
    AccountSyncGuard,
    BatchSyncResult,
    sync_account as _sync_account,
    sync_account_report as _sync_account_report,
    sync_accounts as _sync_accounts,
)

_logger = get_logger("pluggy_ledger.api")


@dataclass(frozen=True, slots=True)
class BankLedger:
    """Result of a full refresh: the resolved accounts and their synced transactions."""

    resolution: AccountResolution
    batch: BatchSyncResult

    @property
    def transactions(self) -> list[NormalizedTransaction]:
        return self.batch.all_transactions


class BankSync:
    """One user's view of the aggregator.

    Parameters
    ----------
    credential:
        The user's client id/secret and connection ids.
    http:
        Optional ``httpx.AsyncClient`` forwarded to ``AggregatorClient``.
    page_size / amount_unit / concurrency:
        Default to ``PLUGGY_PAGE_SIZE`` / ``PLUGGY_AMOUNT_UNIT`` /
        ``PLUGGY_MAX_CONCURRENCY``.
    """

    def __init__(
        self,
        credential: Credential,
        *,
        http: httpx.AsyncClient | None = None,
        page_size: int | None = None,
        amount_unit: AmountUnit | None = None,
        concurrency: int | None = None,
        **client_kwargs: Any,
    ) -> None:
        self.credential = credential
        self.client = AggregatorClient(credential, http=http, **client_kwargs)
        self.page_size = page_size or config.page_size()
        self.amount_unit = amount_unit or config.amount_unit()
        self.concurrency = concurrency or config.max_concurrency()
        self.guard = AccountSyncGuard()

    async def __aenter__(self) -> BankSync:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.client.aclose()

    def is_configured(self) -> bool:
        return self.credential.is_configured(require_items=True)

    async def resolve_accounts(
        self, connection_ids: Sequence[str] | None = None
    ) -> AccountResolution:
        ids = list(connection_ids) if connection_ids is not None else list(
            self.credential.connection_ids
        )
        return await _resolve_accounts(self.client, ids, concurrency=self.concurrency)

    async def sync_account(
        self,
        account: Account,
        cutoff_date: date | None,
        as_of: date | None = None,
    ) -> list[NormalizedTransaction]:
        return await _sync_account(
            self.client,
            account,
            cutoff_date,
            as_of,
            page_size=self.page_size,
            amount_unit=self.amount_unit,
            guard=self.guard,
        )

    async def sync_report(
        self,
        account_id: str,
        cutoff_date: date | None,
        as_of: date | None = None,
    ) -> SyncReport:
        return await _sync_account_report(
            self.client,
            account_id,
            cutoff_date,
            as_of,
            page_size=self.page_size,
            amount_unit=self.amount_unit,
            guard=self.guard,
        )

    async def sync_all(
        self,
        cutoff_date: date | None,
        as_of: date | None = None,
        *,
        connection_ids: Sequence[str] | None = None,
    ) -> BankLedger:
        """Resolve every account reachable from the connection ids and sync them all."""

        resolution = await self.resolve_accounts(connection_ids)
        batch = await _sync_accounts(
            self.client,
            resolution.accounts,
            cutoff_date,
            as_of,
            concurrency=self.concurrency,
            page_size=self.page_size,
            amount_unit=self.amount_unit,
            guard=self.guard,
        )
        _logger.info(
            "api:sync_all accounts=%d synced=%d failed=%d transactions=%d",
            len(resolution.accounts),
            len(batch.transactions),
            len(batch.errors),
            len(batch.all_transactions),
        )
        return BankLedger(resolution=resolution, batch=batch)

    async def get_item(self, connection_id: str) -> dict[str, Any]:
        return await self.client.get_item(connection_id)

    @staticmethod
    def merge(
        local: Iterable[NormalizedTransaction],
        bank_synced: Iterable[NormalizedTransaction],
    ) -> Ledger:
        return merge(local, bank_synced)


__all__ = ["BankLedger", "BankSync"]
