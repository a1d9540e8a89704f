"""Thin async client for the Pluggy Open Finance REST API.

One instance per user session. The client is built explicitly from a
``Credential`` and passed down to the resolver/sync functions; there is no
module-level singleton, so two users' credentials can never share a cached
key.

Every authenticated call sends the API key in a single static header
(``X-API-KEY`` by default, see ``config.api_key_header``). Any status outside
200-299 raises ``ProviderError``; when the body is JSON its ``message`` (or
``error``) field is appended for diagnostics. Timeouts and transport failures
are reported as ``ProviderError`` too.

Usage
-----
async with AggregatorClient(credential) as client:
    accounts = await client.list_accounts(item_id)
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import date
from types import TracebackType
from typing import Any

import httpx

from . import config
from .errors import ProviderError
from .logging_setup import get_logger
from .models import Account, Credential, RawBankTransaction, TransactionPage
from .token_cache import TokenCache

_logger = get_logger("pluggy_ledger.client")


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return ""
    if isinstance(body, Mapping):
        detail = body.get("message") or body.get("error")
        if detail:
            return str(detail)
    return ""


def _as_results(body: Any) -> list[Any]:
    """Accept ``{"results": [...]}`` or a bare list."""

    if isinstance(body, list):
        return body
    if isinstance(body, Mapping):
        results = body.get("results")
        if isinstance(results, list):
            return results
    return []


def _opt_int(raw: Any) -> int | None:
    if isinstance(raw, bool) or raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


class AggregatorClient:
    """REST wrapper over accounts, transactions and items.

    Parameters
    ----------
    credential:
        Client id/secret used to obtain the API key.
    http:
        Optional pre-built ``httpx.AsyncClient`` (tests pass one with a
        ``MockTransport``). When omitted the client owns one and closes it in
        ``aclose()``.
    base_url / api_key_header / timeout:
        Default to the ``PLUGGY_*`` environment settings.
    clock:
        Forwarded to ``TokenCache``.
    """

    def __init__(
        self,
        credential: Credential,
        *,
        http: httpx.AsyncClient | None = None,
        base_url: str | None = None,
        api_key_header: str | None = None,
        timeout: float | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._credential = credential
        self._base_url = (base_url or config.base_url()).rstrip("/")
        self._header = api_key_header or config.api_key_header()
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            timeout=timeout if timeout is not None else config.timeout_seconds()
        )
        cache_kwargs: dict[str, Any] = {}
        if clock is not None:
            cache_kwargs["clock"] = clock
        self.tokens = TokenCache(
            credential,
            http=self._http,
            auth_url=f"{self._base_url}/auth",
            **cache_kwargs,
        )

    @property
    def credential(self) -> Credential:
        return self._credential

    async def __aenter__(self) -> AggregatorClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _get(
        self,
        path: str,
        *,
        resource_id: str | None,
        params: Mapping[str, str] | None = None,
        what: str,
    ) -> Any:
        token = await self.tokens.get_token()
        url = f"{self._base_url}{path}"
        try:
            resp = await self._http.get(
                url,
                params=params,
                headers={self._header: token.value, "Content-Type": "application/json"},
            )
        except httpx.TimeoutException as e:
            raise ProviderError(resource_id, f"{what}: request timed out") from e
        except httpx.HTTPError as e:
            raise ProviderError(resource_id, f"{what}: request failed: {e}") from e

        if not resp.is_success:
            if resp.status_code in (401, 403):
                # Key revoked or expired early; next call re-authenticates.
                self.tokens.invalidate()
            detail = _error_detail(resp) or "unknown error"
            _logger.warning(
                "provider:error what=%s id=%s status=%d detail=%s",
                what,
                resource_id,
                resp.status_code,
                detail,
            )
            raise ProviderError(
                resource_id,
                f"{what} failed: {resp.status_code} - {detail}",
                status_code=resp.status_code,
            )

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderError(resource_id, f"{what}: response is not valid JSON") from e

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def list_accounts(self, connection_id: str) -> list[Account]:
        """Accounts reachable from one item. An empty list is a valid answer."""

        body = await self._get(
            "/accounts",
            resource_id=connection_id,
            params={"itemId": connection_id},
            what="list accounts",
        )
        try:
            accounts = [Account.model_validate(a) for a in _as_results(body)]
        except ValueError as e:
            raise ProviderError(connection_id, f"list accounts: malformed account: {e}") from e
        _logger.debug("accounts:listed item=%s count=%d", connection_id, len(accounts))
        return accounts

    async def get_account(self, account_id: str) -> Account:
        body = await self._get(
            f"/accounts/{account_id}", resource_id=account_id, what="get account"
        )
        if not isinstance(body, Mapping) or not body:
            raise ProviderError(account_id, "get account: empty response body")
        try:
            return Account.model_validate(body)
        except ValueError as e:
            raise ProviderError(account_id, f"get account: malformed account: {e}") from e

    async def list_transactions_page(
        self,
        account_id: str,
        *,
        from_date: date | str | None = None,
        to_date: date | str | None = None,
        page_size: int = config.DEFAULT_PAGE_SIZE,
        page: int = 1,
    ) -> TransactionPage:
        """Fetch one page; pagination is the caller's job."""

        params: dict[str, str] = {"accountId": account_id}
        if from_date:
            params["from"] = str(from_date)
        if to_date:
            params["to"] = str(to_date)
        params["pageSize"] = str(page_size)
        params["page"] = str(page)

        body = await self._get(
            "/transactions", resource_id=account_id, params=params, what="list transactions"
        )
        if not isinstance(body, Mapping):
            body = {"results": _as_results(body)}
        try:
            items = [RawBankTransaction.model_validate(t) for t in _as_results(body)]
        except ValueError as e:
            raise ProviderError(
                account_id, f"list transactions: malformed transaction on page {page}: {e}"
            ) from e

        return TransactionPage(
            items=items,
            page=_opt_int(body.get("page")),
            total_pages=_opt_int(body.get("totalPages")),
            total=_opt_int(body.get("total")),
        )

    async def get_item(self, connection_id: str) -> dict[str, Any]:
        """Item (connection) metadata, used diagnostically only."""

        body = await self._get(
            f"/items/{connection_id}", resource_id=connection_id, what="get item"
        )
        if not isinstance(body, Mapping) or not body:
            raise ProviderError(connection_id, "get item: empty response body")
        return dict(body)


__all__ = ["AggregatorClient"]
