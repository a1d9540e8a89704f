"""Exception taxonomy for ``pluggy_ledger``.

- ``AuthenticationError``: bad/missing credentials or an unusable ``/auth``
  response. Fatal; surfaced to the user as "check your credentials".
- ``ProviderError``: any non-2xx response (or transport failure/timeout) from
  the aggregator, carrying the offending item/account id.
- ``SyncError``: pagination inconsistency or an abort mid-sync. Fatal for that
  account only.
- ``ConfigurationError``: missing credentials or invalid settings.
"""

from __future__ import annotations


class PluggyLedgerError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(PluggyLedgerError):
    pass


class AuthenticationError(PluggyLedgerError):
    pass


class ProviderError(PluggyLedgerError):
    """A failed call against the aggregator API.

    ``resource_id`` is the item (connection) or account id the call was about,
    or ``None`` for calls with no single subject.
    """

    def __init__(
        self,
        resource_id: str | None,
        message: str,
        *,
        status_code: int | None = None,
    ) -> None:
        self.resource_id = resource_id
        self.message = message
        self.status_code = status_code
        prefix = f"[{resource_id}] " if resource_id else ""
        super().__init__(f"{prefix}{message}")


class SyncError(PluggyLedgerError):
    """Transaction sync for one account was aborted.

    Pages fetched before the failure are discarded by the caller; a partial
    history is never returned.
    """

    def __init__(self, account_id: str, page: int, cause: BaseException | str) -> None:
        self.account_id = account_id
        self.page = page
        self.cause = cause
        super().__init__(f"sync aborted for account {account_id} at page {page}: {cause}")


__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "PluggyLedgerError",
    "ProviderError",
    "SyncError",
]
