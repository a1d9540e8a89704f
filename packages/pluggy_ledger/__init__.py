"""Public interface for the ``pluggy_ledger`` package.

This module exposes the package's API functions and public models/types as the
stable import surface. There is no runtime logic here, only symbol re-exports.
"""

from .accounts import describe_empty_resolution, resolve_accounts
from .api import BankLedger, BankSync
from .client import AggregatorClient
from .errors import (
    AuthenticationError,
    ConfigurationError,
    PluggyLedgerError,
    ProviderError,
    SyncError,
)
from .ledger import (
    Ledger,
    LedgerSource,
    LedgerTotals,
    SourceCounts,
    filter_ledger,
    ledger_totals,
    merge,
    source_counts,
)
from .models import (
    AccessToken,
    Account,
    AccountResolution,
    AccountType,
    AmountUnit,
    BalanceSnapshot,
    Credential,
    Direction,
    NormalizedTransaction,
    RawBankTransaction,
    SyncReport,
    TransactionPage,
)
from .reports import CategorySpend, MonthlySummary, category_breakdown, monthly_summary
from .sync import (
    AccountSyncGuard,
    BatchSyncResult,
    compute_starting_balance,
    sync_account,
    sync_account_report,
    sync_accounts,
)
from .token_cache import TokenCache

__all__ = [
    # Core operations
    "resolve_accounts",
    "sync_account",
    "merge",
    # Sync / ledger helpers
    "AccountSyncGuard",
    "BatchSyncResult",
    "compute_starting_balance",
    "describe_empty_resolution",
    "filter_ledger",
    "ledger_totals",
    "source_counts",
    "sync_account_report",
    "sync_accounts",
    "category_breakdown",
    "monthly_summary",
    # Clients / facade
    "AggregatorClient",
    "BankLedger",
    "BankSync",
    "TokenCache",
    # Models / types
    "AccessToken",
    "Account",
    "AccountResolution",
    "AccountType",
    "AmountUnit",
    "BalanceSnapshot",
    "CategorySpend",
    "Credential",
    "Direction",
    "Ledger",
    "LedgerSource",
    "LedgerTotals",
    "MonthlySummary",
    "NormalizedTransaction",
    "RawBankTransaction",
    "SourceCounts",
    "SyncReport",
    "TransactionPage",
    # Errors
    "AuthenticationError",
    "ConfigurationError",
    "PluggyLedgerError",
    "ProviderError",
    "SyncError",
]
