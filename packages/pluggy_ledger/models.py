"""Data models for ``pluggy_ledger``.

Two families live here:

- Provider payloads (``Account``, ``RawBankTransaction``) are Pydantic models
  validated from the aggregator's JSON. They ignore unknown fields because the
  provider adds fields freely.
- Internal shapes (``Credential``, ``AccessToken``, ``NormalizedTransaction``
  and the sync/resolution results) are frozen dataclasses.

Sign conventions
----------------
Raw provider amounts are signed (positive = inflow, negative = outflow).
``NormalizedTransaction.amount`` is always non-negative; the sign is carried by
``direction`` only.
"""

from __future__ import annotations

import datetime as _dt
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Documented convention of the aggregator's sandbox connector: demo accounts
# are owned by this exact name.
SANDBOX_OWNER = "John Doe"

DEFAULT_CURRENCY = "BRL"
DEFAULT_CATEGORY = "Uncategorized"


class Direction(StrEnum):
    INCOME = "income"
    EXPENSE = "expense"


class AccountType(StrEnum):
    """Known account types. The provider may return others; they pass through."""

    BANK = "BANK"
    CREDIT = "CREDIT"


class AmountUnit(StrEnum):
    """How raw transaction amounts are scaled in a provider response."""

    MAJOR = "major"
    MINOR = "minor"
    AUTO = "auto"


def to_decimal(raw: Any) -> Decimal:
    """Convert a JSON scalar to ``Decimal`` without binary float artifacts."""

    if isinstance(raw, Decimal):
        return raw
    if isinstance(raw, bool):
        raise ValueError("boolean is not a valid amount")
    try:
        return Decimal(str(raw).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"invalid amount: {raw!r}") from e


def to_calendar_date(raw: Any) -> date:
    """Accept a ``date``, ``datetime`` or ISO string (date or timestamp)."""

    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    s = str(raw).strip()
    if len(s) < 10:
        raise ValueError(f"invalid date: {raw!r}")
    return date.fromisoformat(s[:10])


# ---------------------------------------------------------------------------
# Credentials and tokens
# ---------------------------------------------------------------------------


def parse_connection_ids(raw: str | Iterable[str] | None) -> tuple[str, ...]:
    """Split a comma-delimited id list, trimming whitespace and empty entries.

    Order is preserved and duplicates are kept.
    """

    if raw is None:
        return ()
    parts = raw.split(",") if isinstance(raw, str) else list(raw)
    return tuple(p.strip() for p in parts if isinstance(p, str) and p.strip())


@dataclass(frozen=True, slots=True)
class Credential:
    """Aggregator API credential plus the user's connection (item) ids."""

    client_id: str
    client_secret: str = field(repr=False)
    connection_ids: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, blob: Mapping[str, Any]) -> Credential:
        """Build from the stored JSON blob (``clientId``/``clientSecret``/``itemIds``).

        snake_case keys are accepted as well.
        """

        client_id = blob.get("clientId") or blob.get("client_id") or ""
        client_secret = blob.get("clientSecret") or blob.get("client_secret") or ""
        items = blob.get("itemIds")
        if items is None:
            items = blob.get("item_ids", blob.get("connection_ids"))
        return cls(
            client_id=str(client_id).strip(),
            client_secret=str(client_secret).strip(),
            connection_ids=parse_connection_ids(items),
        )

    def is_configured(self, *, require_items: bool = False) -> bool:
        if not (self.client_id and self.client_secret):
            return False
        return bool(self.connection_ids) if require_items else True


@dataclass(frozen=True, slots=True)
class AccessToken:
    value: str = field(repr=False)
    expires_at: float

    def is_fresh(self, now: float, margin: float) -> bool:
        return now < self.expires_at - margin


# ---------------------------------------------------------------------------
# Provider payloads
# ---------------------------------------------------------------------------


class Account(BaseModel):
    """A bank or credit account as reported by the aggregator (read-only)."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    id: str
    name: str = ""
    type: str = AccountType.BANK
    subtype: str | None = None
    number: str | None = None
    # Major units (e.g. 150.25), signed as the provider reports it.
    balance: Decimal = Decimal("0")
    currency_code: str = Field(DEFAULT_CURRENCY, alias="currencyCode")
    owner: str | None = None
    updated_at: datetime | None = Field(None, alias="updatedAt")
    item_id: str | None = Field(None, alias="itemId")

    @field_validator("id", "item_id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @field_validator("name", mode="before")
    @classmethod
    def _name_default(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("balance", mode="before")
    @classmethod
    def _balance_decimal(cls, v: Any) -> Decimal:
        return Decimal("0") if v is None else to_decimal(v)

    @field_validator("currency_code", mode="before")
    @classmethod
    def _currency_default(cls, v: Any) -> Any:
        return v or DEFAULT_CURRENCY

    @property
    def is_sandbox(self) -> bool:
        return self.owner == SANDBOX_OWNER


class RawBankTransaction(BaseModel):
    """Aggregator-native transaction shape (signed amount)."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    id: str
    description: str | None = None
    amount: Decimal
    date: _dt.date
    category: str | None = None
    account_id: str | None = Field(None, alias="accountId")
    currency_code: str | None = Field(None, alias="currencyCode")
    status: str | None = None
    # True when the JSON carried the amount as an integer literal. Used to
    # detect responses that report integer cents.
    amount_was_int: bool = False

    @model_validator(mode="before")
    @classmethod
    def _note_integer_amount(cls, data: Any) -> Any:
        if isinstance(data, Mapping):
            raw = data.get("amount")
            data = dict(data)
            data["amount_was_int"] = isinstance(raw, int) and not isinstance(raw, bool)
        return data

    @field_validator("id", "account_id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_decimal(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @field_validator("date", mode="before")
    @classmethod
    def _calendar_date(cls, v: Any) -> date:
        return to_calendar_date(v)


@dataclass(frozen=True, slots=True)
class TransactionPage:
    """One page of ``GET /transactions``.

    ``page``/``total_pages`` are ``None`` when the provider omitted them.
    """

    items: list[RawBankTransaction]
    page: int | None
    total_pages: int | None
    total: int | None = None


# ---------------------------------------------------------------------------
# Canonical transaction (shared with manually entered transactions)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class NormalizedTransaction:
    """A ledger entry, either manual (local CRUD) or bank-sourced.

    Bank-sourced ids are namespaced ``bank_<raw id>`` so they never collide
    with local UUIDs.
    """

    id: str
    description: str
    amount: Decimal
    direction: Direction
    category: str
    date: date
    source_account_id: str | None = None
    source_account_name: str | None = None
    is_bank_sourced: bool = False
    # Diagnostic marker for demo data; never real financial data.
    sandbox: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            raise ValueError("NormalizedTransaction.amount must be a Decimal")
        if self.amount < 0:
            raise ValueError("NormalizedTransaction.amount must be non-negative")
        if not isinstance(self.direction, Direction):
            raise ValueError("NormalizedTransaction.direction must be a Direction")

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.direction is Direction.INCOME else -self.amount


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AccountResolution:
    """Accounts reachable from a set of connection ids, plus per-id failures.

    Two empty outcomes must stay distinguishable: ``total_failure`` (every id
    failed) and ``nothing_connected`` (the provider has nothing to return).
    """

    accounts: list[Account]
    errors: dict[str, str]
    processed_items: int

    @property
    def successful_items(self) -> int:
        return self.processed_items - len(self.errors)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def total_failure(self) -> bool:
        return not self.accounts and bool(self.errors)

    @property
    def nothing_connected(self) -> bool:
        return not self.accounts and not self.errors


@dataclass(frozen=True, slots=True)
class BalanceSnapshot:
    amount_minor_units: int
    currency_code: str
    reference_date: date
    balance_type: str = "expected"


@dataclass(frozen=True, slots=True)
class SyncReport:
    """Everything a caller needs after syncing one account."""

    account: Account
    transactions: list[NormalizedTransaction]
    starting_balance: int
    balances: list[BalanceSnapshot]
    start_date: date | None
    end_date: date | None = None

    @property
    def sandbox(self) -> bool:
        return self.account.is_sandbox

    @property
    def total_transactions(self) -> int:
        return len(self.transactions)


__all__ = [
    "AccessToken",
    "Account",
    "AccountResolution",
    "AccountType",
    "AmountUnit",
    "BalanceSnapshot",
    "Credential",
    "DEFAULT_CATEGORY",
    "DEFAULT_CURRENCY",
    "Direction",
    "NormalizedTransaction",
    "RawBankTransaction",
    "SANDBOX_OWNER",
    "SyncReport",
    "TransactionPage",
    "parse_connection_ids",
    "to_calendar_date",
    "to_decimal",
]
