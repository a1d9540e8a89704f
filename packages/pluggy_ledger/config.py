"""Environment-driven settings and credential loading.

Settings are plain environment variables (optionally populated from ``.env``
by the CLI via ``python-dotenv``). Each helper reads its variable at call time
so tests can ``monkeypatch.setenv`` freely.

Credential resolution order (``load_credential``):

1. ``PLUGGY_CREDENTIALS_FILE``: a JSON blob
   ``{"clientId": ..., "clientSecret": ..., "itemIds": "a,b"}`` as stored by
   the client-side settings screen.
2. ``PLUGGY_CLIENT_ID`` / ``PLUGGY_CLIENT_SECRET`` / ``PLUGGY_ITEM_IDS``.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

from .errors import ConfigurationError
from .logging_setup import get_logger, redact
from .models import AmountUnit, Credential, parse_connection_ids

DEFAULT_BASE_URL = "https://api.pluggy.ai"
DEFAULT_API_KEY_HEADER = "X-API-KEY"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_PAGE_SIZE = 500
DEFAULT_CONCURRENCY = 4
_MAX_CONCURRENCY = 16
_MAX_PAGE_SIZE = 500

_logger = get_logger("pluggy_ledger.config")


def _env(name: str) -> str | None:
    val = os.getenv(name)
    if val is None or not val.strip():
        return None
    return val.strip()


def base_url() -> str:
    return (_env("PLUGGY_BASE_URL") or DEFAULT_BASE_URL).rstrip("/")


def api_key_header() -> str:
    return _env("PLUGGY_API_KEY_HEADER") or DEFAULT_API_KEY_HEADER


def timeout_seconds() -> float:
    raw = _env("PLUGGY_TIMEOUT")
    if raw is None:
        return DEFAULT_TIMEOUT_SECONDS
    try:
        val = float(raw)
    except ValueError as e:
        raise ConfigurationError(f"PLUGGY_TIMEOUT must be a number, got {raw!r}") from e
    if val <= 0:
        raise ConfigurationError("PLUGGY_TIMEOUT must be positive")
    return val


def page_size() -> int:
    """Transactions page size; the provider caps it at 500."""

    raw = _env("PLUGGY_PAGE_SIZE")
    if raw is None:
        return DEFAULT_PAGE_SIZE
    try:
        val = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"PLUGGY_PAGE_SIZE must be an integer, got {raw!r}") from e
    if not 1 <= val <= _MAX_PAGE_SIZE:
        raise ConfigurationError(f"PLUGGY_PAGE_SIZE must be within 1..{_MAX_PAGE_SIZE}")
    return val


def amount_unit() -> AmountUnit:
    raw = _env("PLUGGY_AMOUNT_UNIT")
    if raw is None:
        return AmountUnit.MAJOR
    try:
        return AmountUnit(raw.lower())
    except ValueError as e:
        allowed = ", ".join(u.value for u in AmountUnit)
        raise ConfigurationError(f"PLUGGY_AMOUNT_UNIT must be one of {allowed}") from e


def max_concurrency() -> int:
    """Fan-out cap for per-item and per-account calls.

    Invalid values fall back to the default with a warning.
    """

    raw = _env("PLUGGY_MAX_CONCURRENCY")
    try:
        val = int(raw) if raw else None
    except ValueError:
        _logger.warning("ignoring invalid PLUGGY_MAX_CONCURRENCY=%r", raw)
        val = None
    if val is not None and val > 0:
        return min(val, _MAX_CONCURRENCY)
    return DEFAULT_CONCURRENCY


# ----------------------------------------------------------------------------
# Credentials
# ----------------------------------------------------------------------------


def load_credential_file(path: str | os.PathLike[str]) -> Credential:
    p = Path(path).expanduser()
    try:
        blob = json.loads(p.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigurationError(f"credentials file not found: {p}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"failed to read credentials file {p}: {e}") from e
    if not isinstance(blob, dict):
        raise ConfigurationError(f"credentials file {p} must hold a JSON object")
    return Credential.from_mapping(blob)


def load_credential(
    *,
    item_ids: str | None = None,
    require_items: bool = False,
) -> Credential:
    """Resolve the aggregator credential from the file blob or environment.

    ``item_ids`` (comma-delimited) overrides any stored connection ids.
    Raises ``ConfigurationError`` when the client id/secret (or, with
    ``require_items``, the connection ids) are missing.
    """

    cred_file = _env("PLUGGY_CREDENTIALS_FILE")
    if cred_file:
        cred = load_credential_file(cred_file)
        source = "file"
    else:
        cred = Credential(
            client_id=_env("PLUGGY_CLIENT_ID") or "",
            client_secret=_env("PLUGGY_CLIENT_SECRET") or "",
            connection_ids=parse_connection_ids(_env("PLUGGY_ITEM_IDS")),
        )
        source = "environment"

    if item_ids is not None:
        cred = Credential(
            client_id=cred.client_id,
            client_secret=cred.client_secret,
            connection_ids=parse_connection_ids(item_ids),
        )

    _logger.debug(
        "credential loaded source=%s client_id=%s secret=%s items=%d",
        source,
        redact(cred.client_id),
        "set" if cred.client_secret else "<unset>",
        len(cred.connection_ids),
    )

    if not (cred.client_id and cred.client_secret):
        raise ConfigurationError("Pluggy client id and client secret are not configured")
    if require_items and not cred.connection_ids:
        raise ConfigurationError("no Pluggy item ids configured")
    return cred
