"""API-key acquisition and caching for the aggregator.

The aggregator exchanges ``clientId``/``clientSecret`` for a short-lived API
key at ``POST /auth``. ``TokenCache`` keeps exactly one key per credential,
renews it ``margin`` seconds before it expires, and serializes refreshes with
an ``asyncio.Lock`` so concurrent callers share a single in-flight exchange.

No retries happen here; callers decide whether to try again.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Mapping
from typing import Any

import httpx

from .errors import AuthenticationError
from .logging_setup import get_logger, redact
from .models import AccessToken, Credential

# The provider has used all of these names across API versions.
TOKEN_KEYS: tuple[str, ...] = ("apiKey", "accessToken", "access_token", "token")
EXPIRY_KEYS: tuple[str, ...] = ("expiresIn", "expires_in")

DEFAULT_EXPIRY_SECONDS = 7200
REFRESH_MARGIN_SECONDS = 300

_logger = get_logger("pluggy_ledger.token_cache")


def extract_token(body: Mapping[str, Any]) -> str | None:
    """Return the first non-empty string under any known token key."""

    for key in TOKEN_KEYS:
        val = body.get(key)
        if isinstance(val, str) and val.strip():
            return val.strip()
    return None


def extract_expiry(body: Mapping[str, Any]) -> float:
    for key in EXPIRY_KEYS:
        val = body.get(key)
        if isinstance(val, bool):
            continue
        if isinstance(val, int | float) and val > 0:
            return float(val)
    return float(DEFAULT_EXPIRY_SECONDS)


class TokenCache:
    """Single-slot, single-flight cache of the aggregator API key.

    Parameters
    ----------
    credential:
        The client id/secret to authenticate with.
    http:
        The ``httpx.AsyncClient`` used for ``POST /auth``; it is borrowed, not
        closed here.
    auth_url:
        Absolute URL of the auth endpoint.
    margin:
        Seconds before expiry at which the key is considered stale.
    clock:
        Returns the current time in epoch seconds (injectable for tests).
    """

    def __init__(
        self,
        credential: Credential,
        *,
        http: httpx.AsyncClient,
        auth_url: str,
        margin: float = REFRESH_MARGIN_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._credential = credential
        self._http = http
        self._auth_url = auth_url
        self._margin = margin
        self._clock = clock
        self._token: AccessToken | None = None
        self._lock = asyncio.Lock()

    @property
    def cached(self) -> AccessToken | None:
        return self._token

    def invalidate(self) -> None:
        self._token = None

    async def get_token(self) -> AccessToken:
        token = self._token
        if token is not None and token.is_fresh(self._clock(), self._margin):
            return token

        async with self._lock:
            # Another waiter may have refreshed while we queued on the lock.
            token = self._token
            if token is not None and token.is_fresh(self._clock(), self._margin):
                return token
            self._token = await self._authenticate()
            return self._token

    async def _authenticate(self) -> AccessToken:
        _logger.info(
            "auth:exchange client_id=%s", redact(self._credential.client_id)
        )
        try:
            resp = await self._http.post(
                self._auth_url,
                json={
                    "clientId": self._credential.client_id,
                    "clientSecret": self._credential.client_secret,
                },
            )
        except httpx.TimeoutException as e:
            raise AuthenticationError(f"auth request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise AuthenticationError(f"auth request failed: {e}") from e

        if not resp.is_success:
            raise AuthenticationError(
                f"authentication failed: {resp.status_code} - {resp.text.strip()}"
            )

        try:
            body = resp.json()
        except ValueError as e:
            raise AuthenticationError("auth response is not valid JSON") from e
        if not isinstance(body, dict):
            raise AuthenticationError("auth response is not a JSON object")

        value = extract_token(body)
        if value is None:
            # Log only the key names; values may be secrets.
            _logger.error("auth:no_token keys=%s", sorted(body))
            raise AuthenticationError("access token not found in auth response")

        expires_in = extract_expiry(body)
        _logger.debug("auth:ok expires_in=%.0fs", expires_in)
        return AccessToken(value=value, expires_at=self._clock() + expires_in)


__all__ = [
    "DEFAULT_EXPIRY_SECONDS",
    "REFRESH_MARGIN_SECONDS",
    "TOKEN_KEYS",
    "TokenCache",
    "extract_expiry",
    "extract_token",
]
