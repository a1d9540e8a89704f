"""Fan out account lookups over a user's connection (item) ids.

Partial failure policy: one failing item id never blocks the others. Its
``ProviderError`` is recorded in ``AccountResolution.errors`` and processing
continues. ``AuthenticationError`` is not per-item (the credential is shared),
so it propagates.
"""

from __future__ import annotations

from collections.abc import Sequence

from .client import AggregatorClient
from .config import DEFAULT_CONCURRENCY
from .errors import ProviderError
from .logging_setup import get_logger
from .models import Account, AccountResolution
from .pmap import a_map

_logger = get_logger("pluggy_ledger.accounts")


async def resolve_accounts(
    client: AggregatorClient,
    connection_ids: Sequence[str],
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> AccountResolution:
    """Collect the accounts reachable from each connection id.

    ``accounts`` is the concatenation in input order and is not deduplicated:
    passing the same id twice yields its accounts twice.
    """

    async def _one(item_id: str) -> tuple[str, list[Account] | None, str | None]:
        try:
            accounts = await client.list_accounts(item_id)
        except ProviderError as e:
            _logger.warning("accounts:item_failed item=%s error=%s", item_id, e.message)
            return item_id, None, e.message
        if accounts:
            _logger.info("accounts:item_ok item=%s count=%d", item_id, len(accounts))
        else:
            _logger.warning("accounts:item_empty item=%s", item_id)
        return item_id, accounts, None

    outcomes = await a_map(connection_ids, _one, concurrency=concurrency)

    accounts: list[Account] = []
    errors: dict[str, str] = {}
    for item_id, found, error in outcomes:
        if error is not None:
            errors[item_id] = error
        elif found:
            accounts.extend(found)

    resolution = AccountResolution(
        accounts=accounts, errors=errors, processed_items=len(connection_ids)
    )
    _logger.info(
        "accounts:resolved items=%d ok=%d failed=%d accounts=%d",
        resolution.processed_items,
        resolution.successful_items,
        len(errors),
        len(accounts),
    )
    return resolution


def describe_empty_resolution(resolution: AccountResolution) -> str | None:
    """User-facing message for an empty result, or ``None`` when not empty.

    Keeps the two empty cases apart: every item failing is reported as a
    failure, while an empty-but-healthy answer points at the connections.
    """

    if resolution.accounts:
        return None
    if resolution.total_failure:
        failed = ", ".join(sorted(resolution.errors))
        return (
            f"Could not load accounts: all {len(resolution.errors)} item id(s) failed "
            f"({failed}). Check the item ids and your credentials."
        )
    if resolution.processed_items == 0:
        return "No item ids configured. Connect a bank and add its item id."
    return (
        f"No accounts found in the {resolution.processed_items} item id(s) provided. "
        "Check that the accounts are connected in the Pluggy dashboard."
    )


__all__ = ["describe_empty_resolution", "resolve_accounts"]
