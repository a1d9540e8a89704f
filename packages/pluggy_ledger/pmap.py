"""A tiny bounded-concurrency map for coroutines, inspired by `p-map`.

Goals
-----
- A single ``a_map()`` call with an iterable, an async mapper, and a
  ``concurrency`` cap.
- Preserve input order while running work concurrently.

The API mirrors the parts of `p-map` we need:
- ``concurrency``: maximum number of mapper calls awaiting at once.
- ``stop_on_error`` (default True): fail fast on the first error and cancel
  the rest; when False, wait for everything and raise an ``ExceptionGroup``
  of all failures.
- ``a_map_skip``: return this sentinel from the mapper to omit a value from the
  output while preserving relative order of the remaining items.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

InT = TypeVar("InT")
OutT = TypeVar("OutT")


class _Skip:
    __slots__ = ()

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return "a_map_skip"


a_map_skip: object = _Skip()


async def a_map(
    iterable: Iterable[InT],
    mapper: Callable[[InT], Awaitable[OutT | object]],
    *,
    concurrency: int,
    stop_on_error: bool = True,
) -> list[OutT]:
    """Await ``mapper`` over ``iterable`` with at most ``concurrency`` in flight.

    The returned list follows input order, excluding items whose mapper
    returned ``a_map_skip``.
    """

    if isinstance(concurrency, bool) or not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    sem = asyncio.Semaphore(concurrency)

    async def _bounded(item: InT) -> OutT | object:
        async with sem:
            return await mapper(item)

    tasks = [asyncio.ensure_future(_bounded(item)) for item in iterable]
    if not tasks:
        return []

    if stop_on_error:
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for t in tasks:
                t.cancel()
            # Drain so cancelled tasks don't warn about never-retrieved errors.
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
    else:
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for r in results:
            # Cancellation and interpreter exits are not mapper failures.
            if isinstance(r, BaseException) and not isinstance(r, Exception):
                raise r
        errors = [r for r in results if isinstance(r, Exception)]
        if errors:
            raise ExceptionGroup("a_map: one or more mapper calls failed", errors)

    return [r for r in results if r is not a_map_skip]  # type: ignore[misc]


__all__ = ["a_map", "a_map_skip"]
