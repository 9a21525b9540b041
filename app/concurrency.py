"""Dispatch spacing, bounded fan-out and view relevance tracking."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class RateLimiter:
    """Enforce a minimum interval between dispatches sharing a source key.

    A single instance is constructed per process and handed to every adapter
    that talks to a quota-constrained catalog. Waiters for the same key are
    released in arrival order; keys without a configured interval are
    unconstrained.
    """

    def __init__(
        self,
        min_intervals: Mapping[str, float] | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._intervals = {
            key: max(0.0, float(value))
            for key, value in (min_intervals or {}).items()
        }
        self._clock = clock
        self._sleep = sleep
        self._last_dispatch: dict[str, float] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def interval_for(self, source_key: str) -> float:
        return self._intervals.get(source_key, 0.0)

    async def acquire(self, source_key: str) -> None:
        """Suspend until the caller may dispatch a request for ``source_key``."""

        interval = self.interval_for(source_key)
        if interval <= 0:
            return
        lock = self._locks[source_key]
        async with lock:
            last = self._last_dispatch.get(source_key)
            if last is not None:
                wait = max(0.0, interval - (self._clock() - last))
                if wait > 0:
                    logger.debug("Delaying %s request by %.3fs", source_key, wait)
                    await self._sleep(wait)
            self._last_dispatch[source_key] = self._clock()


async def run_bounded(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    *,
    limit: int,
) -> list[R]:
    """Run ``worker`` over ``items`` with at most ``limit`` calls in flight.

    Results keep the input order. With ``limit=1`` items are processed one
    after another, which is how batch refreshes bound their load.
    """

    entries = list(items)
    if limit < 1:
        raise ValueError("limit must be at least 1")
    if limit == 1:
        return [await worker(entry) for entry in entries]

    semaphore = asyncio.Semaphore(limit)

    async def _run(entry: T) -> R:
        async with semaphore:
            return await worker(entry)

    return list(await asyncio.gather(*(_run(entry) for entry in entries)))


@dataclass(frozen=True, slots=True)
class ViewToken:
    view: str
    generation: int


class ViewGeneration:
    """Counter used to discard results of loads the user navigated away from."""

    def __init__(self) -> None:
        self._generation = 0
        self._view: str | None = None

    @property
    def current_view(self) -> str | None:
        return self._view

    def advance(self, view: str) -> ViewToken:
        """Record a view switch and return the token for the load it starts."""

        self._generation += 1
        self._view = view
        return ViewToken(view=view, generation=self._generation)

    def is_current(self, token: ViewToken) -> bool:
        return token.generation == self._generation
