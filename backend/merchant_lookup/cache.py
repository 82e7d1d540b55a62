"""
TTL cache with in-flight collapsing.

Fresh entries are returned without calling the wrapped function. While a
computation for a key is running, every other caller for that key awaits the
same task, so a batch that names one merchant twice drives the browser once.
Only successful results are stored; an exception reaches every waiter and
leaves nothing behind.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from functools import partial
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 12 * 60 * 60


def normalize_key(query: str) -> str:
    return query.strip().lower()


@dataclass
class CacheEntry:
    value: Any
    timestamp: float


class LookupCache:
    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock=time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._in_flight: dict[str, asyncio.Task] = {}

    @property
    def size(self) -> int:
        return len(self._entries)

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def is_fresh(self, entry: CacheEntry | None) -> bool:
        return entry is not None and self._clock() - entry.timestamp < self.ttl_seconds

    def get(self, key: str):
        """Fresh cached value for `key`, or None. A stored None reads as a miss."""
        entry = self._entries.get(key)
        return entry.value if self.is_fresh(entry) else None

    def set(self, key: str, value) -> None:
        self._entries[key] = CacheEntry(value=value, timestamp=self._clock())

    async def get_or_compute(self, key: str, compute):
        """Return the cached value for `key` or run `compute()` once for everyone.

        `compute` is a zero-argument coroutine function.
        """
        cached = self.get(key)
        if cached is not None:
            logger.debug("[cache] hit %s", key)
            return cached

        task = self._in_flight.get(key)
        if task is None:
            logger.debug("[cache] miss %s", key)
            task = asyncio.ensure_future(compute())
            self._in_flight[key] = task
            task.add_done_callback(partial(self._settle, key))
        else:
            logger.debug("[cache] joining in-flight %s", key)

        # A waiter that gets cancelled must not cancel the shared computation
        return await asyncio.shield(task)

    def _settle(self, key: str, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.debug("[cache] not caching %s: %s", key, error)
            return
        self.set(key, task.result())

    def clear(self) -> int:
        """Drop all entries and in-flight handles; returns the prior entry count."""
        cleared = len(self._entries)
        self._entries.clear()
        self._in_flight.clear()
        logger.info("[cache] Cleared %d entries", cleared)
        return cleared
