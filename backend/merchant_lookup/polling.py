"""
Bounded retry with a wall-clock deadline.

Every DOM wait in the scraper goes through `poll_until` so timeouts behave the
same everywhere. The clock and sleep are injectable so tests can drive the
loop without real waiting.
"""

import asyncio
import time


async def poll_until(
    predicate,
    interval: float,
    timeout: float,
    clock=time.monotonic,
    sleep=asyncio.sleep,
):
    """Await `predicate()` until it returns a truthy value or `timeout` elapses.

    `predicate` is an async callable. Exceptions it raises count as a miss for
    that attempt. Returns the first truthy value, or None at the deadline.
    The predicate always runs at least once.
    """
    deadline = clock() + timeout
    while True:
        try:
            value = await predicate()
        except Exception:
            value = None
        if value:
            return value
        if clock() >= deadline:
            return None
        await sleep(interval)
