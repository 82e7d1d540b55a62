import asyncio

import pytest

from merchant_lookup.cache import DEFAULT_TTL_SECONDS, LookupCache, normalize_key


class Clock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


def counting(value="v", delay=0.0, error=None):
    calls = {"n": 0}

    async def compute():
        calls["n"] += 1
        if delay:
            await asyncio.sleep(delay)
        if error is not None:
            raise error
        return value

    return compute, calls


def test_normalize_key():
    assert normalize_key("  Nike ") == "nike"
    assert normalize_key("MACY'S") == "macy's"


@pytest.mark.asyncio
async def test_second_call_within_ttl_is_served_from_cache():
    cache = LookupCache(clock=Clock())
    compute, calls = counting()
    assert await cache.get_or_compute("nike", compute) == "v"
    assert await cache.get_or_compute("nike", compute) == "v"
    assert calls["n"] == 1
    assert cache.size == 1
    assert cache.get("nike") == "v"


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_computation():
    cache = LookupCache(clock=Clock())
    compute, calls = counting(value={"hero": "x"}, delay=0.01)
    results = await asyncio.gather(*(cache.get_or_compute("nike", compute) for _ in range(8)))
    assert calls["n"] == 1
    assert all(r is results[0] for r in results)
    assert cache.in_flight == 0


@pytest.mark.asyncio
async def test_concurrent_callers_share_the_error_and_nothing_is_cached():
    cache = LookupCache(clock=Clock())
    compute, calls = counting(delay=0.01, error=RuntimeError("boom"))
    results = await asyncio.gather(
        *(cache.get_or_compute("nike", compute) for _ in range(4)),
        return_exceptions=True,
    )
    assert calls["n"] == 1
    assert all(isinstance(r, RuntimeError) and str(r) == "boom" for r in results)
    assert cache.size == 0
    assert cache.in_flight == 0


@pytest.mark.asyncio
async def test_expired_entry_is_recomputed():
    clock = Clock()
    cache = LookupCache(clock=clock)
    compute, calls = counting()
    await cache.get_or_compute("nike", compute)
    clock.now += DEFAULT_TTL_SECONDS - 1
    await cache.get_or_compute("nike", compute)
    assert calls["n"] == 1
    clock.now += 2
    assert cache.get("nike") is None
    await cache.get_or_compute("nike", compute)
    assert calls["n"] == 2


@pytest.mark.asyncio
async def test_independent_keys_do_not_block_each_other():
    cache = LookupCache(clock=Clock())
    slow, slow_calls = counting(value="slow", delay=0.05)
    fast, fast_calls = counting(value="fast")
    slow_task = asyncio.ensure_future(cache.get_or_compute("a", slow))
    await asyncio.sleep(0)
    assert await cache.get_or_compute("b", fast) == "fast"
    assert not slow_task.done()
    assert await slow_task == "slow"


@pytest.mark.asyncio
async def test_clear_reports_count_and_forces_miss():
    cache = LookupCache(clock=Clock())
    compute, calls = counting()
    for key in ("a", "b", "c"):
        await cache.get_or_compute(key, compute)
    assert cache.clear() == 3
    assert cache.size == 0
    await cache.get_or_compute("a", compute)
    assert calls["n"] == 4


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_shared_work():
    cache = LookupCache(clock=Clock())
    compute, calls = counting(value="done", delay=0.02)
    first = asyncio.ensure_future(cache.get_or_compute("k", compute))
    second = asyncio.ensure_future(cache.get_or_compute("k", compute))
    await asyncio.sleep(0)
    first.cancel()
    assert await second == "done"
    assert calls["n"] == 1
    assert cache.get("k") == "done"
