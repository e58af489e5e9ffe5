"""
Tests for async request coalescing.
"""
import asyncio

import pytest

from grimoire.cache import AsyncRequestCoalescer, ReferenceDataError


def test_concurrent_requests_share_one_fetch():
    calls = []

    async def fetch():
        calls.append(1)
        await asyncio.sleep(0.01)
        return {"r1": "Elf"}

    async def scenario():
        coalescer = AsyncRequestCoalescer()
        results = await asyncio.gather(*(coalescer.get_or_fetch("races", fetch) for _ in range(5)))
        return results, coalescer.active_requests

    results, active = asyncio.run(scenario())

    assert len(calls) == 1
    assert all(r == {"r1": "Elf"} for r in results)
    assert active == 0


def test_different_keys_fetch_separately():
    calls = []

    def fetcher(key):
        async def fetch():
            calls.append(key)
            await asyncio.sleep(0)
            return key
        return fetch

    async def scenario():
        coalescer = AsyncRequestCoalescer()
        return await asyncio.gather(
            coalescer.get_or_fetch("a", fetcher("a")),
            coalescer.get_or_fetch("b", fetcher("b")),
        )

    assert asyncio.run(scenario()) == ["a", "b"]
    assert sorted(calls) == ["a", "b"]


def test_error_propagates_and_key_is_released():
    attempts = []

    async def failing():
        attempts.append(1)
        raise ValueError("boom")

    async def scenario():
        coalescer = AsyncRequestCoalescer()
        with pytest.raises(ValueError):
            await coalescer.get_or_fetch("k", failing)
        with pytest.raises(ValueError):
            await coalescer.get_or_fetch("k", failing)
        return coalescer.get_stats()

    stats = asyncio.run(scenario())

    assert len(attempts) == 2
    assert stats == {"active_requests": 0, "active_keys": []}


def test_waiter_times_out():
    async def slow():
        await asyncio.sleep(0.2)
        return "late"

    async def scenario():
        coalescer = AsyncRequestCoalescer(timeout=0.01)
        first = asyncio.create_task(coalescer.get_or_fetch("k", slow))
        await asyncio.sleep(0)
        with pytest.raises(asyncio.TimeoutError):
            await coalescer.get_or_fetch("k", slow)
        return await first

    assert asyncio.run(scenario()) == "late"


def test_cancelled_initiator_fails_waiters_without_cancelling_them():
    started = []

    async def slow():
        started.append(1)
        await asyncio.sleep(1)
        return "never"

    async def scenario():
        coalescer = AsyncRequestCoalescer()
        first = asyncio.create_task(coalescer.get_or_fetch("k", slow))
        await asyncio.sleep(0)
        second = asyncio.create_task(coalescer.get_or_fetch("k", slow))
        await asyncio.sleep(0)

        first.cancel()
        results = await asyncio.gather(first, second, return_exceptions=True)
        return results, coalescer.active_requests

    (first_result, second_result), active = asyncio.run(scenario())

    assert len(started) == 1
    assert isinstance(first_result, asyncio.CancelledError)
    assert isinstance(second_result, ReferenceDataError)
    assert active == 0


def test_cancelled_initiator_without_waiters_releases_key():
    async def slow():
        await asyncio.sleep(1)

    async def fast():
        return "fresh"

    async def scenario():
        coalescer = AsyncRequestCoalescer()
        first = asyncio.create_task(coalescer.get_or_fetch("k", slow))
        await asyncio.sleep(0)
        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first
        return await coalescer.get_or_fetch("k", fast)

    assert asyncio.run(scenario()) == "fresh"
