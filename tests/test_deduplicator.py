"""
Unit tests for FetchCoalescer and AbortSignal.
"""

import asyncio
import inspect

import pytest

from resource_server.services.abort import AbortSignal
from resource_server.services.deduplicator import FetchCoalescer
from resource_server.services.errors import RequestAbortedError


class TestFetchCoalescer:
    """Test cases for single-flight fetches."""

    @pytest.mark.asyncio
    async def test_concurrent_calls_share_one_fetch(self):
        coalescer = FetchCoalescer(debug=True)
        gate = asyncio.Event()
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1
            await gate.wait()
            return {"ok": True}

        tasks = [asyncio.create_task(coalescer.run("k", fetch)) for _ in range(3)]
        await asyncio.sleep(0.01)
        assert coalescer.in_flight_count() == 1
        gate.set()

        assert await asyncio.gather(*tasks) == [{"ok": True}] * 3
        assert calls == 1
        stats = coalescer.get_stats()
        assert stats.leaders == 1
        assert stats.coalesced == 2
        assert stats.in_flight == 0

    @pytest.mark.asyncio
    async def test_different_keys_do_not_share(self):
        coalescer = FetchCoalescer()

        async def fetch():
            return 1

        await asyncio.gather(coalescer.run("a", fetch), coalescer.run("b", fetch))
        assert coalescer.get_stats().leaders == 2

    @pytest.mark.asyncio
    async def test_failure_reaches_every_caller(self):
        coalescer = FetchCoalescer()
        gate = asyncio.Event()

        async def fetch():
            await gate.wait()
            raise ValueError("upstream broke")

        tasks = [asyncio.create_task(coalescer.run("k", fetch)) for _ in range(2)]
        await asyncio.sleep(0.01)
        gate.set()

        results = await asyncio.gather(*tasks, return_exceptions=True)
        assert all(isinstance(r, ValueError) for r in results)
        assert coalescer.in_flight_count() == 0

    @pytest.mark.asyncio
    async def test_key_is_released_after_completion(self):
        coalescer = FetchCoalescer()
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1
            return calls

        assert await coalescer.run("k", fetch) == 1
        assert await coalescer.run("k", fetch) == 2

    @pytest.mark.asyncio
    async def test_follower_cancel_does_not_cancel_leader(self):
        coalescer = FetchCoalescer()
        gate = asyncio.Event()

        async def fetch():
            await gate.wait()
            return "done"

        leader = asyncio.create_task(coalescer.run("k", fetch))
        follower = asyncio.create_task(coalescer.run("k", fetch))
        await asyncio.sleep(0.01)
        follower.cancel()
        gate.set()

        assert await leader == "done"
        with pytest.raises(asyncio.CancelledError):
            await follower


class TestAbortSignal:
    """Test cases for AbortSignal."""

    @pytest.mark.asyncio
    async def test_guard_returns_result(self):
        signal = AbortSignal()
        assert await signal.guard(asyncio.sleep(0, result=5)) == 5

    @pytest.mark.asyncio
    async def test_guard_closes_work_when_already_aborted(self):
        signal = AbortSignal()
        signal.abort()
        work = asyncio.sleep(0)
        with pytest.raises(RequestAbortedError):
            await signal.guard(work)
        assert inspect.getcoroutinestate(work) == inspect.CORO_CLOSED

    @pytest.mark.asyncio
    async def test_abort_wins_the_race(self):
        signal = AbortSignal()
        work = asyncio.ensure_future(asyncio.sleep(10))

        async def abort_soon():
            await asyncio.sleep(0.01)
            signal.abort("stop")

        asyncio.create_task(abort_soon())
        with pytest.raises(RequestAbortedError, match="stop"):
            await signal.guard(work)
        with pytest.raises(asyncio.CancelledError):
            await work

    def test_abort_is_one_shot(self):
        signal = AbortSignal()
        signal.abort("first")
        signal.abort("second")
        assert signal.aborted
        assert signal.reason == "first"
        with pytest.raises(RequestAbortedError):
            signal.raise_if_aborted()
