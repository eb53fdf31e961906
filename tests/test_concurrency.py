"""Tests for bounded_map and the cancellation token."""

import asyncio

import pytest

from chuk_mcp_terrain.core.cancellation import CancellationToken, TerrainCancelledError
from chuk_mcp_terrain.core.concurrency import bounded_map


class TestBoundedMap:
    async def test_preserves_order(self):
        async def mapper(i):
            await asyncio.sleep(0.001 * (5 - i))
            return i * 10

        assert await bounded_map([0, 1, 2, 3, 4], mapper, 3) == [0, 10, 20, 30, 40]

    async def test_empty(self):
        async def mapper(i):
            return i

        assert await bounded_map([], mapper, 4) == []

    async def test_never_exceeds_concurrency(self):
        in_flight = 0
        peak = 0

        async def mapper(i):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.001)
            in_flight -= 1
            return i

        await bounded_map(list(range(20)), mapper, 4)
        assert peak == 4

    async def test_failure_yields_none(self):
        async def mapper(i):
            if i == 2:
                raise RuntimeError("boom")
            return i

        assert await bounded_map([0, 1, 2, 3], mapper, 2) == [0, 1, None, 3]

    async def test_cancellation_propagates(self):
        cancel = CancellationToken()
        calls = []

        async def mapper(i):
            calls.append(i)
            if i == 1:
                cancel.cancel()
                raise TerrainCancelledError()
            return i

        with pytest.raises(TerrainCancelledError):
            await bounded_map(list(range(10)), mapper, 1, cancel)
        assert calls == [0, 1]

    async def test_pre_cancelled_runs_nothing(self):
        cancel = CancellationToken()
        cancel.cancel()

        async def mapper(i):
            raise AssertionError("should not run")

        with pytest.raises(TerrainCancelledError):
            await bounded_map([1, 2], mapper, 2, cancel)


class TestCancellationToken:
    def test_initial_state(self):
        token = CancellationToken()
        assert not token.cancelled
        token.raise_if_cancelled()

    def test_raise_after_cancel(self):
        token = CancellationToken()
        token.cancel()
        assert token.cancelled
        with pytest.raises(TerrainCancelledError):
            token.raise_if_cancelled()

    async def test_sleep_wakes_on_cancel(self):
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.01, token.cancel)
        with pytest.raises(TerrainCancelledError):
            await asyncio.wait_for(token.sleep(30), timeout=5)

    async def test_sleep_completes(self):
        await CancellationToken().sleep(0.001)

    async def test_guard_returns_result(self):
        async def work():
            return 42

        assert await CancellationToken().guard(work()) == 42

    async def test_guard_abandons_in_flight_work(self):
        token = CancellationToken()
        started = asyncio.Event()

        async def slow():
            started.set()
            await asyncio.sleep(30)

        async def cancel_soon():
            await started.wait()
            token.cancel()

        asyncio.create_task(cancel_soon())
        with pytest.raises(TerrainCancelledError):
            await asyncio.wait_for(token.guard(slow()), timeout=5)

    async def test_guard_propagates_errors(self):
        async def broken():
            raise ValueError("bad")

        with pytest.raises(ValueError, match="bad"):
            await CancellationToken().guard(broken())
