"""Tests for bounded-concurrency execution and the sync bridge."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
import time

import pytest

from notevault.executor import AsyncExecutor, ErrorCollector, TaskResult, ThreadPoolExecutor, block_on


def _slow_square(i: int) -> int:
    # Later items finish first
    time.sleep((5 - i) * 0.01)
    return i * i


def _fail_on_two(i: int) -> int:
    if i == 2:
        raise ValueError("two")
    return i


class TestAsyncExecutorMap:
    """map() results stay in submission order regardless of completion order."""

    @pytest.mark.asyncio
    async def test_order_preserved(self):
        results = await AsyncExecutor(4).map(_slow_square, range(5))

        assert [r.value for r in results] == [0, 1, 4, 9, 16]
        assert all(r.ok for r in results)

    @pytest.mark.asyncio
    async def test_async_source(self):
        async def source():
            for i in range(3):
                await asyncio.sleep(0)
                yield i

        results = await AsyncExecutor().map(_slow_square, source())

        assert [r.value for r in results] == [0, 1, 4]

    @pytest.mark.asyncio
    async def test_coroutine_functions_awaited(self):
        async def double(i: int) -> int:
            await asyncio.sleep(0)
            return i * 2

        results = await AsyncExecutor().map(double, [1, 2, 3])

        assert [r.value for r in results] == [2, 4, 6]

    @pytest.mark.asyncio
    async def test_errors_do_not_cancel_siblings(self):
        results = await AsyncExecutor().map(_fail_on_two, range(4))

        assert [r.value for r in results] == [0, 1, None, 3]
        assert isinstance(results[2].error, ValueError)
        assert not results[2].ok

    @pytest.mark.asyncio
    async def test_callback_receives_all_results(self):
        received: list[list[TaskResult]] = []

        results = await AsyncExecutor().map(_slow_square, [1, 2], callback=received.append)

        assert received == [results]

    @pytest.mark.asyncio
    async def test_bounded_concurrency(self):
        lock = threading.Lock()
        state = {"running": 0, "peak": 0}

        def work(_):
            with lock:
                state["running"] += 1
                state["peak"] = max(state["peak"], state["running"])
            time.sleep(0.02)
            with lock:
                state["running"] -= 1

        await AsyncExecutor(2).map(work, range(8))

        assert state["peak"] <= 2


class TestAsyncExecutorSubmit:
    @pytest.mark.asyncio
    async def test_callback_called_once(self):
        executor = AsyncExecutor()
        calls: list[tuple] = []

        executor.submit(_slow_square, 3, callback=lambda value, error: calls.append((value, error)))
        executor.submit(_fail_on_two, 2, callback=lambda value, error: calls.append((value, type(error))))

        assert await executor.join_async(1.0)
        assert sorted(calls, key=str) == sorted([(9, None), (None, ValueError)], key=str)

    @pytest.mark.asyncio
    async def test_join_with_nothing_submitted(self):
        assert await AsyncExecutor().join_async(0.01)

    @pytest.mark.asyncio
    async def test_join_timeout(self):
        executor = AsyncExecutor()
        task = executor.submit(asyncio.sleep, 10)

        assert await executor.join_async(0.05) is False

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


class TestThreadPoolExecutor:
    def test_join_and_callbacks(self):
        results: list[tuple] = []
        lock = threading.Lock()

        def record(value, error):
            with lock:
                results.append((value, error))

        with ThreadPoolExecutor(4) as executor:
            for i in range(5):
                executor.submit(lambda x: x + 1, i, callback=record)
            assert executor.join(2.0)

        assert sorted(v for v, _ in results) == [1, 2, 3, 4, 5]

    def test_error_passed_to_callback(self):
        errors: list[BaseException | None] = []

        with ThreadPoolExecutor() as executor:
            executor.submit(_fail_on_two, 2, callback=lambda value, error: errors.append(error))
            executor.join(2.0)

        assert len(errors) == 1
        assert isinstance(errors[0], ValueError)

    def test_join_timeout(self):
        with ThreadPoolExecutor(1) as executor:
            executor.submit(time.sleep, 0.3)
            assert executor.join(0.01) is False

    def test_map_order(self):
        with ThreadPoolExecutor(4) as executor:
            results = executor.map(_slow_square, range(5))

        assert [r.value for r in results] == [0, 1, 4, 9, 16]


class TestErrorCollector:
    def test_report_single_aggregate_warning(self, caplog):
        collector = ErrorCollector()
        collector.record(ValueError("boom"), "/v/a.md")
        collector.record(ValueError("second"), "/v/b.md")
        logger = logging.getLogger("notevault.tests")

        with caplog.at_level(logging.WARNING, logger="notevault"):
            collector.report(logger, "search")

        assert len(caplog.records) == 1
        assert "2 error(s) occurred during search. First error from note at '/v/a.md':\nboom" in caplog.text
        assert collector
        assert collector.count == 2

    def test_no_errors_no_report(self, caplog):
        collector = ErrorCollector()

        collector.report(logging.getLogger("notevault.tests"))

        assert not collector
        assert caplog.records == []


class TestBlockOn:
    def test_returns_value(self):
        async def answer():
            return 42

        assert block_on(answer) == 42

    def test_timeout_returns_none(self):
        cancelled = []

        async def stall():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise

        start = time.monotonic()
        assert block_on(stall, timeout=0.05) is None
        assert time.monotonic() - start < 2
        assert cancelled == [True]

    def test_exceptions_propagate(self):
        async def boom():
            raise KeyError("x")

        with pytest.raises(KeyError):
            block_on(boom)

    @pytest.mark.asyncio
    async def test_refuses_inside_running_loop(self):
        with pytest.raises(RuntimeError, match="running event loop"):
            block_on(lambda: asyncio.sleep(0))
