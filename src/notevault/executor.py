"""Bounded-concurrency task execution.

Two executors with the same bookkeeping:

- ``AsyncExecutor`` runs on the asyncio event loop. Coroutine functions are
  awaited directly; plain functions (file reads, parses, writes) run in
  worker threads. A semaphore bounds how many run at once.
- ``ThreadPoolExecutor`` wraps ``concurrent.futures`` for callers that are
  not async, with a blocking ``join(timeout)``.

A failing task never cancels its siblings. Batch callers count failures with
an ``ErrorCollector`` and report them once at the end.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import inspect
import logging
import threading
from collections.abc import AsyncIterable, Awaitable, Callable, Iterable
from typing import Any, NamedTuple, TypeVar

from .config import DEFAULT_EXECUTOR_WORKERS

log = logging.getLogger(__name__)

T = TypeVar("T")

ResultCallback = Callable[[Any, BaseException | None], None]


class TaskResult(NamedTuple):
    """Outcome of one task: exactly one of ``value`` / ``error`` is meaningful."""

    value: Any
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ErrorCollector:
    """Count failures in a batch and remember the first one.

    Thread-safe, so thread-pool tasks can record into it directly.
    """

    def __init__(self) -> None:
        self.count = 0
        self.first_error: BaseException | None = None
        self.first_context: Any = None
        self._lock = threading.Lock()

    def record(self, error: BaseException, context: Any = None) -> None:
        with self._lock:
            self.count += 1
            if self.first_error is None:
                self.first_error = error
                self.first_context = context

    def __bool__(self) -> bool:
        return self.count > 0

    def report(self, logger: logging.Logger, what: str = "search") -> None:
        """Emit one aggregate warning if anything failed."""
        if self.first_error is None:
            return
        logger.warning(
            "%d error(s) occurred during %s. First error from note at '%s':\n%s",
            self.count,
            what,
            self.first_context,
            self.first_error,
        )


# ─────────────────────────────────────────────────────────────────────────────
# asyncio executor
# ─────────────────────────────────────────────────────────────────────────────


class AsyncExecutor:
    """Run tasks on the event loop with at most ``max_workers`` in flight.

    Must be used from within a running event loop.
    """

    def __init__(self, max_workers: int | None = None) -> None:
        self.max_workers = max_workers or DEFAULT_EXECUTOR_WORKERS
        self._semaphore = asyncio.Semaphore(self.max_workers)
        self._tasks: set[asyncio.Task[TaskResult]] = set()

    async def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        async with self._semaphore:
            if inspect.iscoroutinefunction(fn):
                return await fn(*args)
            return await asyncio.to_thread(fn, *args)

    async def _run_one(self, fn: Callable[..., Any], args: tuple, callback: ResultCallback | None) -> TaskResult:
        try:
            result = TaskResult(await self._call(fn, *args))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            result = TaskResult(None, e)
        if callback is not None:
            callback(result.value, result.error)
        return result

    def submit(
        self,
        fn: Callable[..., Any],
        *args: Any,
        callback: ResultCallback | None = None,
    ) -> asyncio.Task[TaskResult]:
        """Schedule ``fn(*args)``.

        ``callback(value, error)`` is invoked exactly once when the task
        finishes, unless the task is cancelled first.
        """
        task = asyncio.create_task(self._run_one(fn, args, callback))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def map(
        self,
        fn: Callable[[Any], Any],
        source: Iterable[Any] | AsyncIterable[Any],
        callback: Callable[[list[TaskResult]], None] | None = None,
    ) -> list[TaskResult]:
        """Apply ``fn`` to every item of ``source``.

        ``source`` may be lazy (a generator or async generator); items are
        submitted as soon as they are produced.

        Returns:
            One TaskResult per item, in submission order regardless of the
            order in which tasks completed.
        """
        tasks: list[asyncio.Task[TaskResult]] = []
        try:
            if isinstance(source, AsyncIterable):
                async for item in source:
                    tasks.append(self.submit(fn, item))
            else:
                for item in source:
                    tasks.append(self.submit(fn, item))
            results = list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        if callback is not None:
            callback(results)
        return results

    async def join_async(self, timeout: float | None = None) -> bool:
        """Wait for all outstanding submissions.

        Returns:
            True if everything finished, False if the timeout elapsed first.
        """
        pending = set(self._tasks)
        if not pending:
            return True
        _, not_done = await asyncio.wait(pending, timeout=timeout)
        return not not_done


# ─────────────────────────────────────────────────────────────────────────────
# Thread pool executor
# ─────────────────────────────────────────────────────────────────────────────


class ThreadPoolExecutor:
    """Blocking counterpart of AsyncExecutor over a shared thread pool."""

    def __init__(self, max_workers: int | None = None) -> None:
        self.max_workers = max_workers or DEFAULT_EXECUTOR_WORKERS
        self._pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix="notevault",
        )
        self._futures: set[concurrent.futures.Future[Any]] = set()
        self._lock = threading.Lock()

    def __enter__(self) -> ThreadPoolExecutor:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown(wait=True)

    def submit(
        self,
        fn: Callable[..., Any],
        *args: Any,
        callback: ResultCallback | None = None,
    ) -> concurrent.futures.Future[Any]:
        future = self._pool.submit(fn, *args)
        with self._lock:
            self._futures.add(future)

        def on_done(f: concurrent.futures.Future[Any]) -> None:
            with self._lock:
                self._futures.discard(f)
            if callback is None:
                return
            if f.cancelled():
                callback(None, concurrent.futures.CancelledError())
            elif f.exception() is not None:
                callback(None, f.exception())
            else:
                callback(f.result(), None)

        future.add_done_callback(on_done)
        return future

    def map(
        self,
        fn: Callable[[Any], Any],
        source: Iterable[Any],
        callback: Callable[[list[TaskResult]], None] | None = None,
    ) -> list[TaskResult]:
        """Like ``AsyncExecutor.map``, blocking until every item is done."""
        futures = [self.submit(fn, item) for item in source]
        results: list[TaskResult] = []
        for future in futures:
            try:
                results.append(TaskResult(future.result()))
            except Exception as e:
                results.append(TaskResult(None, e))
        if callback is not None:
            callback(results)
        return results

    def join(self, timeout: float | None = None) -> bool:
        """Block until all outstanding submissions finish or ``timeout`` elapses."""
        with self._lock:
            pending = set(self._futures)
        if not pending:
            return True
        _, not_done = concurrent.futures.wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait, cancel_futures=not wait)


# ─────────────────────────────────────────────────────────────────────────────
# Sync bridge
# ─────────────────────────────────────────────────────────────────────────────


def block_on(fn: Callable[[], Awaitable[T]], timeout: float | None = None) -> T | None:
    """Run an async operation to completion from synchronous code.

    On timeout the operation is cancelled (which terminates any search
    processes it started) and None is returned. Partial results are discarded.

    Raises:
        RuntimeError: If called from inside a running event loop.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        pass
    else:
        raise RuntimeError("block_on() cannot be used inside a running event loop; await the async API instead")

    async def runner() -> T | None:
        try:
            return await asyncio.wait_for(fn(), timeout)
        except asyncio.TimeoutError:
            log.warning("Operation timed out after %.3fs", timeout)
            return None

    return asyncio.run(runner())
