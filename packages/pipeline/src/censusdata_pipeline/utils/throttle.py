"""
utils/throttle.py — Rate-limited worker pool for outbound fetches.

Two limits hold at the same time:
  - RateLimiter: token bucket refilled at requests_per_second, so successive
    dispatches are at least 1 / requests_per_second apart.
  - FetchQueue: at most burst_limit tasks in flight, served FIFO.

The queue never retries; retry belongs to the submitted work.

Usage:
    from censusdata_pipeline.utils.throttle import FetchQueue, RateLimiter

    queue = FetchQueue(burst_limit=5, limiter=RateLimiter(10.0))
    payload = await queue.submit(lambda: client.get_json(url))
    await queue.close()
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

log = structlog.get_logger(__name__)

T = TypeVar("T")


class RateLimiter:
    """Async token bucket: *rate* tokens per second, at most *capacity* stored."""

    def __init__(
        self,
        rate: float,
        capacity: int = 1,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if rate <= 0:
            raise ValueError(f"rate must be positive, got {rate}")
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._rate = rate
        self._capacity = capacity
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(capacity)
        self._updated: float | None = None
        self._lock = asyncio.Lock()

    @property
    def rate(self) -> float:
        return self._rate

    def _refill(self) -> None:
        now = self._clock()
        if self._updated is not None:
            elapsed = max(0.0, now - self._updated)
            self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
        self._updated = now

    async def acquire(self) -> None:
        """Wait until a token is available, then take it."""
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    return
                wait = (1 - self._tokens) / self._rate
                log.debug("rate_limit_wait", wait_s=round(wait, 3))
                await self._sleep(wait)


class FetchQueue:
    """
    Bounded pool of worker tasks draining a FIFO of fetch work.

    Workers start lazily on the first submit() so the queue can be built
    outside a running event loop.
    """

    def __init__(self, *, burst_limit: int, limiter: RateLimiter) -> None:
        if burst_limit < 1:
            raise ValueError(f"burst_limit must be at least 1, got {burst_limit}")
        self._burst_limit = burst_limit
        self._limiter = limiter
        self._queue: asyncio.Queue[tuple[Callable[[], Awaitable[Any]], asyncio.Future[Any]]] | None = None
        self._workers: list[asyncio.Task[None]] = []
        self._active = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def waiting(self) -> int:
        """Tasks queued but not yet picked up by a worker."""
        return self._queue.qsize() if self._queue is not None else 0

    @property
    def active(self) -> int:
        """Tasks currently executing."""
        return self._active

    @property
    def burst_limit(self) -> int:
        return self._burst_limit

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(self, work: Callable[[], Awaitable[T]]) -> T:
        """
        Enqueue *work* and wait for its result.

        Args:
            work: Zero-argument coroutine function performing one fetch.

        Returns:
            Whatever work() returns.

        Raises:
            Whatever work() raised; the queue itself keeps draining.
        """
        queue = self._ensure_started()
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        await queue.put((work, future))
        return await future

    def _ensure_started(self) -> asyncio.Queue[tuple[Callable[[], Awaitable[Any]], asyncio.Future[Any]]]:
        if self._queue is None:
            self._queue = asyncio.Queue()
            self._workers = [
                asyncio.create_task(self._worker(i), name=f"fetch-worker-{i}")
                for i in range(self._burst_limit)
            ]
            log.debug("fetch_queue_started", workers=self._burst_limit)
        return self._queue

    async def _worker(self, worker_id: int) -> None:
        assert self._queue is not None
        while True:
            work, future = await self._queue.get()
            try:
                await self._limiter.acquire()
                self._active += 1
                try:
                    result = await work()
                except Exception as exc:
                    log.warning(
                        "fetch_task_failed",
                        worker=worker_id,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                    if not future.done():
                        future.set_exception(exc)
                except asyncio.CancelledError:
                    if not future.done():
                        future.cancel()
                    task = asyncio.current_task()
                    if task is not None and task.cancelling():
                        raise
                    log.warning("fetch_task_cancelled", worker=worker_id)
                else:
                    if not future.done():
                        future.set_result(result)
                finally:
                    self._active -= 1
            finally:
                self._queue.task_done()

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def drain(self) -> None:
        """Block until nothing is waiting and nothing is active."""
        if self._queue is not None:
            await self._queue.join()

    async def close(self) -> None:
        """Drain outstanding work, then stop the workers."""
        if self._queue is None:
            return
        await self.drain()
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        log.debug("fetch_queue_closed", workers=len(self._workers))
        self._workers = []
        self._queue = None
