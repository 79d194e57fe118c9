"""
RequestQueue - serializes all outbound fetches into a single-file pipeline.

States:
- IDLE: nothing queued, no drain task
- DRAINING: one drain task processes requests FIFO, one at a time

Every dispatch except the very first waits until throttle_interval seconds
have passed since the previous dispatch started. A slow resolve (rate-limit
backoff) holds up the whole queue; at most one upstream call is in flight.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from loguru import logger

from cryptodash.services.resolver import FallbackResolver, RequestResult


class QueueState(str, Enum):
    """Request queue states."""

    IDLE = "IDLE"
    DRAINING = "DRAINING"


@dataclass
class QueuedRequest:
    """A pending fetch; its future is settled exactly once."""

    url: str
    future: "asyncio.Future[RequestResult]"


class RequestQueue:
    """
    FIFO fetch queue with a minimum inter-dispatch delay.

    Usage:
        queue = RequestQueue(resolver, throttle_interval=4.0)

        future = queue.enqueue("/api/coingecko/global")
        result = await future
    """

    def __init__(
        self,
        resolver: FallbackResolver,
        throttle_interval: float = 4.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        debug: bool = False,
    ):
        self._resolver = resolver
        self._throttle_interval = throttle_interval
        self._clock = clock
        self._sleep = sleep
        self._debug = debug

        self._pending: deque[QueuedRequest] = deque()
        self._current: QueuedRequest | None = None
        self._state = QueueState.IDLE
        self._drain_task: asyncio.Task[None] | None = None
        self._last_dispatch_at: float | None = None
        self._stats = QueueStats()

    @property
    def state(self) -> QueueState:
        return self._state

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def enqueue(self, url: str) -> "asyncio.Future[RequestResult]":
        """
        Queue a fetch for url.

        Returns a future resolved with the RequestResult, or failed with the
        resolver's exception. Must be called from a running event loop.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[RequestResult] = loop.create_future()
        self._pending.append(QueuedRequest(url=url, future=future))
        self._stats.enqueued += 1
        self._log(f"ENQUEUE: {url[:80]} (pending {len(self._pending)})")

        if self._state == QueueState.IDLE:
            self._state = QueueState.DRAINING
            self._drain_task = loop.create_task(self._drain())

        return future

    async def _drain(self) -> None:
        try:
            while self._pending:
                item = self._pending.popleft()
                self._current = item

                await self._throttle()
                self._last_dispatch_at = self._clock()
                self._stats.dispatched += 1
                self._log(f"DISPATCH: {item.url[:80]}")

                try:
                    result = await self._resolver.resolve(item.url)
                except Exception as e:
                    self._stats.failed += 1
                    self._settle(item, error=e)
                else:
                    self._stats.succeeded += 1
                    self._settle(item, result=result)

                self._current = None
        finally:
            self._state = QueueState.IDLE
            self._drain_task = None

    async def _throttle(self) -> None:
        if self._last_dispatch_at is None:
            return

        elapsed = self._clock() - self._last_dispatch_at
        wait = self._throttle_interval - elapsed
        if wait > 0:
            self._log(f"THROTTLE: waiting {wait:.2f}s")
            await self._sleep(wait)

    def _settle(
        self,
        item: QueuedRequest,
        result: RequestResult | None = None,
        error: Exception | None = None,
    ) -> None:
        # The caller may have stopped waiting (cancelled its await)
        if item.future.done():
            return
        if error is not None:
            item.future.set_exception(error)
        else:
            item.future.set_result(result)

    async def join(self) -> None:
        """Wait until the queue has drained and returned to IDLE."""
        while self._drain_task is not None:
            await asyncio.shield(self._drain_task)

    async def close(self) -> None:
        """Stop draining and cancel every unsettled request."""
        task = self._drain_task
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        cancelled = 0
        if self._current is not None and not self._current.future.done():
            self._current.future.cancel()
            cancelled += 1
        self._current = None

        while self._pending:
            item = self._pending.popleft()
            if not item.future.done():
                item.future.cancel()
                cancelled += 1

        if cancelled:
            logger.debug(f"RequestQueue closed, {cancelled} requests cancelled")

    def get_stats(self) -> "QueueStats":
        """Get queue statistics."""
        self._stats.pending = len(self._pending)
        self._stats.state = self._state.value
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[RequestQueue] {message}")


class QueueStats:
    """Statistics for the request queue."""

    def __init__(self):
        self.enqueued: int = 0
        self.dispatched: int = 0
        self.succeeded: int = 0
        self.failed: int = 0
        self.pending: int = 0
        self.state: str = QueueState.IDLE.value

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "enqueued": self.enqueued,
            "dispatched": self.dispatched,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "pending": self.pending,
            "state": self.state,
        }
