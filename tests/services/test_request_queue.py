"""Tests for RequestQueue ordering, throttling and settlement."""

import asyncio

import pytest

from cryptodash.services.cache import ResponseCache
from cryptodash.services.errors import FetchExhaustedError, NetworkError, RateLimitError
from cryptodash.services.queue import QueueState, RequestQueue
from cryptodash.services.resolver import FallbackResolver, ResolverConfig


def make_queue(clock, transport, throttle_interval: float = 4.0) -> RequestQueue:
    resolver = FallbackResolver(
        ResponseCache(clock=clock),
        transport,
        config=ResolverConfig(),
        sleep=clock.sleep,
    )
    return RequestQueue(
        resolver,
        throttle_interval=throttle_interval,
        clock=clock,
        sleep=clock.sleep,
    )


class TestQueueOrdering:
    """FIFO processing and dispatch spacing."""

    @pytest.mark.asyncio
    async def test_requests_served_in_fifo_order(self, clock, scripted_transport) -> None:
        transport = scripted_transport([{"ok": True}], clock=clock)
        queue = make_queue(clock, transport)
        urls = [f"/api/coingecko/coins/c{i}" for i in range(5)]

        futures = [queue.enqueue(url) for url in urls]
        results = await asyncio.gather(*futures)

        assert transport.urls == urls
        assert [r.url for r in results] == urls

    @pytest.mark.asyncio
    async def test_consecutive_dispatches_respect_throttle(
        self, clock, scripted_transport
    ) -> None:
        transport = scripted_transport([{"ok": True}], clock=clock)
        queue = make_queue(clock, transport)

        await asyncio.gather(*(queue.enqueue(f"/u/{i}") for i in range(4)))

        times = [at for _, at in transport.calls]
        gaps = [b - a for a, b in zip(times, times[1:])]
        assert all(gap >= 4.0 for gap in gaps)
        assert clock.sleeps == [4.0, 4.0, 4.0]

    @pytest.mark.asyncio
    async def test_first_dispatch_is_not_delayed(self, clock, scripted_transport) -> None:
        transport = scripted_transport([{"ok": True}], clock=clock)
        queue = make_queue(clock, transport)

        await queue.enqueue("/u/first")

        assert clock.sleeps == []
        assert transport.calls == [("/u/first", 1000.0)]

    @pytest.mark.asyncio
    async def test_throttle_counts_time_since_last_dispatch(
        self, clock, scripted_transport
    ) -> None:
        transport = scripted_transport([{"ok": True}], clock=clock)
        queue = make_queue(clock, transport)
        await queue.enqueue("/u/a")

        clock.advance(1.5)
        await queue.enqueue("/u/b")
        clock.advance(10)
        await queue.enqueue("/u/c")

        assert clock.sleeps == [2.5]

    @pytest.mark.asyncio
    async def test_resolver_backoff_blocks_the_queue(
        self, clock, scripted_transport
    ) -> None:
        transport = scripted_transport(
            [RateLimitError(), RateLimitError(), {"ok": True}], clock=clock
        )
        queue = make_queue(clock, transport)

        first = queue.enqueue("/u/limited")
        second = queue.enqueue("/u/next")
        results = await asyncio.gather(first, second, return_exceptions=True)

        assert isinstance(results[0], RateLimitError)
        assert results[1].data == {"ok": True}
        assert transport.calls == [
            ("/u/limited", 1000.0),
            ("/u/limited", 1008.0),
            ("/u/next", 1008.0),
        ]


class TestQueueSettlement:
    """Each caller future settles exactly once."""

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_the_queue(
        self, clock, scripted_transport
    ) -> None:
        transport = scripted_transport([NetworkError("refused"), {"ok": True}])
        queue = make_queue(clock, transport)

        failing = queue.enqueue("/u/bad")
        passing = queue.enqueue("/u/good")

        with pytest.raises(FetchExhaustedError):
            await failing
        assert (await passing).data == {"ok": True}
        assert queue.get_stats().failed == 1
        assert queue.get_stats().succeeded == 1

    @pytest.mark.asyncio
    async def test_abandoned_future_is_skipped(self, clock, scripted_transport) -> None:
        transport = scripted_transport([{"ok": True}])
        queue = make_queue(clock, transport)

        abandoned = queue.enqueue("/u/a")
        kept = queue.enqueue("/u/b")
        abandoned.cancel()

        assert (await kept).data == {"ok": True}
        assert abandoned.cancelled()
        assert transport.urls == ["/u/a", "/u/b"]

    @pytest.mark.asyncio
    async def test_only_one_transport_call_in_flight(
        self, clock, scripted_transport
    ) -> None:
        transport = scripted_transport([{"ok": True}], delay=0.01)
        queue = make_queue(clock, transport)

        await asyncio.gather(*(queue.enqueue(f"/u/{i}") for i in range(6)))

        assert transport.max_active == 1
        assert len(transport.calls) == 6


class TestQueueState:
    """IDLE / DRAINING transitions and shutdown."""

    @pytest.mark.asyncio
    async def test_state_transitions(self, clock, scripted_transport) -> None:
        transport = scripted_transport([{"ok": True}])
        queue = make_queue(clock, transport)
        assert queue.state == QueueState.IDLE

        future = queue.enqueue("/u/a")
        assert queue.state == QueueState.DRAINING

        await future
        await queue.join()
        assert queue.state == QueueState.IDLE
        assert queue.pending_count == 0

    @pytest.mark.asyncio
    async def test_enqueue_while_draining_reuses_drain_task(
        self, clock, scripted_transport
    ) -> None:
        transport = scripted_transport([{"ok": True}], delay=0.01)
        queue = make_queue(clock, transport)

        queue.enqueue("/u/a")
        task = queue._drain_task
        queue.enqueue("/u/b")

        assert queue._drain_task is task
        assert queue.pending_count == 2
        await queue.join()
        assert queue.get_stats().dispatched == 2

    @pytest.mark.asyncio
    async def test_close_cancels_unsettled_requests(
        self, clock, scripted_transport
    ) -> None:
        transport = scripted_transport([{"ok": True}], delay=1.0)
        queue = make_queue(clock, transport)

        in_flight = queue.enqueue("/u/a")
        waiting = queue.enqueue("/u/b")
        await asyncio.sleep(0.01)

        await queue.close()

        assert in_flight.cancelled()
        assert waiting.cancelled()
        assert queue.state == QueueState.IDLE
