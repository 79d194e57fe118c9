"""
MarketDataClient - public entry point of the fetch layer.

Wires together:
- ResponseCache for fresh/stale response reuse
- Transport for bounded-time HTTP GETs
- FallbackResolver for retry, stale-serve and relay fallbacks
- RequestQueue for strict single-file, throttled dispatch
"""

from typing import Any

from loguru import logger

from cryptodash.services.cache import ResponseCache
from cryptodash.services.errors import ServiceError
from cryptodash.services.queue import RequestQueue
from cryptodash.services.resolver import (
    FallbackResolver,
    RequestResult,
    ResolverConfig,
)
from cryptodash.services.transport import Transport
from cryptodash.settings import Settings, global_settings


class MarketDataClient:
    """
    Queue-backed JSON fetcher for the dashboard.

    Usage:
        async with MarketDataClient() as client:
            data = await client.fetch_json("/api/coingecko/global")
            if data is None:
                ...  # show degraded/demo state

        # Isolated instance with injected parts
        client = MarketDataClient(cache=cache, transport=transport, queue=queue)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        cache: ResponseCache | None = None,
        transport: Transport | None = None,
        resolver: FallbackResolver | None = None,
        queue: RequestQueue | None = None,
    ):
        self.settings = settings if settings is not None else global_settings
        debug = self.settings.debug

        # An injected resolver brings its own cache and transport
        if resolver is not None:
            cache = cache if cache is not None else resolver.cache
            transport = transport if transport is not None else resolver.transport
            if cache is not resolver.cache or transport is not resolver.transport:
                raise ValueError(
                    "Injected cache/transport must be the ones the resolver uses"
                )

        # Initialize components
        self.cache = (
            cache
            if cache is not None
            else ResponseCache(max_size=self.settings.cache_max_size, debug=debug)
        )
        self.transport = (
            transport
            if transport is not None
            else Transport(
                base_url=self.settings.proxy_origin,
                default_timeout=self.settings.request_timeout,
            )
        )
        self.resolver = (
            resolver
            if resolver is not None
            else FallbackResolver(
                self.cache,
                self.transport,
                config=ResolverConfig.from_settings(self.settings),
                debug=debug,
            )
        )
        self.queue = (
            queue
            if queue is not None
            else RequestQueue(
                self.resolver,
                throttle_interval=self.settings.throttle_interval,
                debug=debug,
            )
        )

    async def fetch_result(self, url: str) -> RequestResult:
        """
        Queue a fetch and return the full result.

        Raises:
            RateLimitError: rate limited with no usable stale data
            FetchExhaustedError: every fallback path failed
        """
        return await self.queue.enqueue(url)

    async def fetch_json(self, url: str) -> Any | None:
        """
        Queue a fetch and return the parsed JSON payload.

        Never raises: when every fallback path fails the result is None and
        the caller is expected to present a degraded state.
        """
        try:
            result = await self.fetch_result(url)
        except ServiceError as e:
            logger.warning(f"Fetch queue error for {url}: {e}")
            return None
        except Exception:
            logger.exception(f"Unexpected error fetching {url}")
            return None

        return result.data

    async def close(self) -> None:
        """Stop the queue and close the HTTP transport."""
        await self.queue.close()
        await self.transport.close()
        logger.debug("MarketDataClient closed")

    async def __aenter__(self) -> "MarketDataClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    # Health and status methods

    def get_health_status(self) -> dict[str, Any]:
        """Get health status of the fetch layer."""
        return {
            "cache": self.cache.get_stats().to_dict(),
            "resolver": self.resolver.get_stats().to_dict(),
            "queue": self.queue.get_stats().to_dict(),
            "behind_proxy": self.resolver.config.behind_proxy,
        }

    def clear_cache(self) -> None:
        self.cache.clear()
