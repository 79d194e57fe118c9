"""
FallbackResolver - best-effort answer for one URL.

Policy, in order:
1. Fresh cache hit (age < fresh_ttl): no network call
2. Primary attempt through the transport, cached on success
3. On rate limit: serve stale cache (age < stale_ttl) or back off and retry,
   up to max_attempts total, then propagate the RateLimitError
4. On any other failure, and only when not running behind the reverse proxy:
   rewrite the URL to the upstream host and try each relay in order
5. Otherwise raise FetchExhaustedError; no data is ever fabricated
"""

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable
from urllib.parse import quote

from loguru import logger

from cryptodash.services.cache import CacheEntry, ResponseCache
from cryptodash.services.errors import (
    FetchExhaustedError,
    HttpStatusError,
    NetworkError,
    RateLimitError,
    ServiceError,
)
from cryptodash.services.transport import Transport

if TYPE_CHECKING:
    from cryptodash.settings import Settings


@dataclass
class RequestResult:
    """Result from a resolved request."""

    data: Any
    source: str  # 'cache' | 'network' | 'stale' | 'relay'
    is_stale: bool = False
    url: str | None = None


@dataclass
class ResolverConfig:
    """Tunables for the fallback chain. Durations are in seconds."""

    fresh_ttl: float = 180.0
    stale_ttl: float = 600.0
    request_timeout: float = 10.0
    relay_timeout: float = 12.0
    max_attempts: int = 2
    backoff_schedule: tuple[float, ...] = (8.0, 16.0)
    behind_proxy: bool = True
    proxy_prefix: str = "/api/coingecko"
    upstream_base: str = "https://api.coingecko.com/api/v3"
    relay_endpoints: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.stale_ttl < self.fresh_ttl:
            raise ValueError("stale_ttl must not be shorter than fresh_ttl")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ResolverConfig":
        return cls(
            fresh_ttl=settings.fresh_ttl,
            stale_ttl=settings.stale_ttl,
            request_timeout=settings.request_timeout,
            relay_timeout=settings.relay_timeout,
            max_attempts=settings.max_attempts,
            backoff_schedule=tuple(settings.backoff_schedule),
            behind_proxy=settings.behind_proxy,
            proxy_prefix=settings.api_base,
            upstream_base=settings.upstream_base,
            relay_endpoints=list(settings.relay_endpoints),
        )

    def backoff_for(self, attempt: int) -> float:
        """Delay before retry number attempt + 1; the last value repeats."""
        if not self.backoff_schedule:
            return 0.0
        index = min(attempt, len(self.backoff_schedule) - 1)
        return self.backoff_schedule[index]


def rewrite_to_upstream(url: str, proxy_prefix: str, upstream_base: str) -> str:
    """Map a reverse-proxy path onto the upstream host; other URLs pass through."""
    if url.startswith(proxy_prefix):
        return upstream_base.rstrip("/") + url[len(proxy_prefix) :]
    return url


class FallbackResolver:
    """
    Resolves a URL through cache, transport, stale cache and relays.

    Usage:
        resolver = FallbackResolver(ResponseCache(), Transport(base_url=origin))
        result = await resolver.resolve("/api/coingecko/global")
        print(result.source, result.data)
    """

    def __init__(
        self,
        cache: ResponseCache,
        transport: Transport,
        config: ResolverConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        debug: bool = False,
    ):
        self.cache = cache
        self.transport = transport
        self.config = config or ResolverConfig()
        self._sleep = sleep
        self._debug = debug
        self._stats = ResolverStats()

    async def resolve(self, url: str) -> RequestResult:
        """
        Produce data for url or raise.

        Raises:
            RateLimitError: rate limited on every attempt with no usable stale entry
            FetchExhaustedError: every other path failed
        """
        cached = self.cache.get(url)
        if cached is not None and self.cache.age(cached) < self.config.fresh_ttl:
            self._stats.fresh_hits += 1
            return RequestResult(data=cached.data, source="cache", url=url)

        try:
            result = await self._fetch_primary(url, cached)
        except (HttpStatusError, NetworkError) as e:
            self._log(f"Primary fetch failed for {url}: {e}")
            try:
                result = await self._fetch_via_relays(url, e)
            except ServiceError:
                self._stats.failures += 1
                raise
        except ServiceError:
            self._stats.failures += 1
            raise

        if result.source == "stale":
            self._stats.stale_serves += 1
        elif result.source == "relay":
            self._stats.relay_fetches += 1
        else:
            self._stats.network_fetches += 1
        return result

    async def _fetch_primary(
        self, url: str, cached: CacheEntry | None
    ) -> RequestResult:
        cfg = self.config

        for attempt in range(cfg.max_attempts):
            try:
                data = await self.transport.fetch_once(url, cfg.request_timeout)
            except RateLimitError:
                self._stats.rate_limited += 1
                if cached is not None and self.cache.age(cached) < cfg.stale_ttl:
                    logger.warning(f"Rate limited on {url}, using stale cache")
                    return RequestResult(
                        data=cached.data, source="stale", is_stale=True, url=url
                    )

                if attempt < cfg.max_attempts - 1:
                    delay = cfg.backoff_for(attempt)
                    logger.warning(
                        f"Rate limited, retry {attempt + 1}/{cfg.max_attempts} "
                        f"in {delay:g}s..."
                    )
                    await self._sleep(delay)
                    continue
                raise

            self.cache.put(url, data)
            return RequestResult(data=data, source="network", url=url)

        raise FetchExhaustedError(url)

    async def _fetch_via_relays(self, url: str, cause: ServiceError) -> RequestResult:
        cfg = self.config

        # Relays exist for static hosting without the reverse proxy
        if cfg.behind_proxy:
            raise FetchExhaustedError(url, cause) from cause

        upstream_url = rewrite_to_upstream(url, cfg.proxy_prefix, cfg.upstream_base)
        last_error: ServiceError = cause

        for relay in cfg.relay_endpoints:
            relay_url = relay + quote(upstream_url, safe="")
            try:
                data = await self.transport.fetch_once(relay_url, cfg.relay_timeout)
            except ServiceError as e:
                self._log(f"Relay {relay} failed: {e}")
                last_error = e
                continue

            logger.info(f"Fetched {url} via relay {relay}")
            self.cache.put(url, data)
            return RequestResult(data=data, source="relay", url=url)

        raise FetchExhaustedError(url, last_error) from last_error

    def get_stats(self) -> "ResolverStats":
        """Get resolver statistics."""
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[FallbackResolver] {message}")


class ResolverStats:
    """
    How resolved requests were answered.

    fresh_hits counts cache entries young enough to serve without a network
    call; stale_serves counts expired entries served during a rate limit.
    """

    def __init__(self):
        self.fresh_hits: int = 0
        self.stale_serves: int = 0
        self.network_fetches: int = 0
        self.relay_fetches: int = 0
        self.rate_limited: int = 0
        self.failures: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "fresh_hits": self.fresh_hits,
            "stale_serves": self.stale_serves,
            "network_fetches": self.network_fetches,
            "relay_fetches": self.relay_fetches,
            "rate_limited": self.rate_limited,
            "failures": self.failures,
        }
