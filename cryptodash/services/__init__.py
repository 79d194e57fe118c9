"""
Fetch layer infrastructure - resilient access to the rate-limited price API.

Provides:
- ResponseCache: URL-keyed cache exposing entry age
- Transport: bounded-time HTTP GET with outcome classification
- FallbackResolver: cache, retry/backoff, stale-serve and relay fallbacks
- RequestQueue: strictly serial, throttled dispatch
- MarketDataClient: public fetch_json entry point
"""

from cryptodash.services.errors import (
    ServiceError,
    RateLimitError,
    HttpStatusError,
    NetworkError,
    FetchExhaustedError,
)
from cryptodash.services.cache import ResponseCache, CacheEntry, CacheStats
from cryptodash.services.classifier import classify_payload, is_usable_payload
from cryptodash.services.transport import Transport
from cryptodash.services.resolver import (
    FallbackResolver,
    RequestResult,
    ResolverConfig,
    ResolverStats,
    rewrite_to_upstream,
)
from cryptodash.services.queue import QueueState, QueuedRequest, RequestQueue
from cryptodash.services.client import MarketDataClient

__all__ = [
    # Errors
    "ServiceError",
    "RateLimitError",
    "HttpStatusError",
    "NetworkError",
    "FetchExhaustedError",
    # Cache
    "ResponseCache",
    "CacheEntry",
    "CacheStats",
    # Transport
    "classify_payload",
    "is_usable_payload",
    "Transport",
    # Resolver
    "FallbackResolver",
    "RequestResult",
    "ResolverConfig",
    "ResolverStats",
    "rewrite_to_upstream",
    # Queue
    "QueueState",
    "QueuedRequest",
    "RequestQueue",
    # Client
    "MarketDataClient",
]
