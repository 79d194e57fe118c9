"""
Transport - one bounded-time HTTP GET with outcome classification.

Outcomes:
- success: parsed, validated JSON payload
- RateLimitError: HTTP 429 or a 429 error envelope
- HttpStatusError: any other non-2xx, or an unusable 2xx body
- NetworkError: connection/DNS failure or deadline exceeded
"""

import asyncio
from typing import Any

import httpx
from loguru import logger

from cryptodash.services.classifier import classify_payload
from cryptodash.services.errors import HttpStatusError, NetworkError, RateLimitError


class Transport:
    """
    Thin async HTTP GET wrapper around httpx.

    Relative URLs (``/api/coingecko/...``) are resolved against base_url,
    the origin of the reverse proxy. Absolute URLs are used as-is.

    Usage:
        async with Transport(base_url="http://localhost:3000") as transport:
            data = await transport.fetch_once("/api/coingecko/global", timeout=10)
    """

    def __init__(
        self,
        base_url: str = "",
        default_timeout: float = 10.0,
        headers: dict[str, str] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._base_url = base_url
        self._default_timeout = default_timeout
        self._headers = {"Accept": "application/json", **(headers or {})}

        # HTTP client (lazy initialization unless injected)
        self._http_client = http_client
        self._owns_client = http_client is None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._default_timeout),
                headers=self._headers,
                follow_redirects=True,
            )
        return self._http_client

    async def fetch_once(self, url: str, timeout: float | None = None) -> Any:
        """
        Perform a single GET and return the validated JSON payload.

        The timeout is an overall deadline for the whole call: on expiry the
        in-flight request is cancelled and NetworkError is raised.

        Raises:
            RateLimitError: HTTP 429 or 429 error envelope
            HttpStatusError: other non-2xx status or unusable body
            NetworkError: connection failure or timeout
        """
        deadline = timeout if timeout is not None else self._default_timeout

        try:
            return await asyncio.wait_for(self._execute(url, deadline), deadline)

        except asyncio.TimeoutError as e:
            raise NetworkError(
                f"Request to {url} timed out after {deadline}s", url=url
            ) from e

    async def _execute(self, url: str, timeout: float) -> Any:
        """Execute the actual HTTP request."""
        client = await self._get_http_client()

        try:
            response = await client.get(url, timeout=timeout)

        except httpx.TimeoutException as e:
            raise NetworkError(
                f"Request to {url} timed out after {timeout}s", url=url
            ) from e

        except httpx.RequestError as e:
            raise NetworkError(f"Request to {url} failed: {e}", url=url) from e

        if response.status_code == 429:
            raise RateLimitError(
                url=url, retry_after=_parse_retry_after(response.headers)
            )

        if not response.is_success:
            raise HttpStatusError(
                response.status_code, url=url, detail=response.text[:200]
            )

        try:
            data = response.json()
        except ValueError as e:
            raise HttpStatusError(
                response.status_code, url=url, detail="invalid JSON body"
            ) from e

        return classify_payload(data, url=url, status=response.status_code)

    async def close(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None
            logger.debug("Transport closed")

    async def __aenter__(self) -> "Transport":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def _parse_retry_after(headers: httpx.Headers) -> float | None:
    value = headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None
