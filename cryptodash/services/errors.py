"""
Service layer exceptions.

Inside the fetch layer every failure is a ServiceError subclass. Only
MarketDataClient.fetch_json converts them into a plain ``None``.
"""


class ServiceError(Exception):
    """Base exception for fetch layer errors."""

    def __init__(self, message: str, url: str | None = None):
        self.url = url
        super().__init__(message)


class RateLimitError(ServiceError):
    """Upstream answered HTTP 429 (or an equivalent error envelope)."""

    def __init__(self, url: str | None = None, retry_after: float | None = None):
        self.retry_after = retry_after
        msg = "Rate limited (429)"
        if url:
            msg += f" on {url}"
        if retry_after:
            msg += f", retry after {retry_after}s"
        super().__init__(msg, url=url)


class HttpStatusError(ServiceError):
    """Non-2xx response, or a 2xx whose body is not usable data."""

    def __init__(self, status: int, url: str | None = None, detail: str = ""):
        self.status = status
        msg = f"HTTP {status}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg, url=url)


class NetworkError(ServiceError):
    """Connection failure, DNS failure or request timeout."""

    pass


class FetchExhaustedError(ServiceError):
    """Every path in the fallback chain failed."""

    def __init__(self, url: str, last_error: Exception | None = None):
        self.last_error = last_error
        msg = f"All fetch attempts failed for {url}"
        if last_error is not None:
            msg += f" (last error: {last_error})"
        super().__init__(msg, url=url)
