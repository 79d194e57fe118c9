"""
Response classifier - decides whether a parsed 2xx body is usable data.

Some upstreams (CoinGecko and the reverse proxy in front of it) answer with
HTTP 200 and an error envelope. Rules, applied in order:

1. ``None``                                -> HttpStatusError
2. a bare string                           -> HttpStatusError
3. a dict with a top-level ``error`` key   -> HttpStatusError
4. a dict whose ``status.error_code`` is set:
   429 -> RateLimitError, anything else -> HttpStatusError(error_code)
5. anything else is returned unchanged
"""

from typing import Any

from cryptodash.services.errors import HttpStatusError, RateLimitError


def classify_payload(data: Any, url: str | None = None, status: int = 200) -> Any:
    """Return data if it is usable, otherwise raise the matching ServiceError."""
    if data is None:
        raise HttpStatusError(status, url=url, detail="empty payload")

    if isinstance(data, str):
        raise HttpStatusError(status, url=url, detail="unexpected string payload")

    if isinstance(data, dict):
        if "error" in data:
            raise HttpStatusError(
                status, url=url, detail=f"error envelope: {str(data['error'])[:200]}"
            )

        envelope = data.get("status")
        if isinstance(envelope, dict) and envelope.get("error_code"):
            try:
                code = int(envelope["error_code"])
            except (TypeError, ValueError):
                code = status
            if code == 429:
                raise RateLimitError(url=url)
            raise HttpStatusError(
                code,
                url=url,
                detail=str(envelope.get("error_message", "error envelope"))[:200],
            )

    return data


def is_usable_payload(data: Any) -> bool:
    """Boolean form of classify_payload."""
    try:
        classify_payload(data)
    except (HttpStatusError, RateLimitError):
        return False
    return True
