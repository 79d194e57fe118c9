import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

load_dotenv()


def _split_csv(value):
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    debug: bool = Field(default=False, alias="CRYPTODASH_DEBUG")

    # Upstream / proxy
    proxy_origin: str = Field(default="http://localhost:3000", alias="PROXY_ORIGIN")
    api_base: str = Field(default="/api/coingecko", alias="API_BASE")
    upstream_base: str = Field(
        default="https://api.coingecko.com/api/v3", alias="COINGECKO_BASE"
    )
    behind_proxy: bool = Field(default=True, alias="BEHIND_PROXY")
    relay_endpoints: list[str] = Field(
        default=[
            "https://corsproxy.io/?url=",
            "https://api.allorigins.win/raw?url=",
            "https://api.codetabs.com/v1/proxy?quest=",
        ],
        alias="CORS_PROXIES",
    )

    # Cache tiers (seconds)
    fresh_ttl: float = Field(default=180.0, alias="CACHE_FRESH_TTL")
    stale_ttl: float = Field(default=600.0, alias="CACHE_STALE_TTL")
    cache_max_size: int | None = Field(default=None, alias="CACHE_MAX_SIZE")

    # Request pacing (seconds)
    request_timeout: float = Field(default=10.0, alias="REQUEST_TIMEOUT")
    relay_timeout: float = Field(default=12.0, alias="RELAY_TIMEOUT")
    throttle_interval: float = Field(default=4.0, alias="REQUEST_DELAY")
    max_attempts: int = Field(default=2, alias="RATE_LIMIT_MAX_ATTEMPTS")
    backoff_schedule: list[float] = Field(
        default=[8.0, 16.0], alias="RATE_LIMIT_BACKOFF"
    )

    # Dashboard polling
    vs_currency: str = Field(default="usd", alias="VS_CURRENCY")
    per_page: int = Field(default=50, alias="PER_PAGE")
    markets_interval_seconds: int = Field(default=300, alias="MARKETS_INTERVAL")
    global_interval_seconds: int = Field(default=600, alias="GLOBAL_INTERVAL")
    rates_interval_seconds: int = Field(default=900, alias="RATES_INTERVAL")

    @field_validator("relay_endpoints", "backoff_schedule", mode="before")
    @classmethod
    def _parse_csv(cls, value):
        return _split_csv(value)


global_settings = Settings.model_validate(dict(os.environ))
