"""
CoinGecko API data source for the dashboard views.

API Documentation: https://www.coingecko.com/en/api/documentation
Free tier: 10-30 calls/minute (no API key required)

All requests go through the reverse-proxy prefix (``/api/coingecko``) and the
MarketDataClient queue. Query parameters are emitted in a fixed order so the
same request always maps to the same cache key.
"""

from typing import Any
from urllib.parse import urlencode

from loguru import logger
from pydantic import BaseModel, ValidationError

from cryptodash.datasource.base import BaseDataSource
from cryptodash.services.client import MarketDataClient

SUPPORTED_CURRENCIES = ("usd", "brl", "eur")


class AssetPrice(BaseModel):
    """Spot prices of one tracked asset, keyed by currency."""

    id: str
    symbol: str
    name: str
    prices: dict[str, float]


class Sparkline(BaseModel):
    price: list[float] = []


class MarketCoin(BaseModel):
    """One row of the /coins/markets listing."""

    id: str
    symbol: str
    name: str
    image: str | None = None
    current_price: float | None = None
    market_cap: float | None = None
    market_cap_rank: int | None = None
    total_volume: float | None = None
    price_change_percentage_24h: float | None = None
    sparkline_in_7d: Sparkline | None = None


class GlobalMarket(BaseModel):
    active_cryptocurrencies: int = 0
    total_market_cap: dict[str, float] = {}
    total_volume: dict[str, float] = {}
    market_cap_percentage: dict[str, float] = {}


class GlobalData(BaseModel):
    """Response of /global."""

    data: GlobalMarket


# Default cryptocurrencies shown on the dashboard cards
CRYPTO_ASSETS = [
    {"id": "bitcoin", "symbol": "btc", "name": "Bitcoin"},
    {"id": "ethereum", "symbol": "eth", "name": "Ethereum"},
    {"id": "solana", "symbol": "sol", "name": "Solana"},
    {"id": "binancecoin", "symbol": "bnb", "name": "BNB"},
    {"id": "ripple", "symbol": "xrp", "name": "XRP"},
    {"id": "cardano", "symbol": "ada", "name": "Cardano"},
    {"id": "dogecoin", "symbol": "doge", "name": "Dogecoin"},
    {"id": "polkadot", "symbol": "dot", "name": "Polkadot"},
]


class CoinGeckoSource(BaseDataSource[MarketCoin]):
    """
    CoinGecko API data source.

    Every accessor returns None (or an empty list) when the fetch layer has
    no data; presenting a degraded state is left to the caller.
    """

    SERVICE_ID = "coingecko"

    def __init__(
        self,
        client: MarketDataClient,
        api_base: str | None = None,
        vs_currency: str | None = None,
        per_page: int | None = None,
        assets: list[dict[str, str]] | None = None,
    ):
        super().__init__(client)
        settings = client.settings
        self.api_base = (api_base or settings.api_base).rstrip("/")
        self.vs_currency = vs_currency or settings.vs_currency
        self.per_page = per_page or settings.per_page
        self.assets = assets or CRYPTO_ASSETS

    @property
    def service_id(self) -> str:
        return self.SERVICE_ID

    # URL builders

    def _url(self, path: str, params: list[tuple[str, Any]] | None = None) -> str:
        url = f"{self.api_base}{path}"
        if params:
            url += "?" + urlencode(params)
        return url

    def markets_url(self, page: int = 1, vs_currency: str | None = None) -> str:
        return self._url(
            "/coins/markets",
            [
                ("vs_currency", vs_currency or self.vs_currency),
                ("order", "market_cap_desc"),
                ("per_page", self.per_page),
                ("page", page),
                ("sparkline", "true"),
                ("price_change_percentage", "24h"),
            ],
        )

    def global_url(self) -> str:
        return self._url("/global")

    def market_chart_url(
        self, coin_id: str, days: int = 7, vs_currency: str | None = None
    ) -> str:
        return self._url(
            f"/coins/{coin_id}/market_chart",
            [("vs_currency", vs_currency or self.vs_currency), ("days", days)],
        )

    def coin_detail_url(self, coin_id: str) -> str:
        return self._url(
            f"/coins/{coin_id}",
            [
                ("localization", "false"),
                ("tickers", "false"),
                ("community_data", "false"),
                ("developer_data", "false"),
            ],
        )

    def simple_price_url(
        self, ids: list[str], vs_currencies: tuple[str, ...] = SUPPORTED_CURRENCIES
    ) -> str:
        return self._url(
            "/simple/price",
            [("ids", ",".join(ids)), ("vs_currencies", ",".join(vs_currencies))],
        )

    # Accessors

    async def fetch(self) -> list[MarketCoin]:
        """Fetch the first page of the market listing."""
        return await self.fetch_markets(page=1)

    async def fetch_markets(
        self, page: int = 1, vs_currency: str | None = None
    ) -> list[MarketCoin]:
        """
        Fetch one page of coins ordered by market cap.

        Returns:
            List of MarketCoin, empty when no data is available
        """
        data = await self.fetch_json(self.markets_url(page, vs_currency))
        if not isinstance(data, list):
            return []

        coins = []
        for row in data:
            try:
                coins.append(MarketCoin.model_validate(row))
            except ValidationError as e:
                logger.warning(f"Skipping malformed market row: {e}")

        logger.info(f"Fetched {len(coins)} market coins (page {page})")
        return coins

    async def fetch_global(self) -> GlobalData | None:
        """Fetch global market statistics."""
        data = await self.fetch_json(self.global_url())
        if not isinstance(data, dict) or not data.get("data"):
            return None

        try:
            return GlobalData.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Malformed global data: {e}")
            return None

    async def fetch_market_chart(
        self,
        coin_id: str,
        days: int = 7,
        vs_currency: str | None = None,
    ) -> list[tuple[float, float]] | None:
        """
        Fetch historical prices for a coin.

        Args:
            coin_id: CoinGecko coin ID
            days: Number of days of data (1, 7, 30, 90, 365)

        Returns:
            List of (timestamp_ms, price) pairs or None if unavailable
        """
        data = await self.fetch_json(self.market_chart_url(coin_id, days, vs_currency))
        if not isinstance(data, dict) or not data.get("prices"):
            return None

        try:
            return [(float(ts), float(price)) for ts, price in data["prices"]]
        except (TypeError, ValueError) as e:
            logger.warning(f"Malformed market chart for {coin_id}: {e}")
            return None

    async def fetch_coin_detail(self, coin_id: str) -> dict[str, Any] | None:
        """Fetch detailed information for a specific coin."""
        data = await self.fetch_json(self.coin_detail_url(coin_id))
        if not isinstance(data, dict):
            return None
        return data

    async def fetch_exchange_rates(self) -> dict[str, float] | None:
        """
        Derive fiat conversion rates relative to USD from the BTC price.

        Returns:
            e.g. {"usd": 1.0, "brl": 5.05, "eur": 0.92} or None if unavailable
        """
        data = await self.fetch_json(self.simple_price_url(["bitcoin"]))
        if not isinstance(data, dict):
            return None

        btc = data.get("bitcoin")
        if not isinstance(btc, dict) or not btc.get("usd"):
            return None

        rates = {"usd": 1.0}
        try:
            btc_usd = float(btc["usd"])
            for currency in SUPPORTED_CURRENCIES:
                if currency != "usd" and btc.get(currency) is not None:
                    rates[currency] = float(btc[currency]) / btc_usd
        except (TypeError, ValueError, ZeroDivisionError) as e:
            logger.warning(f"Malformed exchange rate data: {e}")
            return None
        return rates

    async def fetch_asset_prices(
        self,
        ids: list[str] | None = None,
        vs_currencies: tuple[str, ...] = SUPPORTED_CURRENCIES,
    ) -> list[AssetPrice]:
        """
        Fetch spot prices for the tracked assets.

        Args:
            ids: CoinGecko coin IDs; defaults to the source's tracked assets
            vs_currencies: Currencies to price in

        Returns:
            One AssetPrice per asset present in the response, in asset order
        """
        assets = self.assets
        if ids is not None:
            known = {asset["id"]: asset for asset in self.assets}
            assets = [
                known.get(coin_id, {"id": coin_id, "symbol": "", "name": coin_id})
                for coin_id in ids
            ]

        url = self.simple_price_url([asset["id"] for asset in assets], vs_currencies)
        data = await self.fetch_json(url)
        if not isinstance(data, dict):
            return []

        prices = []
        for asset in assets:
            row = data.get(asset["id"])
            if not isinstance(row, dict):
                continue
            try:
                prices.append(
                    AssetPrice(
                        id=asset["id"],
                        symbol=asset["symbol"],
                        name=asset["name"],
                        prices={c: row[c] for c in vs_currencies if c in row},
                    )
                )
            except ValidationError as e:
                logger.warning(f"Skipping malformed price row for {asset['id']}: {e}")

        return prices
