"""
Dashboard poller - keeps the latest market snapshots fresh.

Uses APScheduler interval jobs. Every job goes through the same
MarketDataClient, so all upstream calls share one throttled queue and cache.
"""

from datetime import datetime
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from cryptodash.datasource.crypto.coingecko import (
    CoinGeckoSource,
    GlobalData,
    MarketCoin,
)
from cryptodash.settings import Settings, global_settings
from cryptodash.utils import log_job


class DashboardPoller:
    """Periodic refresh of markets, global stats and fiat rates."""

    def __init__(
        self,
        source: CoinGeckoSource,
        settings: Settings | None = None,
    ):
        self.source = source
        self.settings = settings or global_settings
        self.scheduler = AsyncIOScheduler()
        self._is_running = False

        # Latest fetched data
        self.latest_markets: list[MarketCoin] = []
        self.latest_global: GlobalData | None = None
        self.latest_rates: dict[str, float] = {"usd": 1.0}
        self.last_updated: dict[str, datetime] = {}

    @log_job
    async def refresh_markets(self) -> None:
        coins = await self.source.fetch_markets()
        if not coins:
            logger.warning("Market data unavailable, keeping previous snapshot")
            return
        self.latest_markets = coins
        self.last_updated["markets"] = datetime.now()

    @log_job
    async def refresh_global(self) -> None:
        data = await self.source.fetch_global()
        if data is None:
            logger.warning("Global data unavailable, keeping previous snapshot")
            return
        self.latest_global = data
        self.last_updated["global"] = datetime.now()

    @log_job
    async def refresh_rates(self) -> None:
        rates = await self.source.fetch_exchange_rates()
        if rates is None:
            logger.warning("Exchange rates unavailable, using previous values")
            return
        self.latest_rates = rates
        self.last_updated["rates"] = datetime.now()

    def start(self) -> None:
        """Start the poller."""
        if self._is_running:
            logger.warning("Dashboard poller is already running")
            return

        jobs = [
            (self.refresh_markets, self.settings.markets_interval_seconds, "markets"),
            (self.refresh_global, self.settings.global_interval_seconds, "global"),
            (self.refresh_rates, self.settings.rates_interval_seconds, "rates"),
        ]
        for func, seconds, name in jobs:
            self.scheduler.add_job(
                func,
                trigger="interval",
                seconds=seconds,
                id=f"{name}_refresh_job",
                name=f"Dashboard {name} refresh",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )

        self.scheduler.start()
        self._is_running = True

        logger.info(
            "Dashboard poller started: "
            + ", ".join(f"{name} every {seconds}s" for _, seconds, name in jobs)
        )

    def stop(self) -> None:
        """Stop the poller."""
        if not self._is_running:
            logger.warning("Dashboard poller is not running")
            return

        self.scheduler.shutdown(wait=False)
        self._is_running = False
        logger.info("Dashboard poller stopped")

    def is_running(self) -> bool:
        return self._is_running

    async def refresh_now(self) -> dict[str, Any]:
        """Refresh every snapshot immediately (manual trigger)."""
        logger.info("Manual dashboard refresh triggered")
        await self.refresh_rates()
        await self.refresh_global()
        await self.refresh_markets()
        return self.snapshot()

    def snapshot(self) -> dict[str, Any]:
        return {
            "markets": [coin.model_dump() for coin in self.latest_markets],
            "global": self.latest_global.model_dump() if self.latest_global else None,
            "rates": dict(self.latest_rates),
            "last_updated": {k: v.isoformat() for k, v in self.last_updated.items()},
        }
