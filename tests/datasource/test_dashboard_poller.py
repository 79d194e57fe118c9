"""Tests for DashboardPoller snapshot handling and scheduling."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from cryptodash.datasource.crypto.coingecko import (
    CoinGeckoSource,
    GlobalData,
    MarketCoin,
)
from cryptodash.datasource.scheduler import DashboardPoller
from cryptodash.services.client import MarketDataClient


def make_source(markets=None, global_data=None, rates=None) -> MagicMock:
    source = MagicMock()
    source.fetch_markets = AsyncMock(return_value=markets or [])
    source.fetch_global = AsyncMock(return_value=global_data)
    source.fetch_exchange_rates = AsyncMock(return_value=rates)
    return source


class TestDashboardPollerRefresh:
    """Snapshots are replaced only when data is available."""

    @pytest.mark.asyncio
    async def test_refresh_now_collects_snapshot(self, settings) -> None:
        coin = MarketCoin(id="bitcoin", symbol="btc", name="Bitcoin", current_price=1)
        global_data = GlobalData.model_validate({"data": {"active_cryptocurrencies": 1}})
        source = make_source([coin], global_data, {"usd": 1.0, "eur": 0.9})
        poller = DashboardPoller(source, settings)

        snapshot = await poller.refresh_now()

        assert snapshot["markets"][0]["id"] == "bitcoin"
        assert snapshot["global"]["data"]["active_cryptocurrencies"] == 1
        assert snapshot["rates"] == {"usd": 1.0, "eur": 0.9}
        assert set(snapshot["last_updated"]) == {"markets", "global", "rates"}

    @pytest.mark.asyncio
    async def test_missing_data_keeps_previous_snapshot(self, settings) -> None:
        coin = MarketCoin(id="bitcoin", symbol="btc", name="Bitcoin")
        source = make_source([coin])
        poller = DashboardPoller(source, settings)
        await poller.refresh_markets()

        source.fetch_markets.return_value = []
        await poller.refresh_markets()
        await poller.refresh_rates()

        assert poller.latest_markets == [coin]
        assert poller.latest_rates == {"usd": 1.0}
        assert "rates" not in poller.last_updated

    @pytest.mark.asyncio
    async def test_job_errors_are_logged_not_raised(self, settings) -> None:
        global_data = GlobalData.model_validate({"data": {"active_cryptocurrencies": 1}})
        source = make_source(global_data=global_data)
        poller = DashboardPoller(source, settings)
        await poller.refresh_global()

        source.fetch_global.side_effect = ValueError("bad payload")
        result = await poller.refresh_global()

        assert result is None
        assert poller.latest_global is global_data

    @pytest.mark.asyncio
    async def test_refresh_now_survives_malformed_payloads(self, settings) -> None:
        client = MarketDataClient(settings)
        client.fetch_json = AsyncMock(return_value={"bitcoin": {"usd": "n/a"}})
        poller = DashboardPoller(CoinGeckoSource(client), settings)

        snapshot = await poller.refresh_now()

        assert snapshot["markets"] == []
        assert snapshot["global"] is None
        assert snapshot["rates"] == {"usd": 1.0}
        assert snapshot["last_updated"] == {}


class TestDashboardPollerScheduling:
    """Start/stop of the APScheduler jobs."""

    @pytest.mark.asyncio
    async def test_start_registers_interval_jobs(self, settings) -> None:
        poller = DashboardPoller(make_source(), settings)

        poller.start()
        try:
            job_ids = {job.id for job in poller.scheduler.get_jobs()}
            assert job_ids == {
                "markets_refresh_job",
                "global_refresh_job",
                "rates_refresh_job",
            }
            assert poller.is_running()
        finally:
            poller.stop()

        assert not poller.is_running()

    @pytest.mark.asyncio
    async def test_double_start_is_ignored(self, settings) -> None:
        poller = DashboardPoller(make_source(), settings)

        poller.start()
        poller.start()
        assert len(poller.scheduler.get_jobs()) == 3
        poller.stop()
