"""
CryptoDash market-data entrypoint.
Runs the dashboard poller on top of the throttled, cached fetch layer.
"""

import asyncio
import sys

from loguru import logger

from cryptodash.datasource.crypto import CoinGeckoSource
from cryptodash.datasource.scheduler import DashboardPoller
from cryptodash.services import MarketDataClient
from cryptodash.settings import global_settings


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


async def main() -> None:
    """Main function"""
    configure_logging(global_settings.log_level)
    logger.info("Starting CryptoDash data layer...")

    client = MarketDataClient(global_settings)
    poller = DashboardPoller(CoinGeckoSource(client), global_settings)

    try:
        logger.info("Performing initial refresh...")
        snapshot = await poller.refresh_now()
        logger.info(
            f"Initial refresh done: {len(snapshot['markets'])} coins, "
            f"rates {snapshot['rates']}"
        )

        poller.start()

        logger.info("CryptoDash is running. Press Ctrl+C to stop.")
        while True:
            await asyncio.sleep(60)
            logger.debug(f"Health: {client.get_health_status()}")

    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Received interrupt signal, shutting down...")
    finally:
        if poller.is_running():
            poller.stop()

        logger.info("Closing market data client...")
        await client.close()

        logger.info("CryptoDash stopped")


if __name__ == "__main__":
    asyncio.run(main())
