"""
CoinGecko data source for cryptocurrency market data.
"""

from cryptodash.datasource.crypto.coingecko import (
    AssetPrice,
    CoinGeckoSource,
    GlobalData,
    MarketCoin,
)

__all__ = ["AssetPrice", "CoinGeckoSource", "GlobalData", "MarketCoin"]
