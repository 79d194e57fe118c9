"""
Base data source interface.
"""

from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from cryptodash.services.client import MarketDataClient

T = TypeVar("T", bound=BaseModel)


class BaseDataSource(ABC, Generic[T]):
    """
    Abstract base class for all data sources.

    All data sources should:
    - Use MarketDataClient for HTTP requests (queue, cache, fallbacks)
    - Return Pydantic models
    - Treat a None payload as "no data yet" rather than an error
    """

    def __init__(self, client: MarketDataClient):
        self.client = client

    @property
    @abstractmethod
    def service_id(self) -> str:
        """Unique identifier for this data source."""
        ...

    @abstractmethod
    async def fetch(self) -> list[T]:
        """Fetch data from the source."""
        ...

    async def fetch_json(self, url: str) -> Any | None:
        return await self.client.fetch_json(url)
