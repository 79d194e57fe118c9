import asyncio
from typing import Any, Callable

import pytest

from cryptodash.settings import Settings


class FakeClock:
    """Manually advanced monotonic clock with a matching async sleep."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class ScriptedTransport:
    """
    Stand-in for Transport that replays a list of outcomes.

    Each outcome is either a payload or an exception instance to raise.
    The last outcome repeats once the script runs out.
    """

    def __init__(
        self,
        outcomes: list[Any],
        clock: Callable[[], float] | None = None,
        delay: float = 0.0,
    ):
        self.outcomes = list(outcomes)
        self.clock = clock
        self.delay = delay
        self.calls: list[tuple[str, float | None]] = []
        self.active = 0
        self.max_active = 0
        self.closed = False

    async def fetch_once(self, url: str, timeout: float | None = None) -> Any:
        self.calls.append((url, self.clock() if self.clock else None))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        finally:
            self.active -= 1

    @property
    def urls(self) -> list[str]:
        return [url for url, _ in self.calls]

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scripted_transport():
    """Factory for ScriptedTransport instances."""
    return ScriptedTransport


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the process environment."""
    return Settings(
        proxy_origin="http://proxy.test",
        throttle_interval=4.0,
        request_timeout=1.0,
        relay_timeout=1.0,
    )
