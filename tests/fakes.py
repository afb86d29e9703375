import asyncio
from typing import Any

FACILITIES_URL = "https://parking.example.com/facilities"
AVAILABILITY_URL = "https://parking.example.com/availability"


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeFetcher:
    """Replays queued payloads (or raises queued errors) in call order."""

    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses)
        self.calls: list[str] = []
        self.signals: list[Any] = []
        self.gate: asyncio.Event | None = None

    async def fetch(self, url: str, signal=None) -> Any:
        self.calls.append(url)
        self.signals.append(signal)
        # Suspend like real network I/O would.
        await asyncio.sleep(0)
        if self.gate is not None:
            await self.gate.wait()
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


class RoutingFetcher:
    """Serves a fixed payload (or error) per URL."""

    def __init__(self, routes: dict[str, Any]) -> None:
        self.routes = routes
        self.calls: list[str] = []

    async def fetch(self, url: str, signal=None) -> Any:
        self.calls.append(url)
        await asyncio.sleep(0)
        response = self.routes[url]
        if isinstance(response, BaseException):
            raise response
        return response
