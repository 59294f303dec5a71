"""Shared fixtures for the tornstock test suite."""

import asyncio
import re
from typing import Any, Dict, List, Optional

import httpx
import pytest

from tornstock.collector import Collector
from tornstock.config import Settings
from tornstock.context import CollectorContext

FEED_TIMESTAMP = 1_700_000_000

_MARKET_PATH = re.compile(r"^/v2/market/(\d+)/itemmarket$")


def make_feed(stocks: Optional[Dict[str, Any]] = None, timestamp: int = FEED_TIMESTAMP) -> Dict[str, Any]:
    """Build a YATA export; defaults to one plushie in Mexico."""
    if stocks is None:
        stocks = {
            "mex": {
                "update": timestamp,
                "stocks": [{"id": 258, "name": "Jaguar Plushie", "quantity": 100, "cost": 10000}],
            }
        }
    return {"timestamp": timestamp, "stocks": stocks}


def make_market(item_type: str = "Plushie", average_price: int = 30000, prices: Optional[List[int]] = None) -> Dict[str, Any]:
    """Build a Torn v2 item market response."""
    if prices is None:
        prices = [29000, 30000, 31000]
    return {
        "itemmarket": {
            "item": {"type": item_type, "average_price": average_price},
            "listings": [{"price": price, "amount": 1} for price in prices],
        }
    }


class FakeUpstream:
    """
    Stand-in for YATA and the Torn API behind an httpx.MockTransport.

    Each route holds a queue of responses; the last one is repeated once
    the queue runs dry. A queued exception is raised instead of answering.
    """

    def __init__(self):
        self.yata: List[Any] = [(200, make_feed())]
        self.market: Dict[int, List[Any]] = {258: [(200, make_market())]}
        self.items: List[Any] = [(200, {"items": {"258": {"type": "Plushie"}, "1": {"type": "Weapon"}}})]
        self.user: List[Any] = [(200, {"player_id": 1, "name": "tester"})]
        self.requests: List[httpx.Request] = []

    @staticmethod
    def _next(queue: List[Any]):
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def _answer(self, queue: List[Any]) -> httpx.Response:
        response = self._next(queue)
        if isinstance(response, Exception):
            raise response
        status, body = response
        return httpx.Response(status, json=body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "yata.yt":
            return self._answer(self.yata)

        match = _MARKET_PATH.match(request.url.path)
        if match:
            item_id = int(match.group(1))
            return self._answer(self.market.get(item_id, [(200, {"error": {"code": 6, "error": "Incorrect ID"}})]))
        if request.url.path == "/torn/":
            return self._answer(self.items)
        if request.url.path == "/user/":
            return self._answer(self.user)
        return httpx.Response(404, json={"error": "not found"})

    def calls(self, host: str, path_prefix: str = "/") -> int:
        return sum(
            1 for r in self.requests
            if r.url.host == host and r.url.path.startswith(path_prefix)
        )

    @property
    def market_calls(self) -> int:
        return self.calls("api.torn.com", "/v2/market/")

    @property
    def yata_calls(self) -> int:
        return self.calls("yata.yt")


class SleepRecorder:
    """Replacement for asyncio.sleep that records delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'tornstock.db'}",
        torn_api_key="test-key",
        torn_min_delay_seconds=0,
        yata_min_delay_seconds=0,
        yata_rate_limit_backoff_seconds=0,
        prefetch_prices=False,
        poll_interval_seconds=0.01,
    )


@pytest.fixture
def context(settings, upstream, sleeps):
    ctx = CollectorContext.create(settings, transport=httpx.MockTransport(upstream.handler), sleep=sleeps)
    yield ctx
    asyncio.run(ctx.close())


@pytest.fixture
def collector(context) -> Collector:
    return Collector(context)
