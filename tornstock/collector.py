"""
Stock collector: polls YATA on a timer, records history and builds the
per-country profit table.

A cycle walks through FETCHING_FEED, VALIDATING_FEED, COMPUTING_TRENDS,
FETCHING_PRICES (manual refresh only) and PERSISTING before returning to
IDLE. Cycles are serialised: a manual refresh that arrives while the timer's
cycle runs waits for it to finish.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from tornstock.analyzer import calculate_trend, predict_restock, profit_per_minute
from tornstock.constants import (
    COUNTRY_CODES,
    STORAGE_API_KEY,
    STORAGE_ITEM_TYPES,
    STORAGE_STOCK_DATA,
    STORAGE_STOCK_VERSION,
    YATA_CHANNEL,
    is_tracked_type,
)
from tornstock.context import CollectorContext
from tornstock.errors import ConfigurationError
from tornstock.models import HistoryQuery, PriceInfo, StockEntry, StockSnapshot
from tornstock.validator import sanitize_number, validate_yata_response

logger = logging.getLogger(__name__)

HISTORY_WINDOW_SECONDS = 24 * 60 * 60


class CycleState(str, Enum):
    """Stage of the current poll cycle."""
    IDLE = "idle"
    FETCHING_FEED = "fetching_feed"
    VALIDATING_FEED = "validating_feed"
    COMPUTING_TRENDS = "computing_trends"
    FETCHING_PRICES = "fetching_prices"
    PERSISTING = "persisting"


class Collector:
    """Runs poll cycles against a CollectorContext."""

    def __init__(self, context: CollectorContext):
        self.context = context
        self.state = CycleState.IDLE
        self.manual_refresh_mode = False
        self._cycle_lock = asyncio.Lock()
        self._timer_task: Optional[asyncio.Task] = None
        self._last_version = 0

    @property
    def running(self) -> bool:
        """Whether the periodic timer is active."""
        return self._timer_task is not None and not self._timer_task.done()

    async def initialize(self, start_timer: bool = True) -> bool:
        """
        Load the API key and caches, run a first cycle and start the timer.

        Never raises; problems are logged. A missing key or a failed setup
        step leaves the collector idle. A failed first cycle still starts
        the timer so later cycles can recover.

        Args:
            start_timer: Start (or restart) the periodic quantity-only cycle

        Returns:
            True if initialization and the first cycle completed
        """
        ctx = self.context
        try:
            stored = ctx.storage.get_many([STORAGE_API_KEY, STORAGE_ITEM_TYPES])
            ctx.api_key = stored.get(STORAGE_API_KEY) or ctx.settings.torn_api_key
            ctx.price_cache.load_item_types()
            ctx.require_api_key()
        except ConfigurationError as e:
            logger.warning(f"{e}. Collector is idle until a key is provided.")
            await self.stop()
            return False
        except SQLAlchemyError as e:
            logger.error(f"Initialization failed reading local storage: {e}")
            await self.stop()
            return False

        try:
            if not ctx.price_cache.item_types:
                item_types = await ctx.price_cache.fetch_all_item_types()
                ctx.price_cache.set_item_types(item_types)

            await ctx.metadata.load()

            if ctx.settings.prefetch_prices:
                await ctx.price_cache.prefetch_tracked_prices()
        except Exception as e:
            logger.error(f"Initialization failed: {e}")
            await self.stop()
            return False

        first_cycle = await self.run_cycle()

        if start_timer:
            await self.stop()
            self.start()

        if first_cycle:
            logger.info("Initialization completed successfully")
        return first_cycle

    async def fetch_and_log_stock(
        self,
        countries: Optional[List[str]] = None,
        manual: bool = False,
    ) -> Dict[str, List[StockEntry]]:
        """
        Run one poll cycle.

        Args:
            countries: Restrict the cycle to these country codes (None or
                empty means all)
            manual: Also fetch live market prices for the items seen

        Returns:
            The aggregated result that was written to storage

        Raises:
            Any feed fetch or validation error; nothing is written to
            `stockData` in that case
        """
        async with self._cycle_lock:
            self.manual_refresh_mode = manual
            try:
                return await self._cycle(countries or None, manual)
            finally:
                self.state = CycleState.IDLE
                self.manual_refresh_mode = False

    async def _cycle(self, countries: Optional[List[str]], manual: bool) -> Dict[str, List[StockEntry]]:
        ctx = self.context

        self.state = CycleState.FETCHING_FEED
        await ctx.rate_limiter.wait_for_next_call(YATA_CHANNEL)
        feed = await ctx.yata.get_travel_export()

        self.state = CycleState.VALIDATING_FEED
        validate_yata_response(feed)
        timestamp = int(feed["timestamp"])
        if not len(ctx.metadata):
            ctx.metadata.update_from_feed(feed)

        observed = [
            (country, item)
            for country, country_data in feed["stocks"].items()
            if countries is None or country in countries
            for item in country_data["stocks"]
        ]

        self.state = CycleState.COMPUTING_TRENDS
        for country, item in observed:
            history = ctx.history.query_range(country, item["id"], timestamp - HISTORY_WINDOW_SECONDS, timestamp)
            trend = calculate_trend(history, now=timestamp)
            restock = predict_restock(history)
            await ctx.history.save_snapshot(
                country,
                item["id"],
                item["quantity"],
                timestamp,
                trend=trend,
                restock=restock.model_dump(by_alias=True) if restock else None,
                country_name=COUNTRY_CODES.get(country, country),
            )

        price_map: Dict[Any, PriceInfo] = {}
        if manual:
            self.state = CycleState.FETCHING_PRICES
            # One at a time, each waiting on the torn channel
            for item_id in dict.fromkeys(item["id"] for _, item in observed):
                info = await ctx.price_cache.fetch_market_price(item_id)
                price_map[item_id] = info
                if info.price > 0:
                    await ctx.history.save_market_price(item_id, info.price, timestamp)

        self.state = CycleState.PERSISTING
        result: Dict[str, List[StockEntry]] = {}
        for country, item in observed:
            meta = ctx.metadata.get(country, item["id"])
            if meta is None:
                logger.warning(f"No metadata for {country}|{item['id']}")
                continue

            if manual:
                info = price_map.get(meta.id) or PriceInfo()
                market_price = info.price
                item_type = info.type or ctx.price_cache.item_type(meta.id)
            else:
                market_price = self._last_known_price(meta.id)
                item_type = ctx.price_cache.item_type(meta.id)

            if item_type is None:
                logger.debug(f"Skipping item {meta.id} ({meta.name}) because type is unknown")
                continue
            if not is_tracked_type(item_type):
                continue

            entry = StockEntry(
                **meta.model_dump(),
                quantity=sanitize_number(item["quantity"]),
                market_price=market_price,
                profit_per_minute=profit_per_minute(meta.cost, market_price, meta.flight_time),
                timestamp=timestamp,
                type=item_type,
            )
            result.setdefault(meta.country, []).append(entry)

        version = self._next_version()
        ctx.storage.set_many({
            STORAGE_STOCK_DATA: {
                country: [entry.model_dump() for entry in entries]
                for country, entries in result.items()
            },
            STORAGE_STOCK_VERSION: version,
        })
        logger.info(f"Stock data updated and saved (version {version}, {len(observed)} items)")
        return result

    def _last_known_price(self, item_id: Any) -> int:
        """Most recent persisted price, falling back to the in-memory cache."""
        ctx = self.context
        try:
            price = ctx.history.latest_market_price(item_id)
            if price is not None:
                return price
        except SQLAlchemyError as e:
            logger.warning(f"Failed to load market price from DB: {e}")

        cached = ctx.price_cache.cached_price(item_id)
        return cached.price if cached else 0

    def _next_version(self) -> int:
        stored = self.context.storage.get(STORAGE_STOCK_VERSION) or 0
        version = max(int(time.time() * 1000), int(stored) + 1, self._last_version + 1)
        self._last_version = version
        return version

    async def run_cycle(self, countries: Optional[List[str]] = None, manual: bool = False) -> bool:
        """
        Run a cycle and log instead of raising.

        Returns:
            True if the cycle wrote a result
        """
        try:
            await self.fetch_and_log_stock(countries, manual=manual)
            return True
        except Exception as e:
            kind = "Manual refresh" if manual else "Periodic fetch"
            logger.error(f"{kind} failed: {e}")
            return False

    async def handle_message(self, message: Dict[str, Any]) -> Any:
        """
        Dispatch a control message.

        Args:
            message: `{"type": ...}` plus message-specific fields

        Returns:
            restart-collector: whether initialization completed
            manual-refresh: whether the cycle wrote a result
            get-historical-data: list of StockSnapshot

        Raises:
            ValueError: For unknown message types
        """
        message_type = message.get("type")

        if message_type == "restart-collector":
            logger.info("Restarting data collector")
            return await self.initialize()

        if message_type == "manual-refresh":
            countries = message.get("countries") or None
            logger.info(f"Manual refresh requested for: {countries or 'all countries'}")
            return await self.run_cycle(countries, manual=True)

        if message_type == "get-historical-data":
            query = HistoryQuery.model_validate(message)
            return self.get_historical_data(query)

        raise ValueError(f"Unknown message type: {message_type}")

    def get_historical_data(self, query: HistoryQuery) -> List[StockSnapshot]:
        return self.context.history.query_range(query.country, query.item_id, query.start_time, query.end_time)

    def start(self):
        """Start the periodic quantity-only cycle."""
        if self.running:
            return
        self._timer_task = asyncio.create_task(self._periodic())

    async def stop(self):
        """Cancel the periodic cycle timer."""
        task, self._timer_task = self._timer_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Cleared existing fetch timer")

    async def _periodic(self):
        interval = self.context.settings.poll_interval_seconds
        while True:
            await asyncio.sleep(interval)
            if not self.context.api_key:
                logger.warning("Periodic fetch skipped: API key is missing.")
                continue
            await self.run_cycle()
