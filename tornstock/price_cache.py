"""
Market price lookups with an in-memory TTL cache and a persisted item type cache.
"""

import logging
import math
import time
from typing import Callable, Dict, Optional, Any, List

from tornstock.constants import STORAGE_ITEM_TYPES, TORN_CHANNEL, TRACKED_TYPES, is_tracked_type
from tornstock.local_storage import LocalStorage
from tornstock.models import PriceInfo
from tornstock.rate_limiter import RateLimiter
from tornstock.torn_client import TornClient
from tornstock.validator import (
    sanitize_number,
    validate_torn_items_response,
    validate_torn_market_response,
)

logger = logging.getLogger(__name__)

# Listings within this fraction of the average price are considered
PRICE_BAND = 0.1
# Number of cheapest in-band listings averaged
TOP_LISTINGS = 5


def compute_market_price(average_price: Any, listings: List[Dict[str, Any]]) -> int:
    """
    Average of the first listings close to the reference price.

    Args:
        average_price: Torn's own average price for the item
        listings: Listings as returned by Torn (cheapest first)

    Returns:
        Rounded mean of up to 5 listings within ±10% of the average,
        or 0 when none qualify
    """
    reference = sanitize_number(average_price)
    prices = [sanitize_number(listing.get("price")) for listing in listings if isinstance(listing, dict)]
    in_band = [p for p in prices if abs(p - reference) <= reference * PRICE_BAND]
    top = in_band[:TOP_LISTINGS]
    if not top:
        return 0
    # Halves round up
    return int(math.floor(sum(top) / len(top) + 0.5))


class PriceCache:
    """
    Resolves market prices for items.

    Fresh prices are kept in memory for `ttl` seconds. Item types are kept
    forever and written through to local storage so items outside the
    tracked categories never hit the market endpoint twice.
    """

    def __init__(
        self,
        torn: TornClient,
        rate_limiter: RateLimiter,
        storage: LocalStorage,
        api_key: Optional[str] = None,
        ttl: float = 300.0,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize price cache.

        Args:
            torn: Torn API client
            rate_limiter: Shared rate limiter (uses the torn channel)
            storage: Local storage receiving the item type cache
            api_key: Torn API key
            ttl: Lifetime of a cached price in seconds
            clock: Wall clock returning epoch seconds
        """
        self.torn = torn
        self.rate_limiter = rate_limiter
        self.storage = storage
        self.api_key = api_key
        self.ttl = ttl
        self._clock = clock
        self.entries: Dict[str, PriceInfo] = {}
        self.item_types: Dict[str, Optional[str]] = {}

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def load_item_types(self) -> Dict[str, Optional[str]]:
        """Load the persisted item type cache."""
        stored = self.storage.get(STORAGE_ITEM_TYPES) or {}
        self.item_types = {str(k): v for k, v in stored.items()}
        return self.item_types

    def set_item_types(self, item_types: Dict[Any, Optional[str]]):
        """Replace the item type cache and persist it."""
        self.item_types = {str(k): v for k, v in item_types.items()}
        self.storage.set(STORAGE_ITEM_TYPES, self.item_types)

    def item_type(self, item_id: Any) -> Optional[str]:
        return self.item_types.get(str(item_id))

    def cached_price(self, item_id: Any) -> Optional[PriceInfo]:
        """
        Get a live cache entry.

        Returns:
            The entry if it is younger than the TTL, else None (expired
            entries are dropped)
        """
        key = str(item_id)
        entry = self.entries.get(key)
        if entry is None:
            return None
        if self._now_ms() - entry.timestamp >= self.ttl * 1000:
            del self.entries[key]
            return None
        return entry

    async def fetch_market_price(self, item_id: Any) -> PriceInfo:
        """
        Resolve the market price of an item.

        Never raises: failures are logged and reported as price 0 with an
        unknown type.

        Args:
            item_id: Torn item id

        Returns:
            PriceInfo; only tracked items with in-band listings carry a
            non-zero price and a timestamp
        """
        if not self.api_key:
            logger.warning("No API key available")
            return PriceInfo(price=0, type=None)

        cached = self.cached_price(item_id)
        if cached is not None:
            return cached

        known_type = self.item_type(item_id)
        if known_type and not is_tracked_type(known_type):
            logger.debug(f"Skipping non-target item type: {known_type} for item {item_id}")
            return PriceInfo(price=0, type=known_type)

        try:
            await self.rate_limiter.wait_for_next_call(TORN_CHANNEL)
            data = await self.torn.get_item_market(item_id, self.api_key)
            validate_torn_market_response(data, item_id)

            market = data["itemmarket"]
            item_type = market["item"].get("type") or None
            self.item_types[str(item_id)] = item_type
            self.storage.set(STORAGE_ITEM_TYPES, self.item_types)

            if not is_tracked_type(item_type):
                logger.info(f"Skipping item {item_id} of type {item_type}")
                return PriceInfo(price=0, type=item_type)

            price = compute_market_price(market["item"].get("average_price"), market["listings"])
            if price == 0:
                logger.warning(f"No valid listings found for item {item_id}")
                return PriceInfo(price=0, type=item_type)

            result = PriceInfo(price=price, type=item_type, timestamp=self._now_ms())
            self.entries[str(item_id)] = result
            return result
        except Exception as e:
            logger.error(f"Error fetching market price for item {item_id}: {e}")
            return PriceInfo(price=0, type=None)

    async def fetch_all_item_types(self) -> Dict[str, Optional[str]]:
        """
        Fetch the type of every Torn item in a single call.

        Returns:
            Map of item id to type, or an empty map on failure
        """
        if not self.api_key:
            logger.warning("No API key available for fetching all item types")
            return {}

        try:
            await self.rate_limiter.wait_for_next_call(TORN_CHANNEL)
            data = await self.torn.get_items(self.api_key)
            validate_torn_items_response(data)
        except Exception as e:
            logger.error(f"Failed to fetch all item types: {e}")
            return {}

        item_types = {
            str(item_id): item.get("type")
            for item_id, item in data["items"].items()
            if isinstance(item, dict)
        }
        logger.info(f"Fetched {len(item_types)} item types from Torn API")
        return item_types

    async def prefetch_tracked_prices(self) -> int:
        """
        Warm the cache for every item of a tracked type.

        Returns:
            Number of items looked up
        """
        if not self.api_key:
            logger.warning("No API key available for fetching market prices")
            return 0

        item_ids = [item_id for item_id, item_type in self.item_types.items() if item_type in TRACKED_TYPES]
        for item_id in item_ids:
            await self.fetch_market_price(item_id)
        logger.info(f"Initial market prices fetched and cached ({len(item_ids)} items)")
        return len(item_ids)
