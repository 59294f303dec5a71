"""
Static per-item metadata loaded from the YATA feed.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional, Any

from tornstock.constants import FLIGHT_TIMES, YATA_CHANNEL
from tornstock.errors import RateLimitError, UpstreamError, UpstreamValidationError
from tornstock.models import ItemMetadata
from tornstock.rate_limiter import RateLimiter
from tornstock.validator import is_valid_stock_data, sanitize_number
from tornstock.yata_client import YataClient

logger = logging.getLogger(__name__)


def metadata_key(country: str, item_id: Any) -> str:
    """Key of an item in the metadata map."""
    return f"{country}|{item_id}"


class MetadataStore:
    """
    Name, cost and flight time for every country/item pair in the feed.

    Reloaded explicitly (at initialization); cycles only read it.
    """

    def __init__(
        self,
        yata: YataClient,
        rate_limiter: RateLimiter,
        rate_limit_backoff: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.yata = yata
        self.rate_limiter = rate_limiter
        self.rate_limit_backoff = rate_limit_backoff
        self._sleep = sleep
        self.items: Dict[str, ItemMetadata] = {}

    def __len__(self) -> int:
        return len(self.items)

    def get(self, country: str, item_id: Any) -> Optional[ItemMetadata]:
        return self.items.get(metadata_key(country, item_id))

    async def load(self) -> Dict[str, ItemMetadata]:
        """
        Fetch the feed and rebuild the metadata map.

        A YATA rate-limit response is waited out and retried for as long as
        YATA keeps asking; any other failure is logged and re-raised.

        Returns:
            The new metadata map
        """
        while True:
            try:
                await self.rate_limiter.wait_for_next_call(YATA_CHANNEL)
                data = await self.yata.get_travel_export()
                break
            except RateLimitError:
                logger.warning(f"YATA API rate limit reached, retrying in {self.rate_limit_backoff:g}s")
                await self._sleep(self.rate_limit_backoff)
            except UpstreamError as e:
                logger.error(f"YATA API error ({e.code}): {e}")
                raise
            except Exception as e:
                logger.error(f"Failed to load static metadata: {e}")
                raise

        if not is_valid_stock_data(data):
            logger.error("Failed to load static metadata: invalid YATA API response format")
            raise UpstreamValidationError("Invalid YATA API response format")

        return self.update_from_feed(data)

    def update_from_feed(self, data: Dict[str, Any]) -> Dict[str, ItemMetadata]:
        """
        Rebuild the metadata map from an already fetched feed.

        Items without an id or a name are skipped.
        """
        items: Dict[str, ItemMetadata] = {}
        for country, country_data in data["stocks"].items():
            stocks = country_data.get("stocks") if isinstance(country_data, dict) else None
            for item in stocks or []:
                if not isinstance(item, dict) or not item.get("id") or not item.get("name"):
                    continue

                flight_time = FLIGHT_TIMES.get(country) or sanitize_number(item.get("flight_time"))
                if not flight_time:
                    logger.warning(f"Missing or invalid flight time for item {item['id']} in {country}")

                items[metadata_key(country, item["id"])] = ItemMetadata(
                    country=country,
                    id=item["id"],
                    name=item["name"],
                    cost=sanitize_number(item.get("cost")),
                    flight_time=flight_time,
                )

        self.items = items
        logger.info(f"Static metadata loaded successfully ({len(items)} items)")
        return items
