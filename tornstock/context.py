"""
Shared state of one collector process.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import httpx

from tornstock.config import Settings
from tornstock.constants import TORN_CHANNEL, YATA_CHANNEL
from tornstock.database import Database
from tornstock.errors import ConfigurationError
from tornstock.history_store import HistoryStore
from tornstock.local_storage import LocalStorage
from tornstock.metadata import MetadataStore
from tornstock.price_cache import PriceCache
from tornstock.rate_limiter import RateLimiter
from tornstock.torn_client import TornClient
from tornstock.yata_client import YataClient


@dataclass
class CollectorContext:
    """
    Everything a collector mutates: clients, caches, stores, rate limiter.

    Built once per process; tests build a fresh one each so no state leaks
    between them.
    """
    settings: Settings
    db: Database
    storage: LocalStorage
    history: HistoryStore
    rate_limiter: RateLimiter
    yata: YataClient
    torn: TornClient
    price_cache: PriceCache
    metadata: MetadataStore

    @classmethod
    def create(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> "CollectorContext":
        """
        Wire up all components from settings.

        Args:
            settings: Collector settings
            transport: Optional httpx transport shared by both clients
            sleep: Coroutine function used for every backoff and rate-limit wait
        """
        db = Database(settings.database_url)
        storage = LocalStorage(db)
        history = HistoryStore(db, sleep=sleep)
        history.open()

        rate_limiter = RateLimiter(
            {
                TORN_CHANNEL: settings.torn_min_delay_seconds,
                YATA_CHANNEL: settings.yata_min_delay_seconds,
            },
            sleep=sleep,
        )
        yata = YataClient(timeout=settings.http_timeout_seconds, transport=transport)
        torn = TornClient(timeout=settings.http_timeout_seconds, transport=transport)
        price_cache = PriceCache(
            torn,
            rate_limiter,
            storage,
            api_key=settings.torn_api_key,
            ttl=settings.price_cache_ttl_seconds,
        )
        metadata = MetadataStore(
            yata,
            rate_limiter,
            rate_limit_backoff=settings.yata_rate_limit_backoff_seconds,
            sleep=sleep,
        )
        return cls(
            settings=settings,
            db=db,
            storage=storage,
            history=history,
            rate_limiter=rate_limiter,
            yata=yata,
            torn=torn,
            price_cache=price_cache,
            metadata=metadata,
        )

    @property
    def api_key(self) -> Optional[str]:
        return self.price_cache.api_key

    @api_key.setter
    def api_key(self, value: Optional[str]):
        self.price_cache.api_key = value or None

    def require_api_key(self) -> str:
        """
        Returns:
            The configured Torn API key

        Raises:
            ConfigurationError: If no key is set
        """
        if not self.api_key:
            raise ConfigurationError("API key is missing")
        return self.api_key

    async def close(self):
        """Close HTTP clients and release database connections."""
        await self.yata.close()
        await self.torn.close()
        self.db.dispose()
