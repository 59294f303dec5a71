"""
Stock history storage.

Snapshots are keyed by (timestamp, country, item_id) and kept indefinitely.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, List, Optional, Dict, Any

from sqlalchemy.exc import SQLAlchemyError

from tornstock.constants import MARKET_COUNTRY
from tornstock.database import Database
from tornstock.db_models import StockHistory
from tornstock.errors import PersistenceError
from tornstock.models import StockSnapshot
from tornstock.validator import sanitize_number

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_DELAY_SECONDS = 1.0


class HistoryStore:
    """Append/update log of quantity snapshots."""

    def __init__(
        self,
        db: Database,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        retry_delay: float = RETRY_DELAY_SECONDS,
    ):
        """
        Initialize history store.

        Args:
            db: Database holding the `stock_history` table
            sleep: Coroutine function used between retries
            retry_delay: Base backoff; attempt N waits N * retry_delay seconds
        """
        self.db = db
        self._sleep = sleep
        self.retry_delay = retry_delay

    def open(self):
        """Create the table and its indexes if needed."""
        self.db.init_db()

    def _upsert(self, data: Dict[str, Any]) -> bool:
        """Insert or replace one row; returns True if a row was replaced."""
        with self.db.session() as session:
            key = {"timestamp": data["timestamp"], "country": data["country"], "item_id": data["item_id"]}
            existing = session.get(StockHistory, key)
            if existing:
                for field, value in data.items():
                    setattr(existing, field, value)
                return True
            session.add(StockHistory(**data))
            return False

    async def save_snapshot(
        self,
        country: str,
        item_id: Any,
        quantity: Any,
        timestamp: Any,
        trend: Optional[float] = None,
        restock: Optional[Dict[str, Any]] = None,
        country_name: Optional[str] = None,
        kind: str = "stock",
    ):
        """
        Save a snapshot, replacing any existing row with the same key.

        Args:
            country: Country code
            item_id: Item id
            quantity: Observed quantity (or price for market snapshots)
            timestamp: Feed timestamp in epoch seconds
            trend: Trend percentage derived from history
            restock: Restock prediction as a dict
            country_name: Display name of the country
            kind: "stock" or "market_price"

        Raises:
            ValueError: If a required field is missing
            PersistenceError: If the write still fails after retries
        """
        if not country or not item_id or quantity is None or not timestamp:
            raise ValueError("Invalid snapshot data")

        data = {
            "country": country,
            "item_id": int(sanitize_number(item_id)),
            "quantity": sanitize_number(quantity),
            "timestamp": int(sanitize_number(timestamp)),
            "created_at": int(time.time() * 1000),
            "trend": trend,
            "restock": restock,
            "country_name": country_name,
            "kind": kind,
        }

        attempt = 0
        while True:
            try:
                replaced = self._upsert(data)
                break
            except SQLAlchemyError as e:
                if attempt >= MAX_RETRIES:
                    logger.error(f"Failed to save stock snapshot after retries: {e}")
                    raise PersistenceError(f"Failed to save snapshot for {country}:{item_id}") from e
                attempt += 1
                logger.warning(f"Retrying save_snapshot (attempt {attempt}/{MAX_RETRIES})")
                await self._sleep(self.retry_delay * attempt)

        if replaced:
            logger.debug(f"Updated existing snapshot for {country}:{item_id} at {data['timestamp']}")
        else:
            logger.debug(f"Saved snapshot for {country}:{item_id}")

    def query_range(self, country: str, item_id: Any, start: int, end: int) -> List[StockSnapshot]:
        """
        Get snapshots of one item in one country within [start, end].

        Returns:
            Snapshots ordered by ascending timestamp
        """
        with self.db.session() as session:
            rows = (
                session.query(StockHistory)
                .filter(
                    StockHistory.country == country,
                    StockHistory.item_id == int(item_id),
                    StockHistory.timestamp >= start,
                    StockHistory.timestamp <= end,
                )
                .order_by(StockHistory.timestamp.asc())
                .all()
            )
            return [StockSnapshot.model_validate(row) for row in rows]

    def query_latest(self, country: str, item_id: Any, now: Optional[float] = None) -> Optional[StockSnapshot]:
        """
        Get the most recent snapshot at or before `now`.

        Returns:
            The snapshot, or None if there is none
        """
        if now is None:
            now = time.time()
        with self.db.session() as session:
            row = (
                session.query(StockHistory)
                .filter(
                    StockHistory.country == country,
                    StockHistory.item_id == int(item_id),
                    StockHistory.timestamp <= now,
                )
                .order_by(StockHistory.timestamp.desc())
                .first()
            )
            return StockSnapshot.model_validate(row) if row else None

    async def save_market_price(self, item_id: Any, price: Any, timestamp: Any):
        """Persist a market price as a snapshot under the MARKET pseudo-country."""
        await self.save_snapshot(MARKET_COUNTRY, item_id, price, timestamp, kind="market_price")

    def latest_market_price(self, item_id: Any) -> Optional[int]:
        """Most recent persisted market price for an item, if any."""
        snapshot = self.query_latest(MARKET_COUNTRY, item_id)
        if snapshot is None:
            return None
        return int(snapshot.quantity)

    def count(self) -> int:
        """Number of stored snapshots."""
        with self.db.session() as session:
            return session.query(StockHistory).count()
