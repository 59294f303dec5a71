"""
Data models for stock tracking.
"""

from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field


class ItemMetadata(BaseModel):
    """Static per-item data for one country, loaded from the YATA feed."""
    country: str
    id: int
    name: str
    cost: float = 0
    flight_time: float = 0


class PriceInfo(BaseModel):
    """Market price lookup result."""
    price: int = 0
    type: Optional[str] = None
    # Epoch milliseconds; only set for freshly fetched, cacheable prices
    timestamp: Optional[int] = None


class RestockPrediction(BaseModel):
    """Quantity range observed in an item's history."""
    min_quantity: float = Field(alias="minQuantity")
    max_quantity: float = Field(alias="maxQuantity")
    near_min: bool = Field(alias="nearMin")
    avg_quantity: float = Field(alias="avgQuantity")

    class Config:
        populate_by_name = True


class StockSnapshot(BaseModel):
    """One persisted quantity observation."""
    country: str
    item_id: int
    quantity: float
    timestamp: int
    created_at: int = 0
    trend: Optional[float] = None
    restock: Optional[Dict[str, Any]] = None
    country_name: Optional[str] = None
    kind: str = "stock"

    class Config:
        from_attributes = True


class StockEntry(ItemMetadata):
    """One row of the aggregated result for a country."""
    quantity: float
    market_price: int = 0
    profit_per_minute: float = 0
    timestamp: int
    type: str


class HistoryQuery(BaseModel):
    """Parameters of a `get-historical-data` request."""
    country: str
    item_id: int = Field(alias="itemId")
    start_time: int = Field(alias="startTime")
    end_time: int = Field(alias="endTime")

    class Config:
        populate_by_name = True


class ManualRefreshRequest(BaseModel):
    """Body of a `manual-refresh` request."""
    countries: List[str] = Field(default_factory=list)


class ApiKeyRequest(BaseModel):
    """Body of an API key update."""
    key: str


class CountryFilterRequest(BaseModel):
    """Countries to show in the stock table; empty shows all."""
    countries: List[str] = Field(default_factory=list)
