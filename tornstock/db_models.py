"""
Database models for tornstock.
"""

from sqlalchemy import Column, String, Integer, BigInteger, Float, Text, JSON, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class StockHistory(Base):
    """
    Quantity snapshot of one item in one country at one feed timestamp.

    The composite primary key allows a single row per
    (timestamp, country, item_id); writes for an existing key update it.
    """
    __tablename__ = "stock_history"

    timestamp = Column(Integer, primary_key=True)
    country = Column(String, primary_key=True)
    item_id = Column(Integer, primary_key=True)
    quantity = Column(Float, nullable=False)
    created_at = Column(BigInteger, nullable=False)
    trend = Column(Float)
    restock = Column(JSON)
    country_name = Column(String)
    kind = Column(String, nullable=False, default="stock")

    __table_args__ = (
        Index("by_item", "country", "item_id"),
        Index("by_timestamp", "timestamp"),
        Index("by_country", "country"),
    )


class LocalStorageEntry(Base):
    """
    Key/value settings and results shared with the control surface.

    Values are stored JSON-encoded.
    """
    __tablename__ = "local_storage"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(BigInteger, nullable=False)
