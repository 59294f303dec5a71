"""
Trend, restock and profit calculations over stock history.

All functions are pure; history is a sequence of snapshots ordered by
ascending timestamp (epoch seconds).
"""

import time
from typing import Optional, Sequence

from tornstock.models import RestockPrediction, StockSnapshot
from tornstock.validator import sanitize_number

# Latest quantity within this fraction of the observed range counts as "near min"
NEAR_MIN_FRACTION = 0.2


def calculate_trend(
    history: Sequence[StockSnapshot],
    window_hours: float = 24,
    now: Optional[float] = None,
) -> float:
    """
    Average percentage change between consecutive snapshots.

    Args:
        history: Snapshots ordered by timestamp
        window_hours: Only snapshots within this trailing window are used
        now: Reference time in epoch seconds (defaults to the current time)

    Returns:
        Mean of the step-wise percentage changes, or 0 with fewer than
        two usable snapshots. Steps starting from a zero quantity are skipped.
    """
    if not history or len(history) < 2:
        return 0

    if now is None:
        now = time.time()
    cutoff = now - window_hours * 3600
    relevant = [s for s in history if s.timestamp >= cutoff]

    if len(relevant) < 2:
        return 0

    changes = []
    for prev, curr in zip(relevant, relevant[1:]):
        if prev.quantity == 0:
            continue
        changes.append((curr.quantity - prev.quantity) / prev.quantity * 100)

    if not changes:
        return 0
    return sum(changes) / len(changes)


def predict_restock(history: Sequence[StockSnapshot]) -> Optional[RestockPrediction]:
    """
    Summarise the observed quantity range and whether stock is near its low.

    Returns:
        RestockPrediction, or None with fewer than two snapshots
    """
    if not history or len(history) < 2:
        return None

    quantities = [s.quantity for s in history]
    min_quantity = min(quantities)
    max_quantity = max(quantities)
    latest = quantities[-1]

    spread = max_quantity - min_quantity
    near_min = spread > 0 and (latest - min_quantity) / spread < NEAR_MIN_FRACTION

    return RestockPrediction(
        min_quantity=min_quantity,
        max_quantity=max_quantity,
        near_min=near_min,
        avg_quantity=sum(quantities) / len(quantities),
    )


def profit_per_minute(cost, market, flight_time) -> float:
    """
    Profit per minute of one-way flight time.

    Args:
        cost: Foreign purchase cost
        market: Home market price
        flight_time: One-way flight time in minutes

    Returns:
        (market - cost) / flight_time, or exactly 0 when flight_time <= 0
    """
    cost = sanitize_number(cost)
    market = sanitize_number(market)
    flight_time = sanitize_number(flight_time)

    if flight_time <= 0:
        return 0
    return (market - cost) / flight_time
