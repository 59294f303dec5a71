"""
Structural validation of YATA and Torn API responses.
"""

import json
import logging
import math
from typing import Any, Union

from tornstock.constants import COUNTRY_CODES
from tornstock.errors import UpstreamValidationError

logger = logging.getLogger(__name__)

Number = Union[int, float]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_valid_stock_data(data: Any) -> bool:
    """True if `data` looks like a YATA export: a `stocks` dict and a numeric `timestamp`."""
    return (
        isinstance(data, dict)
        and isinstance(data.get("stocks"), dict)
        and _is_number(data.get("timestamp"))
        and bool(data.get("timestamp"))
    )


def is_valid_market_data(data: Any) -> bool:
    """True if `data` carries an `itemmarket` object."""
    return isinstance(data, dict) and isinstance(data.get("itemmarket"), dict)


def sanitize_number(value: Any, default: Number = 0) -> Number:
    """
    Coerce a value to a number.

    Args:
        value: Anything (number, numeric string, None, ...)
        default: Returned when the value is not numeric

    Returns:
        The numeric value, or `default` when coercion fails
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if _is_number(value):
        return value if isinstance(value, int) or math.isfinite(value) else default

    text = str(value).strip()
    # int() and float() also accept "1_000" and "inf"
    if "_" in text:
        return default
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return default
    return number if math.isfinite(number) else default


def validate_yata_response(data: Any) -> bool:
    """
    Validate a YATA travel export.

    Args:
        data: Parsed JSON body

    Returns:
        True when the payload is well formed

    Raises:
        UpstreamValidationError: On the first structural problem found
    """
    if not isinstance(data, dict):
        raise UpstreamValidationError("Invalid YATA API response format")

    stocks = data.get("stocks")
    if not isinstance(stocks, dict):
        raise UpstreamValidationError("Missing or invalid stocks data in YATA response")

    timestamp = data.get("timestamp")
    if not timestamp or not _is_number(timestamp):
        raise UpstreamValidationError("Missing or invalid timestamp in YATA response")

    for country, country_data in stocks.items():
        if country not in COUNTRY_CODES:
            logger.warning(f"Unknown country code: {country}")

        if not isinstance(country_data, dict):
            raise UpstreamValidationError(f"Invalid stock data format for country: {country}")

        update = country_data.get("update")
        if not update or not _is_number(update):
            raise UpstreamValidationError(f"Missing or invalid update timestamp for country: {country}")

        items = country_data.get("stocks")
        if not isinstance(items, list):
            raise UpstreamValidationError(f"Invalid stock data format for country: {country}")

        for item in items:
            if (
                not isinstance(item, dict)
                or not item.get("id")
                or not item.get("name")
                or item.get("quantity") is None
                or item.get("cost") is None
            ):
                raise UpstreamValidationError(
                    f"Invalid item data in country {country}: {json.dumps(item, default=str)}"
                )

    return True


def validate_torn_market_response(data: Any, item_id: Any) -> bool:
    """
    Validate a Torn v2 item market response.

    Args:
        data: Parsed JSON body
        item_id: Item the response belongs to (used in messages)

    Returns:
        True when the payload is well formed

    Raises:
        UpstreamValidationError: On an error envelope or a malformed payload
    """
    if not isinstance(data, dict):
        raise UpstreamValidationError(f"Invalid Torn API response for item {item_id}")

    if data.get("error"):
        error = data["error"]
        message = error.get("error") if isinstance(error, dict) else error
        raise UpstreamValidationError(f"Torn API error: {message}")

    market = data.get("itemmarket")
    if not isinstance(market, dict):
        raise UpstreamValidationError(f"Missing or invalid itemmarket data for item {item_id}")

    item = market.get("item")
    listings = market.get("listings")
    if not isinstance(item, dict) or not item.get("type") or not isinstance(listings, list):
        raise UpstreamValidationError(f"Invalid market data structure for item {item_id}")

    return True


def validate_torn_items_response(data: Any) -> bool:
    """
    Validate the bulk `torn/?selections=items` response.

    Raises:
        UpstreamValidationError: On an error envelope or a missing `items` map
    """
    if not isinstance(data, dict):
        raise UpstreamValidationError("Invalid Torn items response")

    if data.get("error"):
        error = data["error"]
        message = error.get("error") if isinstance(error, dict) else error
        raise UpstreamValidationError(f"Torn API error: {message}")

    if not isinstance(data.get("items"), dict):
        raise UpstreamValidationError("Missing or invalid items data in Torn response")

    return True
