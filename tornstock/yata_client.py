"""
YATA travel export API client.
"""

import logging
from typing import Dict, Any

from tornstock.constants import (
    YATA_RATE_LIMIT,
    YATA_SERVER_ERROR,
    YATA_TORN_API_ERROR,
    YATA_USER_ERROR,
)
from tornstock.errors import RateLimitError, UpstreamError
from tornstock.http_client import JsonApiClient

logger = logging.getLogger(__name__)

YATA_EXPORT_URL = "https://yata.yt/api/v1/travel/export/"

_ERROR_LABELS = {
    YATA_SERVER_ERROR: "YATA server error",
    YATA_USER_ERROR: "YATA user error",
    YATA_RATE_LIMIT: "YATA rate limit",
    YATA_TORN_API_ERROR: "YATA received error from Torn API",
}


class YataClient(JsonApiClient):
    """Client for the YATA foreign stock export."""

    async def get_travel_export(self) -> Dict[str, Any]:
        """
        Fetch the current foreign stock export.

        Returns:
            Parsed export `{timestamp, stocks: {country: {update, stocks: [...]}}}`

        Raises:
            RateLimitError: YATA error code 3 or HTTP 429
            UpstreamError: Any other error envelope or non-2xx status
            TransportError: Network failure or unreadable body
        """
        status, data = await self._get_json(YATA_EXPORT_URL)

        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict):
            code = error.get("code")
            message = error.get("error") or "unknown error"
            logger.debug(f"{_ERROR_LABELS.get(code, 'YATA error')} ({code}): {message}")
            if code == YATA_RATE_LIMIT:
                raise RateLimitError(message, code=code, status_code=status)
            raise UpstreamError(message, code=code, status_code=status)

        if status == 429:
            raise RateLimitError("Rate limit exceeded", status_code=status)

        if status >= 400:
            raise UpstreamError(f"YATA API HTTP error! status: {status}", status_code=status)

        return data
