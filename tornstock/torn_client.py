"""
Torn API client.
"""

from typing import Dict, Any

from tornstock.errors import RateLimitError, UpstreamError
from tornstock.http_client import JsonApiClient

TORN_API_BASE = "https://api.torn.com"
_ITEM_MARKET = f"{TORN_API_BASE}/v2/market/{{item_id}}/itemmarket"
_TORN = f"{TORN_API_BASE}/torn/"
_USER = f"{TORN_API_BASE}/user/"


class TornClient(JsonApiClient):
    """
    Torn API client.

    Torn reports most failures as `{"error": {"code", "error"}}` with HTTP 200,
    so only transport-level status errors are raised here; envelopes are left
    to the validators.
    """

    async def _fetch(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        status, data = await self._get_json(url, params)

        if status == 429:
            raise RateLimitError("Rate limit exceeded", status_code=status)

        if status >= 400:
            raise UpstreamError(f"HTTP error! status: {status}", status_code=status)

        return data

    async def get_item_market(self, item_id: Any, api_key: str) -> Dict[str, Any]:
        """
        Get the item market listings for one item.

        Args:
            item_id: Torn item id
            api_key: Torn API key

        Returns:
            `{"itemmarket": {"item": {...}, "listings": [...]}}` or an error envelope
        """
        url = _ITEM_MARKET.format(item_id=item_id)
        return await self._fetch(url, {"offset": 0, "key": api_key})

    async def get_items(self, api_key: str) -> Dict[str, Any]:
        """
        Get metadata for every Torn item.

        Returns:
            `{"items": {id: {"type": ..., ...}}}` or an error envelope
        """
        return await self._fetch(_TORN, {"selections": "items", "key": api_key})

    async def validate_key(self, api_key: str) -> bool:
        """
        Check an API key against the basic user endpoint.

        Returns:
            True if Torn returned a `player_id` for the key
        """
        data = await self._fetch(_USER, {"selections": "basic", "key": api_key})
        return isinstance(data, dict) and bool(data.get("player_id"))
