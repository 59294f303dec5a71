"""
Shared async JSON-over-HTTP plumbing for the upstream clients.
"""

from typing import Optional, Dict, Any, Tuple

import httpx

from tornstock.errors import TransportError

_HEADERS = {
    "accept": "application/json",
    "user-agent": "tornstock/0.1 (+https://yata.yt)",
}


class JsonApiClient:
    """Thin wrapper around httpx.AsyncClient that returns decoded JSON."""

    def __init__(self, timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize client.

        Args:
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport, headers=_HEADERS)

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Tuple[int, Any]:
        """
        GET a URL and decode the JSON body.

        Args:
            url: Endpoint URL
            params: Query parameters

        Returns:
            (HTTP status code, decoded body)

        Raises:
            TransportError: If the request fails or the body is not JSON
        """
        try:
            response = await self.client.get(url, params=params)
        except httpx.RequestError as e:
            raise TransportError(f"Request error: {str(e)}")

        try:
            data = response.json()
        except ValueError:
            raise TransportError(f"Invalid JSON from {url} (status {response.status_code})")

        return response.status_code, data
