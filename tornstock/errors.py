"""
Error types raised by the collector.
"""

from typing import Optional


class TornStockError(Exception):
    """Base class for collector errors."""
    pass


class UpstreamError(TornStockError):
    """Upstream API returned an error envelope or a non-2xx status."""
    def __init__(self, message: str, code: Optional[int] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class RateLimitError(UpstreamError):
    """Upstream asked us to slow down."""
    pass


class TransportError(TornStockError):
    """Request could not be completed or the body was unreadable."""
    pass


class UpstreamValidationError(TornStockError):
    """Upstream response does not have the expected shape."""
    pass


class PersistenceError(TornStockError):
    """Embedded store operation failed after retries."""
    pass


class ConfigurationError(TornStockError):
    """Required configuration (e.g. the Torn API key) is missing."""
    pass
