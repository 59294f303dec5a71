"""
Collector configuration read from environment variables.

Values can be supplied through a `.dev.env` file during development.
"""

import os
from typing import Optional, Mapping
from dotenv import load_dotenv
from pydantic import BaseModel


class Settings(BaseModel):
    """Runtime settings for the collector."""
    database_url: str = "sqlite:///tornstock.db"
    torn_api_key: Optional[str] = None
    poll_interval_seconds: float = 30.0
    price_cache_ttl_seconds: float = 300.0
    torn_min_delay_seconds: float = 1.1
    yata_min_delay_seconds: float = 30.0
    yata_rate_limit_backoff_seconds: float = 30.0
    prefetch_prices: bool = True
    http_timeout_seconds: float = 30.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            Settings with unset variables left at their defaults
        """
        if environ is None:
            if os.path.exists('.dev.env'):
                load_dotenv('.dev.env')
            environ = os.environ

        fields = {
            "database_url": "DATABASE_URL",
            "torn_api_key": "TORN_API_KEY",
            "poll_interval_seconds": "POLL_INTERVAL_SECONDS",
            "price_cache_ttl_seconds": "PRICE_CACHE_TTL_SECONDS",
            "torn_min_delay_seconds": "TORN_MIN_DELAY_SECONDS",
            "yata_min_delay_seconds": "YATA_MIN_DELAY_SECONDS",
            "yata_rate_limit_backoff_seconds": "YATA_RATE_LIMIT_BACKOFF_SECONDS",
            "prefetch_prices": "PREFETCH_PRICES",
            "http_timeout_seconds": "HTTP_TIMEOUT_SECONDS",
        }
        values = {
            field: environ[var]
            for field, var in fields.items()
            if environ.get(var) not in (None, "")
        }
        # pydantic coerces the strings ("30", "false", ...) to field types
        return cls(**values)
