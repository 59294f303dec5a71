"""
Minimum-spacing rate limiter for upstream API calls.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional

from tornstock.constants import TORN_CHANNEL, YATA_CHANNEL

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Enforces a minimum delay between calls on independent channels.

    Each channel remembers only its last call time; a caller sleeps for
    whatever is left of the channel's delay and then stamps a new call.
    """

    def __init__(
        self,
        min_delays: Optional[Dict[str, float]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize rate limiter.

        Args:
            min_delays: Minimum spacing in seconds per channel
            clock: Monotonic clock returning seconds
            sleep: Coroutine function used to wait
        """
        if min_delays is None:
            min_delays = {TORN_CHANNEL: 1.1, YATA_CHANNEL: 30.0}
        self.min_delays = dict(min_delays)
        self._clock = clock
        self._sleep = sleep
        self._last_call: Dict[str, Optional[float]] = {channel: None for channel in self.min_delays}
        self._locks: Dict[str, asyncio.Lock] = {}

    def remaining(self, channel: str) -> float:
        """Seconds left before the next call on `channel` is allowed."""
        min_delay = self.min_delays[channel]
        last_call = self._last_call[channel]
        if last_call is None:
            return 0.0
        return max(0.0, min_delay - (self._clock() - last_call))

    async def wait_for_next_call(self, channel: str = TORN_CHANNEL) -> None:
        """
        Wait until a call on `channel` is allowed and record it.

        Args:
            channel: Channel name, one of the configured delays

        Raises:
            KeyError: If the channel is unknown
        """
        if channel not in self.min_delays:
            raise KeyError(f"Unknown rate limit channel: {channel}")

        lock = self._locks.setdefault(channel, asyncio.Lock())
        async with lock:
            wait = self.remaining(channel)
            if wait > 0:
                logger.debug(f"Rate limiting {channel}: waiting {wait:.2f}s")
                await self._sleep(wait)
            self._last_call[channel] = self._clock()
