"""
Minimum-interval rate limiting for calls to the messaging gateway.
"""

import asyncio
import logging
import time
from functools import lru_cache
from typing import Awaitable, Callable, Optional

from app.config.settings import get_settings

logger = logging.getLogger(__name__)


class MinIntervalRateLimiter:
    """
    Keeps consecutive gateway calls at least ``min_interval`` seconds apart.
    
    Callers await ``wait()`` right before each external call. Concurrent
    callers are serialized by a lock, so one shared instance spaces the calls
    of every pass in the process.
    """
    
    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ) -> None:
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_call: Optional[float] = None
        self._lock = asyncio.Lock()
    
    async def wait(self) -> None:
        """Block until the next call is allowed, then claim the slot."""
        async with self._lock:
            if self._last_call is not None:
                remaining = self.min_interval - (self._clock() - self._last_call)
                if remaining > 0:
                    logger.debug(f"Rate limit: sleeping {remaining:.2f}s")
                    await self._sleep(remaining)
            self._last_call = self._clock()


@lru_cache()
def get_rate_limiter() -> MinIntervalRateLimiter:
    """Get the process-wide gateway rate limiter."""
    return MinIntervalRateLimiter(get_settings().min_call_interval_seconds)
