"""
Minimum-spacing rate limiter for outbound Google requests.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """Serialises callers so consecutive acquisitions are at least
    ``min_interval`` seconds apart.

    One instance is shared by every estimator a service creates; tests
    pass their own ``clock`` and ``sleep`` to avoid real waiting.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_request_time = None

    @classmethod
    def per_second(cls, requests_per_second: float, **kwargs) -> "RateLimiter":
        return cls(1.0 / requests_per_second, **kwargs)

    async def acquire(self) -> None:
        """Wait until the next request slot is free, then claim it."""
        async with self._lock:
            if self._last_request_time is not None:
                wait = self._last_request_time + self.min_interval - self._clock()
                if wait > 0:
                    logger.debug(f"Rate limit: waiting {wait:.2f}s")
                    await self._sleep(wait)
            self._last_request_time = self._clock()

    def reset(self) -> None:
        self._last_request_time = None
