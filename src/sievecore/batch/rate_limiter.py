"""
Token bucket rate limiter for batch dispatch.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional

import structlog

from ..config.config import RateLimitConfig

logger = structlog.get_logger(__name__)


class TokenBucketRateLimiter:
    """
    Async token bucket.

    The bucket starts full with ``burst_size`` tokens and refills continuously
    at ``requests_per_second``. ``acquire`` waits until one token is available
    and consumes it. Waiters are served one at a time under a lock, so tokens
    are handed out in arrival order.
    """

    def __init__(
        self,
        requests_per_second: float,
        burst_size: int,
        clock: Optional[Callable[[], float]] = None,
    ):
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        if burst_size < 1:
            raise ValueError("burst_size must be at least 1")

        self.rate = requests_per_second
        self.capacity = float(burst_size)
        self._clock = clock or time.monotonic
        self._tokens = self.capacity
        self._last_refill = self._clock()
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    def _loop_lock(self) -> asyncio.Lock:
        """Lock for the running loop; a limiter may outlive the loop it first ran on."""
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    @classmethod
    def from_config(cls, config: RateLimitConfig) -> TokenBucketRateLimiter:
        return cls(config.requests_per_second, config.burst_size)

    @property
    def available_tokens(self) -> float:
        self._refill()
        return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
            self._last_refill = now

    def try_acquire(self) -> bool:
        """Take a token without waiting. Returns False when the bucket is empty."""
        self._refill()
        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return True
        return False

    async def acquire(self) -> float:
        """
        Wait for and consume one token.

        Returns:
            Total delay applied in seconds
        """
        waited = 0.0
        async with self._loop_lock():
            while True:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    break
                delay = (1.0 - self._tokens) / self.rate
                logger.debug("Rate limit reached, waiting", delay=round(delay, 4))
                await asyncio.sleep(delay)
                waited += delay
        return waited
