"""Token-bucket request limiting.

Each upstream service gets its own ``TokenBucketLimiter`` instance built for the
run and passed to the client that talks to it.
"""

import asyncio
import logging
import time
from collections.abc import Callable

from common.config.settings import Settings

logger = logging.getLogger(__name__)

MIN_SLEEP_SECONDS = 0.1


class TokenBucketLimiter:
    """Asynchronous token bucket.

    The bucket holds up to ``capacity`` tokens and refills at
    ``capacity / window_seconds`` tokens per second. Refill is computed lazily
    when a caller acquires.

    The limiter is safe to share across tasks; waiters are served in lock order.

    Args:
        capacity: Maximum number of requests per window (and initial tokens).
        window_seconds: Window length over which ``capacity`` requests are allowed.
        min_sleep_seconds: Floor applied to every wait.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        *,
        capacity: int,
        window_seconds: float,
        min_sleep_seconds: float = MIN_SLEEP_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")

        self.capacity = int(capacity)
        self.window_seconds = float(window_seconds)
        self._min_sleep = float(min_sleep_seconds)
        self._clock = clock
        self._lock = asyncio.Lock()
        self._tokens = float(capacity)
        self._last_refill = clock()

    @property
    def refill_rate(self) -> float:
        """Tokens added per second."""
        return self.capacity / self.window_seconds

    @property
    def tokens(self) -> float:
        return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        added = (now - self._last_refill) * self.refill_rate
        if added > 0:
            self._tokens = min(float(self.capacity), self._tokens + added)
            self._last_refill = now

    async def acquire(self) -> float:
        """Wait until a token is available, then consume it.

        Returns:
            Total seconds spent sleeping.
        """
        slept = 0.0
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    return slept

                wait = max((1 - self._tokens) / self.refill_rate, self._min_sleep)
                logger.debug(f"Rate limit reached, waiting {wait:.2f}s for a token")
                await asyncio.sleep(wait)
                slept += wait


def trakt_limiter(settings: Settings) -> TokenBucketLimiter:
    """Limiter for the Trakt API (1000 requests / 5 minutes by default)."""
    return TokenBucketLimiter(
        capacity=settings.trakt_max_requests,
        window_seconds=settings.trakt_window_seconds,
    )


def letterboxd_limiter(settings: Settings) -> TokenBucketLimiter:
    """Limiter for Letterboxd (100 requests / minute by default)."""
    return TokenBucketLimiter(
        capacity=settings.letterboxd_max_requests,
        window_seconds=settings.letterboxd_window_seconds,
    )
