"""Implementation of a rate limiter.

Controls how often new fetch attempts may be started so the configured
request rate is never exceeded. Uses a token bucket refilled continuously
from a monotonic clock.
"""

import asyncio
import logging
import math
import time
from typing import Callable

from wikiipsum.infrastructure.resilience.cancellation import sleep_or_stop

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1.0


class RateGate:
    """Token bucket gate pacing how often callers may proceed."""

    def __init__(
        self,
        rate: float,
        capacity: float = DEFAULT_CAPACITY,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initializes the rate gate.

        The bucket starts full, so the first acquisition never waits.

        Args:
            rate: Tokens added per second. Must be positive and finite;
                clamping to an upper bound is the caller's job.
            capacity: Maximum number of tokens the bucket holds.
            clock: Monotonic time source, in seconds.
        """
        if not (rate > 0 and math.isfinite(rate)) or not capacity > 0:
            raise ValueError("Rate must be positive and finite, capacity positive.")

        self.rate = rate
        self.capacity = capacity
        self._clock = clock
        self._tokens = capacity
        self._last_refill = clock()
        self._lock = asyncio.Lock()
        logger.info(f"RateGate initialized: {rate:g} tokens/s, capacity {capacity:g}")

    @property
    def tokens(self) -> float:
        """Current token count, refilled up to now."""
        self._refill()
        return self._tokens

    def _refill(self) -> None:
        """Adds the tokens accrued since the last refill, capped at capacity."""
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._last_refill = now

    def _try_take(self) -> float:
        """Takes a token if one is available.

        Returns:
            0 if a token was taken, otherwise the seconds until one will be.
        """
        self._refill()
        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return 0.0
        return (1.0 - self._tokens) / self.rate

    async def acquire(self, stop_event: asyncio.Event) -> bool:
        """Waits until a token is available or the stop event is set.

        Returns:
            True once a token has been taken, False if the stop event fired.
        """
        while not stop_event.is_set():
            async with self._lock:
                wait_time = self._try_take()
            if wait_time == 0.0:
                return True
            logger.debug(f"Rate gate empty. Waiting {wait_time:.3f} seconds.")
            if not await sleep_or_stop(wait_time, stop_event):
                break
        logger.debug("Rate gate acquisition cancelled.")
        return False
