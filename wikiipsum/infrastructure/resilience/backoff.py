"""Retries of throttled fetches with exponential backoff.

A fetch that comes back RETRYABLE_ERROR (HTTP 429) is retried after a
geometrically growing, jittered delay until it succeeds, fails for another
reason, or the elapsed-time budget runs out. Every scheduled delay is
published as a pacing hint so the dispatch loop slows down too.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from wikiipsum.domain.events.pacing_events import PacingHint
from wikiipsum.domain.models.common import FetchOutcome
from wikiipsum.infrastructure.resilience.cancellation import sleep_or_stop

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_INTERVAL_S = 0.5
DEFAULT_RANDOMIZATION_FACTOR = 0.5
DEFAULT_MULTIPLIER = 1.5
DEFAULT_MAX_INTERVAL_S = 60.0
DEFAULT_MAX_ELAPSED_S = 15 * 60.0

FetchCallable = Callable[[asyncio.Event], Awaitable[FetchOutcome]]


@dataclass(frozen=True)
class BackoffPolicy:
    """Parameters shared by every attempt's backoff state."""
    initial_interval: float = DEFAULT_INITIAL_INTERVAL_S
    randomization_factor: float = DEFAULT_RANDOMIZATION_FACTOR
    multiplier: float = DEFAULT_MULTIPLIER
    max_interval: float = DEFAULT_MAX_INTERVAL_S
    max_elapsed_time: float = DEFAULT_MAX_ELAPSED_S

    def __post_init__(self):
        if self.initial_interval <= 0 or self.max_interval <= 0:
            raise ValueError("Backoff intervals must be positive.")
        if self.multiplier < 1:
            raise ValueError("Backoff multiplier must be at least 1.")
        if not 0 <= self.randomization_factor < 1:
            raise ValueError("Randomization factor must be in [0, 1).")


class ExponentialBackoff:
    """Backoff state for a single attempt. Never shared between attempts."""

    def __init__(
        self,
        policy: BackoffPolicy,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ):
        self.policy = policy
        self._clock = clock
        self._rng = rng or random.Random()
        self.current_interval = policy.initial_interval
        self.retries = 0
        self.started_at = clock()

    @property
    def elapsed(self) -> float:
        return self._clock() - self.started_at

    def _randomize(self, interval: float) -> float:
        delta = self.policy.randomization_factor * interval
        return self._rng.uniform(interval - delta, interval + delta)

    def next_delay(self) -> Optional[float]:
        """Returns the next jittered delay, or None once the elapsed budget is spent."""
        delay = self._randomize(self.current_interval)
        if self.elapsed + delay > self.policy.max_elapsed_time:
            return None
        self.retries += 1
        self.current_interval = min(self.current_interval * self.policy.multiplier, self.policy.max_interval)
        return delay


class BackoffRetrier:
    """Runs one attempt: a fetch plus retries while it is being throttled."""

    def __init__(
        self,
        policy: Optional[BackoffPolicy] = None,
        on_backoff: Optional[Callable[[PacingHint], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ):
        """Initializes the BackoffRetrier.

        Args:
            policy: Backoff parameters; defaults start at 0.5s, grow x1.5 up
                to 60s per delay and give up after 15 minutes.
            on_backoff: Called with a PacingHint before every backoff sleep.
            clock: Monotonic time source used for the elapsed budget.
            rng: Random source for jitter.
        """
        self.policy = policy or BackoffPolicy()
        self.on_backoff = on_backoff
        self._clock = clock
        self._rng = rng

    async def run(self, fetch: FetchCallable, stop_event: asyncio.Event) -> FetchOutcome:
        """Calls `fetch` until it returns a terminal outcome.

        Returns:
            The SUCCESS, FATAL_ERROR or CANCELLED outcome of the last fetch,
            or the last RETRYABLE_ERROR once the elapsed budget is exhausted.
        """
        backoff = ExponentialBackoff(self.policy, clock=self._clock, rng=self._rng)
        while True:
            outcome = await fetch(stop_event)
            if not outcome.is_retryable:
                return outcome

            delay = backoff.next_delay()
            if delay is None:
                logger.info(
                    f"Giving up after {backoff.retries} retries "
                    f"({backoff.elapsed:.1f}s elapsed). Last error: {outcome.reason}"
                )
                return outcome

            logger.debug(f"Throttled ({outcome.reason}). Retry {backoff.retries} in {delay:.2f}s")
            if self.on_backoff is not None:
                self.on_backoff(PacingHint(delay_seconds=delay, retry_number=backoff.retries, reason=outcome.reason))

            if not await sleep_or_stop(delay, stop_event):
                return FetchOutcome.cancelled("context canceled during backoff")
