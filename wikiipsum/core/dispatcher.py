"""Dispatcher: the long-lived loop that starts fetch attempts.

Every token from the RateGate starts one concurrent attempt (a fetch wrapped
by the BackoffRetrier). Pacing hints published by throttled attempts make
the loop pause before its next acquisition, so upstream throttling slows
the whole dispatch rate, not just the attempt that was rejected.
"""

import asyncio
import logging
from typing import Optional, Set

from wikiipsum.domain.events.pacing_events import PacingHint
from wikiipsum.domain.interfaces.summary_source import SummarySource
from wikiipsum.domain.interfaces.user_interface import DiagnosticSink
from wikiipsum.domain.models.common import FetchOutcome
from wikiipsum.infrastructure.resilience.backoff import BackoffRetrier
from wikiipsum.infrastructure.resilience.cancellation import Stopped, sleep_or_stop, until_stopped
from wikiipsum.infrastructure.resilience.rate_limiter import RateGate

logger = logging.getLogger(__name__)


class Dispatcher:
    """Starts attempts at the rate the gate allows and feeds their outcomes to a queue."""

    def __init__(
        self,
        rate_gate: RateGate,
        source: SummarySource,
        outcomes: "asyncio.Queue[FetchOutcome]",
        retrier: Optional[BackoffRetrier] = None,
        ui: Optional[DiagnosticSink] = None,
        verbose: bool = False,
        max_in_flight: Optional[int] = None,
    ):
        """Initializes the Dispatcher.

        Args:
            rate_gate: Gate paced at the configured request rate.
            source: Performs single fetches.
            outcomes: Queue consumed by the Aggregator.
            retrier: Wraps each fetch with backoff. Its `on_backoff` is routed
                through this dispatcher's pacing-hint queue; a callback it
                already had is still called for every hint.
            ui: Diagnostic sink for progress markers and throttling notices
                (verbose only).
            verbose: Emit a progress marker per fetch and report every throttle.
            max_in_flight: Optional cap on concurrently running attempts.
        """
        if max_in_flight is not None and max_in_flight <= 0:
            raise ValueError("max_in_flight must be positive when set.")

        self.rate_gate = rate_gate
        self.source = source
        self.outcomes = outcomes
        self.retrier = retrier or BackoffRetrier()
        self._forward_backoff = self.retrier.on_backoff
        self.retrier.on_backoff = self.report_pacing_hint
        self.ui = ui
        self.verbose = verbose
        self.pacing_hints: "asyncio.Queue[PacingHint]" = asyncio.Queue()
        self._slots = asyncio.Semaphore(max_in_flight) if max_in_flight else None
        self._in_flight: Set[asyncio.Task] = set()
        self.attempts_started = 0

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def report_pacing_hint(self, hint: PacingHint) -> None:
        """Receives a backoff delay from any in-flight attempt."""
        self.pacing_hints.put_nowait(hint)
        if self.verbose and self.ui is not None:
            self.ui.show_error(hint.reason)
        if self._forward_backoff is not None:
            self._forward_backoff(hint)

    def _drain_pacing_hints(self) -> float:
        """Empties the pacing-hint queue without blocking.

        Returns:
            The longest delay reported since the last drain, 0 if none.
        """
        delay = 0.0
        while True:
            try:
                hint = self.pacing_hints.get_nowait()
            except asyncio.QueueEmpty:
                return delay
            delay = max(delay, hint.delay_seconds)

    async def run(self, stop_event: asyncio.Event) -> int:
        """Dispatches attempts until the stop event is set.

        Returns:
            The number of attempts started.
        """
        logger.info("Dispatcher started.")
        while True:
            pause = self._drain_pacing_hints()
            if pause > 0:
                logger.debug(f"Pausing dispatch for {pause:.2f}s after upstream throttling.")
                if not await sleep_or_stop(pause, stop_event):
                    break

            if not await self.rate_gate.acquire(stop_event):
                break

            if self._slots is not None:
                try:
                    await until_stopped(self._slots.acquire(), stop_event)
                except Stopped:
                    break

            task = asyncio.create_task(self._attempt(stop_event))
            self._in_flight.add(task)
            task.add_done_callback(self._on_attempt_done)
            self.attempts_started += 1

        logger.info(f"Dispatcher stopped after {self.attempts_started} attempts.")
        return self.attempts_started

    def _on_attempt_done(self, task: asyncio.Task) -> None:
        self._in_flight.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Attempt crashed: {task.exception()!r}", exc_info=task.exception())

    async def _fetch_once(self, stop_event: asyncio.Event) -> FetchOutcome:
        if self.verbose and self.ui is not None:
            self.ui.show_progress()
        return await self.source.fetch(stop_event)

    async def _attempt(self, stop_event: asyncio.Event) -> None:
        try:
            outcome = await self.retrier.run(self._fetch_once, stop_event)
            if stop_event.is_set():
                logger.debug(f"Discarding outcome after stop: {outcome}")
                return
            await until_stopped(self.outcomes.put(outcome), stop_event)
        except Stopped:
            logger.debug("Attempt finished after stop; outcome discarded.")
        finally:
            if self._slots is not None:
                self._slots.release()

    async def wind_down(self) -> None:
        """Cancels every in-flight attempt and waits for them to finish."""
        tasks = list(self._in_flight)
        if not tasks:
            return
        logger.debug(f"Cancelling {len(tasks)} in-flight attempts.")
        for task in tasks:
            task.cancel()
        # Failures are already logged by _on_attempt_done.
        await asyncio.gather(*tasks, return_exceptions=True)
