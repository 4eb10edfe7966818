"""Coordinator: owns the run-wide stop event and the pipeline's lifetime.

Starts the Dispatcher and the Aggregator, waits until the Aggregator is
done, then unwinds the dispatch loop and every in-flight attempt.
"""

import asyncio
import logging

from wikiipsum.core.aggregator import Aggregator
from wikiipsum.core.dispatcher import Dispatcher
from wikiipsum.domain.models.common import RunSummary

logger = logging.getLogger(__name__)


class Coordinator:
    """Runs one generation session from start to graceful stop."""

    def __init__(self, dispatcher: Dispatcher, aggregator: Aggregator):
        self.dispatcher = dispatcher
        self.aggregator = aggregator
        self._stop_event = asyncio.Event()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Requests a graceful stop. Safe to call more than once, e.g. from a signal handler."""
        if not self._stop_event.is_set():
            logger.info("Stop requested.")
        self._stop_event.set()

    async def run(self) -> RunSummary:
        """Runs the pipeline until the target length is reached or stop() is called."""
        dispatch_task = asyncio.create_task(self.dispatcher.run(self._stop_event))
        # A dispatcher that dies must not leave the aggregator waiting forever.
        dispatch_task.add_done_callback(lambda _: self._stop_event.set())

        try:
            await self.aggregator.run(self._stop_event)
        finally:
            self._stop_event.set()
            try:
                attempts = await dispatch_task
            finally:
                await self.dispatcher.wind_down()

        summary = RunSummary(
            bytes_written=self.aggregator.bytes_written,
            snippets_written=self.aggregator.snippets_written,
            attempts_started=attempts,
            target_reached=self.aggregator.target_reached,
            output_closed=self.aggregator.output_closed,
        )
        logger.info(f"Run finished: {summary}")
        return summary
