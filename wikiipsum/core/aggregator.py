"""Aggregator: the single consumer of every attempt's outcome.

Writes successful snippets to the output sink, keeps the running byte count,
reports errors, and decides when the run is done.
"""

import asyncio
import logging
from typing import BinaryIO, Optional

from wikiipsum.domain.interfaces.user_interface import DiagnosticSink
from wikiipsum.domain.models.common import ByteCount, FetchOutcome
from wikiipsum.infrastructure.resilience.cancellation import Stopped, until_stopped

logger = logging.getLogger(__name__)

SEPARATOR = b"\n"


class Aggregator:
    """Owns all output state; nothing else mutates it."""

    def __init__(
        self,
        outcomes: "asyncio.Queue[FetchOutcome]",
        sink: BinaryIO,
        ui: Optional[DiagnosticSink] = None,
        target_length: int = 0,
        verbose: bool = False,
    ):
        """Initializes the Aggregator.

        Args:
            outcomes: Queue fed by every running attempt.
            sink: Binary stream receiving the generated text.
            ui: Diagnostic sink for error reports.
            target_length: Stop once this many bytes were written; 0 means never.
            verbose: Also report expected errors (throttling, cancellation, timeouts).
        """
        if target_length < 0:
            raise ValueError("target_length must not be negative.")
        self.outcomes = outcomes
        self.sink = sink
        self.ui = ui
        self.target_length = target_length
        self.verbose = verbose
        self.bytes_written = ByteCount(0)
        self.snippets_written = 0
        self.errors_seen = 0
        self.done = False
        self.target_reached = False
        self.output_closed = False

    async def run(self, stop_event: asyncio.Event) -> ByteCount:
        """Consumes outcomes until the target is reached or a stop is requested.

        Sets `stop_event` on the way out so the rest of the pipeline unwinds.

        Returns:
            Total bytes written to the sink.
        """
        try:
            while not self.done:
                try:
                    outcome = await until_stopped(self.outcomes.get(), stop_event)
                except Stopped:
                    logger.info("Stop requested; aggregator finishing.")
                    self.done = True
                    break
                self.handle(outcome)
        finally:
            stop_event.set()
        return self.bytes_written

    def handle(self, outcome: FetchOutcome) -> None:
        """Applies one outcome to the output state."""
        if self.done:
            logger.debug(f"Discarding outcome after completion: {outcome}")
            return
        if outcome.is_success:
            self._write(outcome.text or b"")
        else:
            self._report(outcome)

    def _write(self, text: bytes) -> None:
        # One write per snippet so concurrent results never interleave.
        data = text + SEPARATOR
        try:
            self.sink.write(data)
            self.sink.flush()
        except OSError as e:
            # Reader went away (e.g. `| head`); nothing more can be delivered.
            logger.info(f"Output closed, finishing: {e}")
            self.output_closed = True
            self.done = True
            return
        self.bytes_written = ByteCount(self.bytes_written + len(data))
        self.snippets_written += 1

        if self.target_length > 0 and self.bytes_written >= self.target_length:
            logger.info(f"Target length reached: {self.bytes_written}/{self.target_length} bytes.")
            self.target_reached = True
            self.done = True

    def should_report(self, outcome: FetchOutcome) -> bool:
        """Unexpected errors are always shown; expected ones only when verbose."""
        return self.verbose or not outcome.is_benign

    def _report(self, outcome: FetchOutcome) -> None:
        self.errors_seen += 1
        if outcome.is_benign:
            logger.debug(f"Attempt ended: {outcome}")
        else:
            logger.warning(f"Attempt failed: {outcome}")
        if self.ui is not None and self.should_report(outcome):
            self.ui.show_error(str(outcome.reason))
