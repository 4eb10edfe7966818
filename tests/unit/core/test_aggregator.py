import asyncio

import pytest

from wikiipsum.core.aggregator import Aggregator
from wikiipsum.domain.models.common import FetchOutcome


def _snippet(total_bytes: int) -> FetchOutcome:
    """A success whose written size (text plus newline) is `total_bytes`."""
    return FetchOutcome.success(b"x" * (total_bytes - 1))


async def _feed(queue: asyncio.Queue, outcomes, stop_after: float = None, stop_event: asyncio.Event = None):
    for outcome in outcomes:
        await queue.put(outcome)
    if stop_after is not None:
        await asyncio.sleep(stop_after)
        stop_event.set()


def test_unbounded_run_writes_everything_until_stopped(sink, mock_ui):
    """With no target, successes never end the run on their own."""

    async def scenario():
        queue = asyncio.Queue(maxsize=1)
        stop_event = asyncio.Event()
        aggregator = Aggregator(queue, sink, ui=mock_ui, target_length=0)
        outcomes = [_snippet(50), _snippet(50), _snippet(50)]
        feeder = asyncio.create_task(_feed(queue, outcomes, stop_after=0.05, stop_event=stop_event))
        written = await aggregator.run(stop_event)
        await feeder
        return aggregator, written

    aggregator, written = asyncio.run(scenario())

    assert written == 150
    assert aggregator.snippets_written == 3
    assert aggregator.target_reached is False
    assert sink.getvalue() == (b"x" * 49 + b"\n") * 3


def test_target_length_ends_run(sink, mock_ui):
    """60 + 45 bytes meets a 100 byte target; later outcomes are not written."""

    async def scenario():
        queue = asyncio.Queue()
        stop_event = asyncio.Event()
        for outcome in (_snippet(60), _snippet(45), _snippet(30)):
            queue.put_nowait(outcome)
        aggregator = Aggregator(queue, sink, ui=mock_ui, target_length=100)
        written = await aggregator.run(stop_event)
        return aggregator, written, stop_event

    aggregator, written, stop_event = asyncio.run(scenario())

    assert written == 105
    assert aggregator.target_reached is True
    assert aggregator.snippets_written == 2
    assert stop_event.is_set()
    assert len(sink.getvalue()) == 105


def test_outcomes_after_done_are_discarded(sink):
    aggregator = Aggregator(asyncio.Queue(), sink, target_length=10)
    aggregator.handle(_snippet(10))
    assert aggregator.done

    aggregator.handle(_snippet(10))
    aggregator.handle(FetchOutcome.fatal("response status 500"))

    assert aggregator.bytes_written == 10
    assert aggregator.errors_seen == 0


def test_bytes_written_is_monotonic(sink):
    aggregator = Aggregator(asyncio.Queue(), sink)
    seen = []
    for outcome in (_snippet(5), FetchOutcome.throttled(), _snippet(1), FetchOutcome.cancelled()):
        aggregator.handle(outcome)
        seen.append(aggregator.bytes_written)
    assert seen == sorted(seen)
    assert seen[-1] == 6


def test_fatal_error_reported_without_verbose(sink, mock_ui):
    aggregator = Aggregator(asyncio.Queue(), sink, ui=mock_ui, verbose=False)

    aggregator.handle(FetchOutcome.fatal("response status 503"))

    mock_ui.show_error.assert_called_once_with("response status 503")
    assert sink.getvalue() == b""


@pytest.mark.parametrize("outcome", [
    FetchOutcome.throttled(),
    FetchOutcome.cancelled(),
    FetchOutcome.cancelled("request timed out", timed_out=True),
])
def test_benign_errors_only_reported_when_verbose(sink, mock_ui, outcome):
    quiet = Aggregator(asyncio.Queue(), sink, ui=mock_ui, verbose=False)
    quiet.handle(outcome)
    mock_ui.show_error.assert_not_called()

    loud = Aggregator(asyncio.Queue(), sink, ui=mock_ui, verbose=True)
    loud.handle(outcome)
    mock_ui.show_error.assert_called_once_with(outcome.reason)


def test_negative_target_rejected(sink):
    with pytest.raises(ValueError):
        Aggregator(asyncio.Queue(), sink, target_length=-1)


class ClosedPipe:
    """Binary sink whose reader has gone away."""

    def write(self, data: bytes) -> int:
        raise BrokenPipeError(32, "Broken pipe")

    def flush(self) -> None:
        pass


def test_closed_output_finishes_the_run(mock_ui):
    async def scenario():
        queue = asyncio.Queue()
        stop_event = asyncio.Event()
        queue.put_nowait(_snippet(20))
        queue.put_nowait(_snippet(20))
        aggregator = Aggregator(queue, ClosedPipe(), ui=mock_ui, target_length=0)
        written = await aggregator.run(stop_event)
        return aggregator, written, stop_event, queue

    aggregator, written, stop_event, queue = asyncio.run(scenario())

    assert written == 0
    assert aggregator.done
    assert aggregator.output_closed is True
    assert aggregator.target_reached is False
    assert stop_event.is_set()
    assert queue.qsize() == 1  # nothing consumed after the pipe closed
    mock_ui.show_error.assert_not_called()
