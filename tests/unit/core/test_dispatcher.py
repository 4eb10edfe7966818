import asyncio

import pytest

from wikiipsum.core.dispatcher import Dispatcher
from wikiipsum.domain.events.pacing_events import PacingHint
from wikiipsum.domain.models.common import FetchOutcome
from wikiipsum.infrastructure.resilience.backoff import BackoffPolicy, BackoffRetrier
from wikiipsum.infrastructure.resilience.rate_limiter import RateGate

FAST = BackoffPolicy(initial_interval=0.001, max_interval=0.01, max_elapsed_time=5.0)


def _dispatcher(source, outcomes, **kwargs) -> Dispatcher:
    kwargs.setdefault("retrier", BackoffRetrier(policy=FAST))
    return Dispatcher(
        rate_gate=kwargs.pop("rate_gate", RateGate(rate=200.0)),
        source=source,
        outcomes=outcomes,
        **kwargs,
    )


async def _run_for(dispatcher: Dispatcher, seconds: float) -> int:
    stop_event = asyncio.Event()
    asyncio.get_running_loop().call_later(seconds, stop_event.set)
    started = await asyncio.wait_for(dispatcher.run(stop_event), timeout=5)
    await dispatcher.wind_down()
    return started


def test_outcomes_reach_the_queue(scripted_source):
    source = scripted_source(default=FetchOutcome.success(b"snippet"))

    async def scenario():
        outcomes = asyncio.Queue()
        dispatcher = _dispatcher(source, outcomes)
        started = await _run_for(dispatcher, 0.05)
        return started, outcomes

    started, outcomes = asyncio.run(scenario())

    assert started >= 1
    assert outcomes.qsize() >= 1
    assert outcomes.get_nowait().text == b"snippet"


def test_dispatch_rate_follows_gate(scripted_source):
    """At 20 req/s for ~0.25s: the initial token plus about five refills."""
    source = scripted_source()

    async def scenario():
        dispatcher = _dispatcher(source, asyncio.Queue(), rate_gate=RateGate(rate=20.0))
        return await _run_for(dispatcher, 0.25)

    started = asyncio.run(scenario())
    assert 2 <= started <= 7


def test_loop_exits_when_already_stopped(scripted_source):
    source = scripted_source()

    async def scenario():
        stop_event = asyncio.Event()
        stop_event.set()
        dispatcher = _dispatcher(source, asyncio.Queue())
        return await dispatcher.run(stop_event)

    assert asyncio.run(scenario()) == 0
    assert source.calls == 0


def test_throttled_attempt_reports_pacing_hint(scripted_source):
    source = scripted_source([FetchOutcome.throttled()], default=FetchOutcome.success(b"ok"))
    dispatcher = _dispatcher(source, asyncio.Queue())

    async def scenario():
        return await dispatcher.retrier.run(source.fetch, asyncio.Event())

    outcome = asyncio.run(scenario())

    assert outcome.is_success
    assert dispatcher.pacing_hints.qsize() == 1


def test_drain_returns_longest_pending_hint(scripted_source):
    dispatcher = _dispatcher(scripted_source(), asyncio.Queue())
    for delay in (0.2, 1.5, 0.7):
        dispatcher.report_pacing_hint(PacingHint(delay_seconds=delay, retry_number=1))

    assert dispatcher._drain_pacing_hints() == 1.5
    assert dispatcher._drain_pacing_hints() == 0.0


def test_pending_hint_pauses_dispatch(scripted_source):
    """A reported backoff delays the next acquisition for the whole loop."""
    source = scripted_source()

    async def scenario():
        dispatcher = _dispatcher(source, asyncio.Queue())
        dispatcher.report_pacing_hint(PacingHint(delay_seconds=10.0, retry_number=1))
        return await _run_for(dispatcher, 0.05)

    assert asyncio.run(scenario()) == 0
    assert source.calls == 0


def test_verbose_marks_progress_per_fetch(scripted_source, mock_ui):
    source = scripted_source([FetchOutcome.throttled()], default=FetchOutcome.success(b"ok"))

    async def scenario():
        dispatcher = _dispatcher(source, asyncio.Queue(), ui=mock_ui, verbose=True)
        return await dispatcher.retrier.run(dispatcher._fetch_once, asyncio.Event())

    asyncio.run(scenario())
    assert mock_ui.show_progress.call_count == 2


def test_max_in_flight_caps_concurrency(scripted_source):
    source = scripted_source(delay=10.0)

    async def scenario():
        dispatcher = _dispatcher(source, asyncio.Queue(), max_in_flight=2)
        stop_event = asyncio.Event()
        run_task = asyncio.create_task(dispatcher.run(stop_event))
        await asyncio.sleep(0.1)
        in_flight = dispatcher.in_flight
        stop_event.set()
        started = await asyncio.wait_for(run_task, timeout=5)
        await dispatcher.wind_down()
        return in_flight, started, dispatcher.in_flight

    in_flight, started, remaining = asyncio.run(scenario())
    assert in_flight == 2
    assert started == 2
    assert remaining == 0


def test_invalid_max_in_flight_rejected(scripted_source):
    with pytest.raises(ValueError):
        _dispatcher(scripted_source(), asyncio.Queue(), max_in_flight=0)


def test_existing_backoff_callback_still_notified(scripted_source, mocker):
    source = scripted_source([FetchOutcome.throttled()], default=FetchOutcome.success(b"ok"))
    on_backoff = mocker.Mock()
    dispatcher = _dispatcher(source, asyncio.Queue(), retrier=BackoffRetrier(policy=FAST, on_backoff=on_backoff))

    asyncio.run(dispatcher.retrier.run(source.fetch, asyncio.Event()))

    on_backoff.assert_called_once()
    assert isinstance(on_backoff.call_args.args[0], PacingHint)
    assert dispatcher.pacing_hints.qsize() == 1


@pytest.mark.parametrize("verbose, shown", [(True, 1), (False, 0)])
def test_throttles_shown_only_when_verbose(scripted_source, mock_ui, verbose, shown):
    source = scripted_source([FetchOutcome.throttled()], default=FetchOutcome.success(b"ok"))
    dispatcher = _dispatcher(source, asyncio.Queue(), ui=mock_ui, verbose=verbose)

    asyncio.run(dispatcher.retrier.run(source.fetch, asyncio.Event()))

    assert mock_ui.show_error.call_count == shown
    if shown:
        mock_ui.show_error.assert_called_with("too many requests")
