"""Helpers for racing blocking operations against the run-wide stop event.

Every component shares one `asyncio.Event`. Once it is set, waits started
through these helpers give up instead of blocking shutdown.
"""

import asyncio
import logging
from typing import Any, Awaitable

logger = logging.getLogger(__name__)


class Stopped(Exception):
    """Raised when the stop event fires before an awaited operation completes."""


async def until_stopped(aw: Awaitable[Any], stop_event: asyncio.Event) -> Any:
    """Awaits `aw` unless `stop_event` is set first.

    The wrapped operation is cancelled if the stop event wins the race, or if
    the caller itself is cancelled.

    Raises:
        Stopped: If the stop event was set before `aw` finished.
    """
    task = asyncio.ensure_future(aw)
    if stop_event.is_set():
        task.cancel()
        raise Stopped()

    stopper = asyncio.ensure_future(stop_event.wait())
    try:
        done, _ = await asyncio.wait({task, stopper}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        stopper.cancel()
        if not task.done():
            task.cancel()

    if task in done:
        return task.result()
    raise Stopped()


async def sleep_or_stop(delay: float, stop_event: asyncio.Event) -> bool:
    """Sleeps for `delay` seconds.

    Returns:
        True if the full delay elapsed, False if the stop event fired first.
    """
    if stop_event.is_set():
        return False
    if delay <= 0:
        return True
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return True
    return False
