"""Interface for summary sources.

Defines the contract for performing a single request for a random summary
and classifying what came back.
"""

import abc
import asyncio

from ..models.common import FetchOutcome


class SummarySource(abc.ABC):
    """Abstract Base Class for fetching one summary snippet."""

    @abc.abstractmethod
    async def fetch(self, stop_event: asyncio.Event) -> FetchOutcome:
        """Performs exactly one request and classifies its result.

        Implementations must not retry. If `stop_event` is set while the
        request is in flight the request is abandoned and a CANCELLED outcome
        is returned.

        Args:
            stop_event: The run-wide cancellation signal.

        Returns:
            The classified outcome of the request.
        """
        pass
