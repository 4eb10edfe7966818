"""Client for the Wikipedia REST API random page summary endpoint.

Implements the `SummarySource` interface using aiohttp. One call to
`fetch` is exactly one GET request; retrying is left to the caller.
See https://en.wikipedia.org/api/rest_v1/.
"""

import asyncio
import json
import logging
from typing import Optional

import aiohttp

from wikiipsum.domain.interfaces.summary_source import SummarySource
from wikiipsum.domain.models.common import FetchOutcome, SummaryURL, UserAgent
from wikiipsum.infrastructure.resilience.cancellation import Stopped, until_stopped

logger = logging.getLogger(__name__)

SUMMARY_URL_TEMPLATE = "https://{lang}.wikipedia.org/api/rest_v1/page/random/summary"
ACCEPT_HEADER = "application/problem+json"
EXPECTED_CONTENT_TYPE = "application/json"
DEFAULT_REQUEST_TIMEOUT_S = 5.0


def parse_media_type(content_type: str) -> str:
    """Returns the lower-cased media type of a Content-Type header value.

    Raises:
        ValueError: If the header carries no media type.
    """
    media_type = content_type.split(";", 1)[0].strip().lower()
    if not media_type or "/" not in media_type:
        raise ValueError(f"no media type in {content_type!r}")
    return media_type


def classify_response(status: int, content_type: str, body: bytes) -> FetchOutcome:
    """Classifies a completed HTTP response.

    Pure function of its inputs: the same status, content type and body
    always give the same outcome.
    """
    if status == 429:
        return FetchOutcome.throttled()
    if status != 200:
        return FetchOutcome.fatal(f"response status {status}")

    try:
        media_type = parse_media_type(content_type)
    except ValueError as e:
        return FetchOutcome.fatal(f"response content type: {e}")
    if media_type != EXPECTED_CONTENT_TYPE:
        return FetchOutcome.fatal(f"response content type {media_type!r}")

    try:
        payload = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        return FetchOutcome.fatal(f"decode response body: {e}")
    if not isinstance(payload, dict):
        return FetchOutcome.fatal(f"decode response body: expected object, got {type(payload).__name__}")

    extract = payload.get("extract", "")
    if not isinstance(extract, str):
        return FetchOutcome.fatal(f"decode response body: 'extract' is {type(extract).__name__}, not a string")

    return FetchOutcome.success(extract.strip().encode("utf-8"))


class WikipediaSummaryClient(SummarySource):
    """Fetches random page summaries over a shared aiohttp session."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        url: SummaryURL,
        user_agent: UserAgent,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT_S,
    ):
        """Initializes the client.

        Args:
            session: Open aiohttp session; the caller owns its lifetime.
            url: Fully formatted summary endpoint, see SUMMARY_URL_TEMPLATE.
            user_agent: Contact info for the User-Agent header.
            request_timeout: Per-request timeout in seconds, independent of
                the run's stop event.
        """
        if not user_agent:
            raise ValueError("User agent not provided.")
        self._session = session
        self.url = url
        self.user_agent = user_agent
        self._timeout = aiohttp.ClientTimeout(total=request_timeout)
        self._headers = {"Accept": ACCEPT_HEADER, "User-Agent": user_agent}
        logger.info(f"WikipediaSummaryClient initialized for {url}")

    async def _request(self) -> FetchOutcome:
        async with self._session.get(self.url, headers=self._headers, timeout=self._timeout) as resp:
            body = await resp.read()
            content_type: Optional[str] = resp.headers.get("Content-Type")
            outcome = classify_response(resp.status, content_type or "", body)
        if not outcome.is_success:
            logger.debug(f"GET {self.url} -> {resp.status}: {outcome}")
        return outcome

    async def fetch(self, stop_event: asyncio.Event) -> FetchOutcome:
        try:
            return await until_stopped(self._request(), stop_event)
        except Stopped:
            return FetchOutcome.cancelled()
        except asyncio.TimeoutError:
            return FetchOutcome.cancelled(f"GET {self.url}: request timed out", timed_out=True)
        except aiohttp.ClientError as e:
            return FetchOutcome.fatal(f"GET {self.url}: {type(e).__name__}: {e}")
