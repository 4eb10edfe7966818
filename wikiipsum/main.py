"""Main entry point for the wikiipsum application.

Sets up the Typer CLI application, validates flags, performs dependency
injection (Composition Root) and runs the retrieval pipeline until the
requested amount of text was written or the user interrupts it.
"""

import asyncio
import logging
import os
import signal
import sys
from typing import Any, BinaryIO, Dict, Optional

import aiohttp
import typer
from typing_extensions import Annotated

from wikiipsum import __version__

# --- Core Layer ---
from wikiipsum.core.aggregator import Aggregator
from wikiipsum.core.coordinator import Coordinator
from wikiipsum.core.dispatcher import Dispatcher

# --- Domain Layer ---
from wikiipsum.domain.models.common import RunConfig, RunSummary, SummaryURL, UserAgent

# --- Infrastructure Layer ---
from wikiipsum.infrastructure.cli.display import ConsoleDisplay
from wikiipsum.infrastructure.config.settings import (
    build_summary_url,
    get_config,
    get_lang,
    get_max_rate,
    get_rate_limit,
    get_request_timeout,
    get_user_agent,
    load_configuration,
    resolve_rate_limit,
)
from wikiipsum.infrastructure.monitoring.logger_setup import resolve_log_level, setup_logging
from wikiipsum.infrastructure.resilience.backoff import BackoffRetrier
from wikiipsum.infrastructure.resilience.rate_limiter import RateGate
from wikiipsum.infrastructure.wikipedia.summary_client import WikipediaSummaryClient
from wikiipsum.utils.size_parser import parse_size

logger = logging.getLogger(__name__)

HELP_TEXT = """Lorem Ipsum generates text using content from Wikipedia and prints it to the standard output.

Example:

    wikiipsum --user-agent="admin@example.com" --lang="en" --length="500"
"""

# --- Dependency Injection (Manual) ---

def create_dependencies(
    config: RunConfig,
    session: aiohttp.ClientSession,
    ui: ConsoleDisplay,
    sink: BinaryIO,
) -> Dict[str, Any]:
    """Creates and wires up the pipeline for one run.

    This acts as the Composition Root.
    """
    dependencies: Dict[str, Any] = {}
    dependencies['source'] = WikipediaSummaryClient(
        session=session,
        url=config.summary_url,
        user_agent=config.user_agent,
        request_timeout=config.request_timeout,
    )
    dependencies['rate_gate'] = RateGate(rate=config.rate_limit)
    dependencies['outcomes'] = asyncio.Queue(maxsize=1)
    dependencies['dispatcher'] = Dispatcher(
        rate_gate=dependencies['rate_gate'],
        source=dependencies['source'],
        outcomes=dependencies['outcomes'],
        retrier=BackoffRetrier(),
        ui=ui,
        verbose=config.verbose,
        max_in_flight=config.max_in_flight,
    )
    dependencies['aggregator'] = Aggregator(
        outcomes=dependencies['outcomes'],
        sink=sink,
        ui=ui,
        target_length=config.target_length,
        verbose=config.verbose,
    )
    dependencies['coordinator'] = Coordinator(
        dispatcher=dependencies['dispatcher'],
        aggregator=dependencies['aggregator'],
    )
    logger.debug("Pipeline dependencies initialized.")
    return dependencies


def _install_signal_handlers(coordinator: Coordinator) -> None:
    """Routes SIGINT/SIGTERM to the coordinator's stop entry point."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, coordinator.stop)
        except (NotImplementedError, RuntimeError, ValueError):
            # Platforms without loop signal support (Windows) or non-main threads.
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(coordinator.stop))


async def generate(config: RunConfig, ui: ConsoleDisplay, sink: BinaryIO) -> RunSummary:
    """Runs the pipeline with a fresh HTTP session."""
    async with aiohttp.ClientSession() as session:
        dependencies = create_dependencies(config, session, ui, sink)
        coordinator: Coordinator = dependencies['coordinator']
        _install_signal_handlers(coordinator)
        return await coordinator.run()

# --- Typer App Definition ---
app = typer.Typer(
    name="wikiipsum",
    help=HELP_TEXT,
    add_completion=False,
)


def version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


def _fail(ui: ConsoleDisplay, message: str) -> None:
    ui.show_error(message)
    raise typer.Exit(code=1)


def _detach_stdout() -> None:
    """Points stdout at devnull so the interpreter's final flush cannot hit the closed pipe."""
    devnull = os.open(os.devnull, os.O_WRONLY)
    os.dup2(devnull, sys.stdout.fileno())
    os.close(devnull)


@app.command()
def main(
    user_agent: Annotated[Optional[str], typer.Option(
        "--user-agent",
        help="User agent header for API calls to Wikipedia. It should provide information how to contact you, e.g. admin@example.com",
    )] = None,
    lang: Annotated[Optional[str], typer.Option("--lang", help="Language code, e.g. 'en'")] = None,
    length: Annotated[Optional[str], typer.Option(
        "--length",
        help="Length of generated text, e.g. '500' for 500 bytes, '100 bytes', '100 Kb', '1.5 MB' etc. Unbounded if omitted.",
    )] = None,
    rate: Annotated[Optional[float], typer.Option("--rate", help="Request rate limit in req/s (at most 200)")] = None,
    max_in_flight: Annotated[int, typer.Option(
        "--max-in-flight", min=0, help="Maximum number of concurrent requests, 0 for no limit",
    )] = 0,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Verbose")] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version", callback=version_callback, is_eager=True, help="Print version",
    )] = None,
):
    """Generate filler text from random Wikipedia page summaries."""
    load_configuration()
    setup_logging(
        log_level=resolve_log_level(get_config('logging.level'), verbose=verbose),
        log_file=get_config('logging.file'),
    )
    ui = ConsoleDisplay()

    user_agent = user_agent or get_user_agent()
    if not user_agent:
        _fail(ui, "'--user-agent' is required")
    lang = lang or get_lang()
    if not lang:
        _fail(ui, "'--lang' is required")

    target_length = 0
    if length:
        try:
            target_length = parse_size(length)
        except ValueError as e:
            _fail(ui, f"'--length' is invalid: {e}")

    try:
        rate_limit = resolve_rate_limit(rate if rate is not None else get_rate_limit(), get_max_rate())
        request_timeout = get_request_timeout()
    except ValueError as e:
        _fail(ui, f"invalid configuration: {e}")
    if verbose:
        ui.show_info(f"Rate limit: {rate_limit:f}")

    config = RunConfig(
        summary_url=SummaryURL(build_summary_url(lang)),
        user_agent=UserAgent(user_agent),
        rate_limit=rate_limit,
        target_length=target_length,
        verbose=verbose,
        request_timeout=request_timeout,
        max_in_flight=max_in_flight or None,
    )
    logger.info(f"Starting run: {config}")

    summary = asyncio.run(generate(config, ui, sys.stdout.buffer))
    if summary.output_closed:
        _detach_stdout()
        return
    if verbose:
        ui.show_info(
            f"Wrote {summary.bytes_written} bytes from {summary.snippets_written} summaries "
            f"({summary.attempts_started} requests started)."
        )

# --- Main Execution Guard ---

def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    app()


if __name__ == "__main__":
    cli_entry_point()
