import logging
from typing import Optional

from rich.console import Console

from wikiipsum.domain.interfaces.user_interface import DiagnosticSink

logger = logging.getLogger(__name__)

PROGRESS_MARKER = "."


class ConsoleDisplay(DiagnosticSink):
    """Concrete implementation of DiagnosticSink using the rich library on stderr.

    Standard output is reserved for generated text, so every message this
    class prints goes to standard error.
    """

    def __init__(self, console: Optional[Console] = None):
        """Initializes the rich Console."""
        self._console = console or Console(stderr=True, highlight=False)
        self.progress_count = 0
        self._mid_line = False

    @property
    def console(self) -> Console:
        """Get the Rich console instance for direct operations."""
        return self._console

    def _end_progress_line(self) -> None:
        # Progress markers are printed without newlines; finish the line first.
        if self._mid_line:
            self._console.print()
            self._mid_line = False

    def show_progress(self) -> None:
        self.progress_count += 1
        self._console.print(PROGRESS_MARKER, end="", style="dim", markup=False)
        self._mid_line = True

    def show_info(self, message: str) -> None:
        self._end_progress_line()
        self._console.print(message, style="cyan", markup=False)

    def show_error(self, message: str) -> None:
        self._end_progress_line()
        logger.debug(f"Displaying error: {message}")
        self._console.print(message, style="bold red", markup=False)
