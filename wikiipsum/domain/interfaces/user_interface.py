"""Interface for the diagnostic side of the user interface.

Generated text goes to the output sink; everything else a user may want to
see while the generator runs (progress, errors, run info) goes through this.
"""

import abc


class DiagnosticSink(abc.ABC):
    """Abstract Base Class for diagnostic output."""

    @abc.abstractmethod
    def show_progress(self) -> None:
        """Emits a single progress marker for a started request."""
        pass

    @abc.abstractmethod
    def show_info(self, message: str) -> None:
        """Displays an informational message."""
        pass

    @abc.abstractmethod
    def show_error(self, message: str) -> None:
        """Displays an error message."""
        pass
