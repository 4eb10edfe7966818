"""Defines common Value Objects used across the retrieval pipeline.

These objects represent fetched snippets, the terminal outcome of a fetch
attempt, and the already-validated run configuration handed to the core.
"""

import enum
from dataclasses import dataclass
from typing import NewType, Optional

# === Core Value Objects ===

FetchResult = NewType("FetchResult", bytes)   # Trimmed summary text, UTF-8 encoded
SummaryURL = NewType("SummaryURL", str)       # Fully formatted random-summary endpoint
UserAgent = NewType("UserAgent", str)         # Contact info sent in the User-Agent header
ByteCount = NewType("ByteCount", int)         # Number of bytes written to the output sink


class OutcomeKind(enum.Enum):
    """Terminal state of one fetch attempt."""
    SUCCESS = "success"
    RETRYABLE_ERROR = "retryable_error"
    FATAL_ERROR = "fatal_error"
    CANCELLED = "cancelled"


class ErrorKind(enum.Enum):
    """Error taxonomy used when reporting failed attempts."""
    THROTTLED = "throttled"   # Remote rate limit (HTTP 429)
    TRANSIENT = "transient"   # Network timeout
    FATAL = "fatal"           # Unexpected status, content type or body
    CANCELLED = "cancelled"   # Stop event fired

# Kinds that are expected while the pipeline runs and are only shown in verbose mode.
BENIGN_ERROR_KINDS = frozenset({ErrorKind.THROTTLED, ErrorKind.TRANSIENT, ErrorKind.CANCELLED})


@dataclass(frozen=True)
class FetchOutcome:
    """The result of a single fetch, or of a whole attempt once retries are done.

    Exactly one of `text` (for SUCCESS) or `reason` (for everything else) is set.
    """
    kind: OutcomeKind
    text: Optional[FetchResult] = None
    reason: Optional[str] = None
    timed_out: bool = False

    @classmethod
    def success(cls, text: bytes) -> "FetchOutcome":
        return cls(kind=OutcomeKind.SUCCESS, text=FetchResult(text))

    @classmethod
    def throttled(cls, reason: str = "too many requests") -> "FetchOutcome":
        return cls(kind=OutcomeKind.RETRYABLE_ERROR, reason=reason)

    @classmethod
    def fatal(cls, reason: str) -> "FetchOutcome":
        return cls(kind=OutcomeKind.FATAL_ERROR, reason=reason)

    @classmethod
    def cancelled(cls, reason: str = "context canceled", timed_out: bool = False) -> "FetchOutcome":
        return cls(kind=OutcomeKind.CANCELLED, reason=reason, timed_out=timed_out)

    @property
    def is_success(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @property
    def is_retryable(self) -> bool:
        return self.kind is OutcomeKind.RETRYABLE_ERROR

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        """Maps the outcome onto the error taxonomy, None for successes."""
        if self.kind is OutcomeKind.SUCCESS:
            return None
        if self.kind is OutcomeKind.RETRYABLE_ERROR:
            return ErrorKind.THROTTLED
        if self.kind is OutcomeKind.FATAL_ERROR:
            return ErrorKind.FATAL
        if self.timed_out:
            return ErrorKind.TRANSIENT
        return ErrorKind.CANCELLED

    @property
    def is_benign(self) -> bool:
        return self.error_kind in BENIGN_ERROR_KINDS

    def __str__(self) -> str:
        if self.is_success:
            return f"success ({len(self.text or b'')} bytes)"
        return f"{self.error_kind.value}: {self.reason}"


# --- Structured Data ---

@dataclass(frozen=True)
class RunConfig:
    """Validated settings for one run of the retrieval pipeline."""
    summary_url: SummaryURL
    user_agent: UserAgent
    rate_limit: float
    target_length: int = 0          # 0 means unbounded
    verbose: bool = False
    request_timeout: float = 5.0
    max_in_flight: Optional[int] = None


@dataclass(frozen=True)
class RunSummary:
    """What a finished run produced."""
    bytes_written: ByteCount
    snippets_written: int
    attempts_started: int
    target_reached: bool
    output_closed: bool = False     # the reader of the output went away
