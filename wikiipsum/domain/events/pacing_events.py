"""Domain Events related to dispatch pacing.

A throttled attempt publishes a PacingHint so the dispatch loop can slow
down for everyone, not only for the attempt that was rejected.
"""

from dataclasses import dataclass, field
import time


@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass


@dataclass
class PacingHint(DomainEvent):
    """Event triggered when an attempt schedules a backoff after being throttled."""
    delay_seconds: float
    retry_number: int
    reason: str = "too many requests"
    timestamp: float = field(default_factory=time.time)
