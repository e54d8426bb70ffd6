"""
Clock -- injectable time source for the waybill kernel.

Services stamp reservations (``reserved_at``), consumption (``used_at``),
stock movements, audit entries and status changes from an injected Clock, so
tests can pin every timestamp.  SystemClock is the only place wall-clock time
is read.
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime


class Clock(ABC):
    """Source of timezone-aware "now"."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    Fixed clock for tests.

    ``now()`` always returns the pinned instant.
    """

    def __init__(self, pinned: datetime | None = None):
        self._pinned = pinned or datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def now(self) -> datetime:
        return self._pinned
