"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock so that the write path's notion of "today"
    (the current calendar month for edit eligibility and tenant status, the
    default payment date of a reversal, the record timestamp) is always
    supplied from outside, never read from the system inside domain or
    engine code.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock,
    which is the one sanctioned I/O boundary for time).

Audit relevance:
    Deterministic clocks make the edit window and every recorded timestamp
    reproducible in tests and replays.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone

from rent_kernel.domain.months import MonthKey


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        Services that need current time receive a Clock via constructor
        injection.  Engine code never calls ``datetime.now()`` or
        ``date.today()``.

    Guarantees:
        - ``now()`` returns a timezone-aware UTC ``datetime``.
        - ``today()`` and ``current_month()`` are derived from ``now()``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    def today(self) -> date:
        return self.now().date()

    def current_month(self) -> MonthKey:
        return MonthKey.from_date(self.today())


class SystemClock(Clock):
    """Production clock that returns actual system time (UTC)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()`` is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._advance_seconds = 0

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def advance(self, seconds: int = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._advance_seconds += seconds
