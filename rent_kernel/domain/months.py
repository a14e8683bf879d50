"""
Months -- calendar-month keys and the obligation month sequence.

Responsibility:
    Defines ``MonthKey`` (the ``YYYY-MM`` unit every rent obligation and
    allocation is keyed by) and ``month_series``, which lists the months an
    obligation spans with optional lookahead.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O, no clock access.

Invariants enforced:
    - MonthKey ordering is chronological and equals the lexicographic order
      of its ``YYYY-MM`` rendering (years are constrained to 4 digits).
    - ``month_series`` is deterministic: same inputs, same tuple.

Failure modes:
    - InvalidMonthKeyError for unparseable tokens or out-of-range fields.
    - MissingFieldError when the move-in date is absent.
    - ValidationError for a negative lookahead.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date

from rent_kernel.exceptions import (
    InvalidMonthKeyError,
    MissingFieldError,
    ValidationError,
)

_MONTH_KEY_RE = re.compile(r"^(\d{4})-(\d{2})$")


@dataclass(frozen=True, slots=True, order=True)
class MonthKey:
    """
    A calendar month.

    Contract:
        Immutable and hashable; safe as a dict key in allocation maps.
    Guarantees:
        - 1000 <= year <= 9999 and 1 <= month <= 12.
        - ``str(key)`` is ``YYYY-MM``; comparing keys and comparing their
          strings always agree.
    """

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1000 <= self.year <= 9999 or not 1 <= self.month <= 12:
            raise InvalidMonthKeyError(f"{self.year}-{self.month}")

    @classmethod
    def from_date(cls, value: date) -> MonthKey:
        """Month containing ``value``."""
        return cls(value.year, value.month)

    @classmethod
    def parse(cls, token: str) -> MonthKey:
        """Parse a ``YYYY-MM`` token."""
        match = _MONTH_KEY_RE.match(token.strip()) if isinstance(token, str) else None
        if match is None:
            raise InvalidMonthKeyError(token)
        return cls(int(match.group(1)), int(match.group(2)))

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    def shift(self, months: int) -> MonthKey:
        """Month ``months`` whole months after (or before, if negative) this one."""
        index = self.year * 12 + (self.month - 1) + months
        return MonthKey(index // 12, index % 12 + 1)

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


def months_between(start: MonthKey, end: MonthKey) -> tuple[MonthKey, ...]:
    """Every month from ``start`` to ``end`` inclusive; empty if start > end."""
    months: list[MonthKey] = []
    cursor = start
    while cursor <= end:
        months.append(cursor)
        cursor = cursor.shift(1)
    return tuple(months)


def month_series(
    move_in_date: date | None,
    through_date: date,
    extra_months: int = 0,
) -> tuple[MonthKey, ...]:
    """
    Ordered months an obligation spans.

    Emits every month from the move-in month through the ``through_date``
    month inclusive, then ``extra_months`` further consecutive months
    (used to preview allocation ahead of the payment date).

    Preconditions:
        - ``move_in_date`` is not None.
        - ``extra_months >= 0``.
    Postconditions:
        - Strictly ascending, no duplicates.
        - Empty when the move-in month is after the through month and no
          lookahead is requested.  Lookahead months never precede the
          move-in month.

    Examples:
        month_series(date(2024, 1, 1), date(2024, 3, 15))
        -> (2024-01, 2024-02, 2024-03)
        month_series(date(2024, 1, 1), date(2024, 2, 1), extra_months=2)
        -> (2024-01, 2024-02, 2024-03, 2024-04)
    """
    if move_in_date is None:
        raise MissingFieldError(["move_in_date"])
    if extra_months < 0:
        raise ValidationError(f"extra_months must be >= 0, got {extra_months}")

    start = MonthKey.from_date(move_in_date)
    end = MonthKey.from_date(through_date).shift(extra_months)
    return months_between(start, end)
