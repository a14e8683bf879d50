"""
Values -- money arithmetic and boundary coercion for the rent ledger.

Responsibility:
    Provides the single rounding rule used by every ledger computation and
    the coercion helpers that turn stored/requested values (strings, ints,
    legacy JSON floats, ISO dates) into ``Decimal`` and ``date``.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every other domain and engine module.

Invariants enforced:
    - Money is always ``Decimal`` quantized to cents (never float).
    - Rounding is round-half-away-from-zero (``ROUND_HALF_UP`` in the
      decimal module rounds ties away from zero for both signs) and is
      applied after every arithmetic step by the callers.

Failure modes:
    - InvalidAmountError when a value is not a finite number.
    - InvalidDateError when a date value cannot be parsed.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from rent_kernel.exceptions import InvalidAmountError, InvalidDateError

MONEY_DECIMAL_PLACES = 2
MONEY_QUANTUM = Decimal("0.01")
ZERO = Decimal("0.00")


def round_money(value: Decimal) -> Decimal:
    """
    Round a monetary value to cents, half away from zero.

    This is the ONLY sanctioned rounding function in the ledger.

    Examples:
        round_money(Decimal("10.005"))  -> Decimal("10.01")
        round_money(Decimal("-10.005")) -> Decimal("-10.01")
    """
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def to_decimal(value: Any) -> Decimal:
    """
    Convert a raw value to ``Decimal`` without rounding or finiteness checks.

    Floats go through ``str`` so that ``0.1`` becomes ``Decimal("0.1")``.
    Booleans are rejected even though they are ints.

    Raises:
        InvalidAmountError: If the value is not numeric.
    """
    if isinstance(value, bool):
        raise InvalidAmountError(value, "boolean is not an amount")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float, str)):
        try:
            return Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise InvalidAmountError(value, "not a number") from exc
    raise InvalidAmountError(value, f"unsupported type {type(value).__name__}")


def to_money(value: Any) -> Decimal:
    """
    Convert a raw value to a finite, cent-rounded money amount.

    Raises:
        InvalidAmountError: If the value is not a finite number.
    """
    amount = to_decimal(value)
    if not amount.is_finite():
        raise InvalidAmountError(value, "amount must be finite")
    return round_money(amount)


def coerce_date(value: Any, field: str = "date") -> date:
    """
    Coerce a ``date``, ``datetime`` or ISO-8601 string to a ``date``.

    Strings may carry a time component (``2024-03-15T10:00:00Z``); only the
    calendar date is kept, as the stored payment dates do.

    Raises:
        InvalidDateError: If the value is missing or unparseable.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and len(value.strip()) >= 10:
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError as exc:
            raise InvalidDateError(field, value) from exc
    raise InvalidDateError(field, value)
