"""
Pure domain layer.

This package contains the rent ledger's value objects and pure domain
logic with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- System time
- I/O

All domain objects are immutable and deterministic.
"""

from rent_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from rent_kernel.domain.months import MonthKey, month_series, months_between
from rent_kernel.domain.payments import (
    Allocation,
    Payment,
    PaymentMethod,
    decode_allocation,
    encode_allocation,
)
from rent_kernel.domain.rent_history import (
    RentHistoryEntry,
    RentHistoryTimeline,
    RentSource,
    append_rent_history,
    parse_rent_history,
    rent_by_month,
    rent_for_month,
    serialize_rent_history,
)
from rent_kernel.domain.terms import TenantTerms
from rent_kernel.domain.values import (
    MONEY_DECIMAL_PLACES,
    ZERO,
    coerce_date,
    round_money,
    to_decimal,
    to_money,
)

__all__ = [
    # Clock
    "Clock",
    "SystemClock",
    "DeterministicClock",
    # Months
    "MonthKey",
    "month_series",
    "months_between",
    # Payments
    "Allocation",
    "Payment",
    "PaymentMethod",
    "decode_allocation",
    "encode_allocation",
    # Rent history
    "RentHistoryEntry",
    "RentHistoryTimeline",
    "RentSource",
    "append_rent_history",
    "parse_rent_history",
    "rent_by_month",
    "rent_for_month",
    "serialize_rent_history",
    # Terms
    "TenantTerms",
    # Values
    "MONEY_DECIMAL_PLACES",
    "ZERO",
    "coerce_date",
    "round_money",
    "to_decimal",
    "to_money",
]
