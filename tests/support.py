"""Shared builders for rent ledger tests."""

from datetime import date, datetime
from decimal import Decimal

from rent_kernel.domain.months import MonthKey
from rent_kernel.domain.payments import Payment
from rent_kernel.domain.rent_history import RentHistoryEntry, RentSource


def make_payment(
    payment_id: str,
    allocation: dict[str, str],
    payment_date: date = date(2024, 1, 15),
    tenant_id: str = "tenant-1",
    amount: str | None = None,
    is_reversal: bool = False,
    reversed_payment_id: str | None = None,
    recorded_at: datetime | None = None,
    method: str = "cash",
    sequence: int = 0,
) -> Payment:
    """Build a domain Payment from ``{"YYYY-MM": "amount"}`` shorthand."""
    alloc = {MonthKey.parse(k): Decimal(v) for k, v in allocation.items()}
    if amount is None:
        total = sum((abs(v) for v in alloc.values() if v.is_finite()), Decimal("0"))
        amount = str(-total if is_reversal else total)
    return Payment(
        payment_id=payment_id,
        tenant_id=tenant_id,
        amount=Decimal(amount),
        method=method,
        payment_date=payment_date,
        allocation=alloc,
        is_reversal=is_reversal,
        reversed_payment_id=reversed_payment_id,
        recorded_at=recorded_at,
        sequence=sequence,
    )


def months(*tokens: str) -> list[MonthKey]:
    return [MonthKey.parse(t) for t in tokens]


def month_map(values: dict[str, str]) -> dict[MonthKey, Decimal]:
    return {MonthKey.parse(k): Decimal(v) for k, v in values.items()}


def house_rate(effective: str, amount: str) -> RentHistoryEntry:
    return RentHistoryEntry(
        effective_date=date.fromisoformat(effective),
        amount=Decimal(amount),
        source=RentSource.HOUSE,
    )


def override_rate(effective: str, amount: str) -> RentHistoryEntry:
    return RentHistoryEntry(
        effective_date=date.fromisoformat(effective),
        amount=Decimal(amount),
        source=RentSource.OVERRIDE,
    )
