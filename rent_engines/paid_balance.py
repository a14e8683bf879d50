"""
Module: rent_engines.paid_balance
Responsibility:
    Replay a tenant's payment records (payments and reversals) into the
    per-month "amount already paid" ledger consulted by the allocation
    engine and by the statement/status views.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import rent_kernel.domain and rent_kernel.logging_config.

Invariants enforced:
    - Replay determinism: payments are walked in canonical order
      (payment_date, recorded_at, sequence, payment_id) so the same payment
      set always yields the same map, whatever order it was fetched in.
    - Reversal netting: every reversal value subtracts its magnitude, which
      accepts both signed storage and legacy positive-magnitude rows.
    - One reversal per payment: a second reversal of an already-seen
      reversed_payment_id is ignored.
    - Non-finite and zero values are skipped.

Audit relevance:
    There are no stored balances.  This map is always re-derived from the
    authoritative payment rows.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from rent_engines.tracer import traced_engine
from rent_kernel.domain.months import MonthKey
from rent_kernel.domain.payments import Payment
from rent_kernel.domain.values import ZERO, round_money
from rent_kernel.logging_config import get_logger

logger = get_logger("engines.paid_balance")


@dataclass(frozen=True)
class MonthPaymentLine:
    """One payment's contribution to one month."""

    month: MonthKey
    payment_id: str
    payment_date: date
    amount: Decimal
    is_reversal: bool


def _effective_entries(payments: Iterable[Payment]):
    """Yield (payment, month, signed amount) for every contribution that counts."""
    seen_reversal_targets: set[str] = set()
    for payment in sorted(payments, key=lambda p: p.ordering_key):
        if payment.is_reversal and payment.reversed_payment_id:
            if payment.reversed_payment_id in seen_reversal_targets:
                logger.warning("duplicate_reversal_ignored", extra={
                    "reversal_payment_id": payment.payment_id,
                    "reversed_payment_id": payment.reversed_payment_id,
                })
                continue
            seen_reversal_targets.add(payment.reversed_payment_id)

        for month, value in payment.allocation.items():
            if not value.is_finite() or value == 0:
                continue
            signed = -abs(value) if payment.is_reversal else value
            yield payment, month, round_money(signed)


@traced_engine("paid_by_month", "1.0")
def paid_by_month(payments: Iterable[Payment]) -> dict[MonthKey, Decimal]:
    """
    Signed per-month sum of every payment's allocation.

    Returns a map ordered by month.  Months that net to exactly zero (a
    payment fully reversed) are kept with ``0.00`` so callers can tell
    "touched and unwound" from "never paid"; absence still means zero.
    """
    totals: dict[MonthKey, Decimal] = {}
    for _payment, month, amount in _effective_entries(payments):
        totals[month] = round_money(totals.get(month, ZERO) + amount)
    return dict(sorted(totals.items()))


def payment_summary_by_month(
    payments: Iterable[Payment],
) -> dict[MonthKey, tuple[MonthPaymentLine, ...]]:
    """Per-month list of contributing payments, each list sorted by payment date."""
    summary: dict[MonthKey, list[MonthPaymentLine]] = {}
    for payment, month, amount in _effective_entries(payments):
        summary.setdefault(month, []).append(
            MonthPaymentLine(
                month=month,
                payment_id=payment.payment_id,
                payment_date=payment.payment_date,
                amount=amount,
                is_reversal=payment.is_reversal,
            )
        )
    return {
        month: tuple(sorted(lines, key=lambda line: line.payment_date))
        for month, lines in sorted(summary.items())
    }


def total_paid(paid: dict[MonthKey, Decimal]) -> Decimal:
    """Net amount applied across all months."""
    return round_money(sum(paid.values(), ZERO))
