"""
Module: rent_engines.allocation
Responsibility:
    Decide which calendar months an incoming payment satisfies (oldest
    unpaid first) and which months a reversal unwinds (most recently paid
    first), with deterministic cent rounding.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import rent_kernel.domain, rent_kernel.exceptions and
    rent_kernel.logging_config.

Invariants enforced:
    - Conservation: sum(|allocation|) + remaining == |amount| exactly.
    - Oldest-first: a month with positive due is never skipped while the
      amount still has funds; satisfied months (due == 0) are always skipped.
    - Reversal LIFO: reversal months are consumed in descending order.
    - Sparse output: a month whose rounded applied amount is zero is absent.
    - Rounding: every intermediate value is quantized to cents with
      ROUND_HALF_UP (round half away from zero).

Failure modes:
    - InvalidAmountError when a forward amount is <= 0 or non-finite.
    - AssertionError if conservation is ever violated (a programming bug).

Audit relevance:
    The returned allocation is persisted verbatim as the payment's
    allocation record and is never recomputed afterwards.  Given the same
    inputs the engine produces byte-identical output.

Usage:
    from rent_engines.allocation import RentAllocationEngine

    engine = RentAllocationEngine()
    outcome = engine.allocate(
        amount=Decimal("2500"),
        months=month_series(date(2024, 1, 1), date(2024, 3, 15)),
        paid_by_month={},
        rent_by_month={m: Decimal("1000") for m in months},
    )
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType

from rent_engines.tracer import traced_engine
from rent_kernel.domain.months import MonthKey
from rent_kernel.domain.payments import encode_allocation
from rent_kernel.domain.values import ZERO, round_money, to_money
from rent_kernel.exceptions import InvalidAmountError
from rent_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


@dataclass(frozen=True)
class AllocationOutcome:
    """
    Result of one allocation run.

    Contract:
        Frozen dataclass; ``allocation`` is a read-only, month-ordered map.
    Guarantees:
        - Forward runs hold positive values; reversal runs hold negative values.
        - ``total_applied + remaining == abs(amount)``.
    Non-goals:
        - Does not persist itself; the write path stores ``to_json()``.
    """

    amount: Decimal
    allocation: Mapping[MonthKey, Decimal]
    remaining: Decimal

    @property
    def total_applied(self) -> Decimal:
        """Magnitude applied across all months."""
        return round_money(sum((abs(v) for v in self.allocation.values()), ZERO))

    @property
    def is_fully_applied(self) -> bool:
        return self.remaining == ZERO

    @property
    def months(self) -> tuple[MonthKey, ...]:
        return tuple(self.allocation)

    def to_json(self) -> str:
        return encode_allocation(self.allocation)


@dataclass(frozen=True)
class AllocationPreviewLine:
    """One month of an allocation preview."""

    month: MonthKey
    expected: Decimal
    paid: Decimal
    due: Decimal
    applied: Decimal


@dataclass(frozen=True)
class AllocationPreview:
    """
    What a payment would do if recorded now.

    Contract:
        One line per month in the considered window, whether or not the
        payment touches it, so a caller can show the full arrears picture.
    Guarantees:
        - ``sum(line.applied) == total_applied`` and
          ``total_applied + remaining == amount``.
    """

    amount: Decimal
    lines: tuple[AllocationPreviewLine, ...]
    total_applied: Decimal
    remaining: Decimal

    @property
    def allocation(self) -> dict[MonthKey, Decimal]:
        return {line.month: line.applied for line in self.lines if line.applied != ZERO}


def _ordered_unique(months: Iterable[MonthKey]) -> list[MonthKey]:
    return sorted(set(months))


def _assert_conserved(amount: Decimal, allocation: Mapping[MonthKey, Decimal], remaining: Decimal) -> None:
    applied = round_money(sum((abs(v) for v in allocation.values()), ZERO))
    assert applied + remaining == abs(amount), (
        f"Allocation conservation violated: {applied} + {remaining} != {abs(amount)}"
    )


class RentAllocationEngine:
    """
    Waterfall allocation of rent payments and reversals.

    Contract:
        Pure functions over immutable snapshots (months, paid-by-month,
        rent-by-month).  No I/O, no database access, no clock.
    Guarantees:
        - Forward allocation is a strict oldest-unpaid-first (FIFO) waterfall.
        - Reversal allocation is a most-recent-first (LIFO) unwind over the
          months that currently hold positive paid balances.
        - Output is independent of the iteration order of the input maps.
    Non-goals:
        - Does not decide the month window; callers pass it (see
          ``rent_engines.ledger.RentLedger``).
        - Does not reject partially absorbed reversals; that policy belongs
          to the write path.
    """

    @traced_engine("rent_allocation", "1.0", fingerprint_fields=("amount", "months", "paid_by_month", "rent_by_month"))
    def allocate(
        self,
        amount: Decimal,
        months: Iterable[MonthKey],
        paid_by_month: Mapping[MonthKey, Decimal],
        rent_by_month: Mapping[MonthKey, Decimal],
    ) -> AllocationOutcome:
        """
        Apply ``amount`` to the oldest months with a positive balance due.

        Args:
            amount: Positive payment amount.
            months: Months eligible to receive the payment (any order).
            paid_by_month: Signed amount already applied per month.
            rent_by_month: Rent due per month; missing months owe nothing.

        Returns:
            AllocationOutcome with positive per-month values and the unspent
            ``remaining`` (non-zero when the window is exhausted first).

        Raises:
            InvalidAmountError: If ``amount`` is not a positive finite value.
        """
        amount = to_money(amount)
        if amount <= ZERO:
            raise InvalidAmountError(amount, "payment amount must be positive")

        ordered = _ordered_unique(months)
        logger.info("allocation_started", extra={
            "amount": str(amount),
            "month_count": len(ordered),
            "first_month": str(ordered[0]) if ordered else None,
            "last_month": str(ordered[-1]) if ordered else None,
        })

        remaining = amount
        allocation: dict[MonthKey, Decimal] = {}
        for month in ordered:
            if remaining <= ZERO:
                break
            rent = round_money(rent_by_month.get(month, ZERO))
            paid = round_money(paid_by_month.get(month, ZERO))
            due = max(round_money(rent - paid), ZERO)
            if due <= ZERO:
                continue
            applied = round_money(min(due, remaining))
            if applied == ZERO:
                continue
            allocation[month] = applied
            remaining = round_money(remaining - applied)

        _assert_conserved(amount, allocation, remaining)

        logger.info("allocation_completed", extra={
            "amount": str(amount),
            "months_funded": len(allocation),
            "total_applied": str(amount - remaining),
            "remaining": str(remaining),
        })
        if remaining > ZERO:
            logger.info("allocation_window_exhausted", extra={
                "amount": str(amount),
                "remaining": str(remaining),
            })

        return AllocationOutcome(
            amount=amount,
            allocation=MappingProxyType(allocation),
            remaining=remaining,
        )

    @traced_engine("rent_reversal_allocation", "1.0", fingerprint_fields=("amount", "paid_by_month"))
    def allocate_reversal(
        self,
        amount: Decimal,
        paid_by_month: Mapping[MonthKey, Decimal],
    ) -> AllocationOutcome:
        """
        Unwind ``abs(amount)`` from the most recently paid months first.

        Only months with a positive paid balance are considered.  Values in
        the returned allocation are negative.  A positive ``remaining``
        means the reversal could not be fully absorbed; it is logged here
        and the write path decides whether to persist it.
        """
        magnitude = abs(to_money(amount))
        if magnitude == ZERO:
            raise InvalidAmountError(amount, "reversal amount must be non-zero")

        candidates = sorted(
            (month for month, paid in paid_by_month.items() if round_money(paid) > ZERO),
            reverse=True,
        )

        remaining = magnitude
        allocation: dict[MonthKey, Decimal] = {}
        for month in candidates:
            if remaining <= ZERO:
                break
            applied = round_money(min(round_money(paid_by_month[month]), remaining))
            if applied == ZERO:
                continue
            allocation[month] = -applied
            remaining = round_money(remaining - applied)

        _assert_conserved(magnitude, allocation, remaining)

        if remaining > ZERO:
            logger.warning("reversal_not_fully_absorbed", extra={
                "amount": str(magnitude),
                "absorbed": str(magnitude - remaining),
                "remaining": str(remaining),
            })
        else:
            logger.info("reversal_allocation_completed", extra={
                "amount": str(magnitude),
                "months_unwound": len(allocation),
            })

        return AllocationOutcome(
            amount=-magnitude,
            allocation=MappingProxyType(dict(sorted(allocation.items()))),
            remaining=remaining,
        )

    def preview(
        self,
        amount: Decimal,
        months: Iterable[MonthKey],
        paid_by_month: Mapping[MonthKey, Decimal],
        rent_by_month: Mapping[MonthKey, Decimal],
    ) -> AllocationPreview:
        """Run ``allocate`` and lay the result out month by month."""
        ordered = _ordered_unique(months)
        outcome = self.allocate(
            amount=amount,
            months=ordered,
            paid_by_month=paid_by_month,
            rent_by_month=rent_by_month,
        )
        lines = []
        for month in ordered:
            expected = round_money(rent_by_month.get(month, ZERO))
            paid = round_money(paid_by_month.get(month, ZERO))
            lines.append(
                AllocationPreviewLine(
                    month=month,
                    expected=expected,
                    paid=paid,
                    due=max(round_money(expected - paid), ZERO),
                    applied=outcome.allocation.get(month, ZERO),
                )
            )
        return AllocationPreview(
            amount=outcome.amount,
            lines=tuple(lines),
            total_applied=outcome.total_applied,
            remaining=outcome.remaining,
        )
