"""
Module: rent_engines.eligibility
Responsibility:
    Pure rules deciding whether a payment may be reversed or edited, and the
    lifecycle state of a payment derived from the payment history.

Architecture position:
    Engines -- pure calculation layer, zero I/O, no clock (``today`` is an
    argument).  The write path calls these checks before persisting anything.

Invariants enforced:
    - A payment is reversed at most once; reversal state is derived from
      the reversal records referencing it (no status column is mutated).
    - A reversal record is terminal: it can be neither reversed nor edited.
    - Only the tenant's latest live payment, dated in the current calendar
      month, can be edited.  "Latest" orders by payment_date, then
      recorded_at, then the per-tenant insertion sequence, then payment_id.

Failure modes:
    - PaymentNotFoundError: target id not in the history.
    - ReversalOfReversalError: target is itself a reversal.
    - PaymentAlreadyReversedError: a reversal already references the target.
    - PaymentNotEditableError: edit window rules violated; ``reason`` says which.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from enum import Enum

from rent_kernel.domain.months import MonthKey
from rent_kernel.domain.payments import Payment
from rent_kernel.exceptions import (
    PaymentAlreadyReversedError,
    PaymentNotEditableError,
    PaymentNotFoundError,
    ReversalOfReversalError,
)
from rent_kernel.logging_config import get_logger

logger = get_logger("engines.eligibility")


class PaymentState(str, Enum):
    """Lifecycle state of a payment record."""

    POSTED = "posted"
    REVERSED = "reversed"
    REVERSAL = "reversal"


def find_payment(payment_id: str, payments: Iterable[Payment]) -> Payment:
    for payment in payments:
        if payment.payment_id == payment_id:
            return payment
    raise PaymentNotFoundError(payment_id)


def find_reversal(payment_id: str, payments: Iterable[Payment]) -> Payment | None:
    """The earliest reversal record referencing ``payment_id``, if any."""
    reversals = [
        p for p in payments if p.is_reversal and p.reversed_payment_id == payment_id
    ]
    if not reversals:
        return None
    return min(reversals, key=lambda p: p.ordering_key)


def payment_state(payment: Payment, payments: Iterable[Payment]) -> PaymentState:
    if payment.is_reversal:
        return PaymentState.REVERSAL
    if find_reversal(payment.payment_id, payments) is not None:
        return PaymentState.REVERSED
    return PaymentState.POSTED


def check_reversible(payment_id: str, payments: Sequence[Payment]) -> Payment:
    """
    Validate that ``payment_id`` may be reversed and return it.

    Raises:
        PaymentNotFoundError: No such payment in the history.
        ReversalOfReversalError: The payment is itself a reversal.
        PaymentAlreadyReversedError: A reversal of it already exists.
    """
    target = find_payment(payment_id, payments)
    if target.is_reversal:
        logger.warning("reversal_rejected", extra={
            "payment_id": payment_id,
            "reason": ReversalOfReversalError.code,
        })
        raise ReversalOfReversalError(payment_id)

    existing = find_reversal(payment_id, payments)
    if existing is not None:
        logger.warning("reversal_rejected", extra={
            "payment_id": payment_id,
            "reason": PaymentAlreadyReversedError.code,
            "reversal_id": existing.payment_id,
        })
        raise PaymentAlreadyReversedError(payment_id, existing.payment_id)
    return target


def latest_live_payment(tenant_id: str, payments: Iterable[Payment]) -> Payment | None:
    """The tenant's most recent payment that is neither a reversal nor reversed."""
    payments = list(payments)
    reversed_ids = {
        p.reversed_payment_id for p in payments if p.is_reversal and p.reversed_payment_id
    }
    live = [
        p for p in payments
        if p.tenant_id == tenant_id
        and not p.is_reversal
        and p.payment_id not in reversed_ids
    ]
    if not live:
        return None
    return max(live, key=lambda p: p.ordering_key)


def check_editable(payment_id: str, payments: Sequence[Payment], today: date) -> Payment:
    """
    Validate that ``payment_id`` may be edited on ``today`` and return it.

    Raises:
        PaymentNotFoundError: No such payment in the history.
        PaymentNotEditableError: With ``reason`` one of ``is_reversal``,
            ``reversed``, ``not_current_month``, ``not_latest``.
    """
    target = find_payment(payment_id, payments)

    reason: str | None = None
    if target.is_reversal:
        reason = "is_reversal"
    elif find_reversal(payment_id, payments) is not None:
        reason = "reversed"
    elif target.month != MonthKey.from_date(today):
        reason = "not_current_month"
    else:
        latest = latest_live_payment(target.tenant_id, payments)
        if latest is None or latest.payment_id != payment_id:
            reason = "not_latest"

    if reason is not None:
        logger.warning("edit_rejected", extra={
            "payment_id": payment_id,
            "reason": reason,
        })
        raise PaymentNotEditableError(payment_id, reason)
    return target


def check_edit_date(payment_id: str, new_date: date, today: date) -> None:
    """An edited payment must stay dated inside the current month."""
    if MonthKey.from_date(new_date) != MonthKey.from_date(today):
        raise PaymentNotEditableError(payment_id, "date_outside_current_month")


def is_editable(payment_id: str, payments: Sequence[Payment], today: date) -> bool:
    try:
        check_editable(payment_id, payments, today)
    except (PaymentNotFoundError, PaymentNotEditableError):
        return False
    return True
