"""
Module: rent_engines.status
Responsibility:
    Read-side views over a tenant's ledger: the per-month statement
    (expected, paid, balance, Paid/Partial/Unpaid) and the current-month
    traffic-light status used by tenant listings.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - A month is Paid only when something was owed and paid >= expected.
    - balance = max(expected - paid, 0); overpayment never shows as credit.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from rent_engines.paid_balance import MonthPaymentLine
from rent_kernel.domain.months import MonthKey
from rent_kernel.domain.values import ZERO, round_money


class MonthStatus(str, Enum):
    PAID = "paid"
    PARTIAL = "partial"
    UNPAID = "unpaid"


class TenantStatus(str, Enum):
    """Traffic light for the current month."""

    GREEN = "green"
    ORANGE = "orange"
    RED = "red"


_TENANT_STATUS = {
    MonthStatus.PAID: TenantStatus.GREEN,
    MonthStatus.PARTIAL: TenantStatus.ORANGE,
    MonthStatus.UNPAID: TenantStatus.RED,
}


def month_status(expected: Decimal, paid: Decimal) -> MonthStatus:
    if expected > ZERO and paid >= expected:
        return MonthStatus.PAID
    if paid > ZERO:
        return MonthStatus.PARTIAL
    return MonthStatus.UNPAID


@dataclass(frozen=True)
class MonthStatement:
    """One row of a tenant statement."""

    month: MonthKey
    expected: Decimal
    paid: Decimal
    balance: Decimal
    status: MonthStatus
    payments: tuple[MonthPaymentLine, ...] = ()


@dataclass(frozen=True)
class TenantStatusReport:
    """
    Current-month standing of one tenant.

    ``arrears`` is the outstanding balance summed over every statement month
    up to and including ``month``.
    """

    tenant_id: str
    month: MonthKey
    expected: Decimal
    paid: Decimal
    balance: Decimal
    arrears: Decimal
    status: TenantStatus


def build_statement(
    months: Iterable[MonthKey],
    rent_by_month: Mapping[MonthKey, Decimal],
    paid_by_month: Mapping[MonthKey, Decimal],
    payment_summary: Mapping[MonthKey, Sequence[MonthPaymentLine]] | None = None,
) -> tuple[MonthStatement, ...]:
    """Statement rows for ``months`` in chronological order."""
    summary = payment_summary or {}
    rows = []
    for month in sorted(set(months)):
        expected = round_money(rent_by_month.get(month, ZERO))
        paid = round_money(paid_by_month.get(month, ZERO))
        rows.append(
            MonthStatement(
                month=month,
                expected=expected,
                paid=paid,
                balance=max(round_money(expected - paid), ZERO),
                status=month_status(expected, paid),
                payments=tuple(summary.get(month, ())),
            )
        )
    return tuple(rows)


def tenant_status(
    tenant_id: str,
    current_month: MonthKey,
    statement: Sequence[MonthStatement],
) -> TenantStatusReport:
    """
    Summarize ``statement`` as of ``current_month``.

    A current month missing from the statement (tenant not yet moved in,
    or already moved out) reports nothing expected and nothing paid.
    """
    row = next((r for r in statement if r.month == current_month), None)
    expected = row.expected if row else ZERO
    paid = row.paid if row else ZERO
    arrears = round_money(
        sum((r.balance for r in statement if r.month <= current_month), ZERO)
    )
    return TenantStatusReport(
        tenant_id=tenant_id,
        month=current_month,
        expected=expected,
        paid=paid,
        balance=max(round_money(expected - paid), ZERO),
        arrears=arrears,
        status=_TENANT_STATUS[month_status(expected, paid)],
    )
