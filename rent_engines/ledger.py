"""
Module: rent_engines.ledger
Responsibility:
    Compose the month generator, rent resolver, paid-balance aggregator and
    allocation engine over one tenant's terms and an injected snapshot of
    the tenant's payment history.

Architecture position:
    Engines -- pure calculation layer.  The payment history is an explicit
    read dependency (a sequence or a ``PaymentHistorySource``), never an
    ambient database client, so the ledger can be exercised without I/O.

Invariants enforced:
    - Obligations start at the move-in month and end at the move-out month.
    - Forward allocation considers move-in .. payment month + lookahead.
    - The snapshot is immutable for the lifetime of the ledger; callers
      build a new ledger after every write.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Protocol

from rent_engines.allocation import AllocationOutcome, AllocationPreview, RentAllocationEngine
from rent_engines.paid_balance import paid_by_month, payment_summary_by_month
from rent_engines.status import MonthStatement, TenantStatusReport, build_statement, tenant_status
from rent_kernel.domain.months import MonthKey, month_series
from rent_kernel.domain.payments import Payment
from rent_kernel.domain.terms import TenantTerms
from rent_kernel.logging_config import get_logger

logger = get_logger("engines.ledger")

DEFAULT_LOOKAHEAD_MONTHS = 24


class PaymentHistorySource(Protocol):
    """Read dependency supplying a tenant's full payment list."""

    def payments_for_tenant(self, tenant_id: str) -> Sequence[Payment]: ...


@dataclass(frozen=True)
class RentLedger:
    """
    One tenant's ledger over an immutable payment snapshot.

    Contract:
        Every method is a pure function of ``terms`` and ``payments``.
    Non-goals:
        - Does not validate reversal/edit eligibility
          (see ``rent_engines.eligibility``).
    """

    terms: TenantTerms
    payments: tuple[Payment, ...]
    lookahead_months: int = DEFAULT_LOOKAHEAD_MONTHS
    engine: RentAllocationEngine = field(default_factory=RentAllocationEngine)

    @classmethod
    def from_source(
        cls,
        terms: TenantTerms,
        source: PaymentHistorySource,
        lookahead_months: int = DEFAULT_LOOKAHEAD_MONTHS,
    ) -> RentLedger:
        return cls(
            terms=terms,
            payments=tuple(source.payments_for_tenant(terms.tenant_id)),
            lookahead_months=lookahead_months,
        )

    def months(self, through_date: date, extra_months: int = 0) -> tuple[MonthKey, ...]:
        """Obligation months up to ``through_date`` plus lookahead, cut at move-out."""
        series = month_series(self.terms.move_in_date, through_date, extra_months)
        if self.terms.move_out_date is None:
            return series
        last = MonthKey.from_date(self.terms.move_out_date)
        return tuple(month for month in series if month <= last)

    def rent_by_month(self, months: Iterable[MonthKey]) -> dict[MonthKey, Decimal]:
        timeline = self.terms.timeline
        fallback = self.terms.fallback_rent
        return {month: timeline.rent_for(month, fallback) for month in months}

    def _snapshot(self, exclude_payment_id: str | None) -> list[Payment]:
        if exclude_payment_id is None:
            return list(self.payments)
        return [p for p in self.payments if p.payment_id != exclude_payment_id]

    def paid_by_month(self, exclude_payment_id: str | None = None) -> dict[MonthKey, Decimal]:
        return paid_by_month(self._snapshot(exclude_payment_id))

    def allocate_payment(
        self,
        amount: Decimal,
        payment_date: date,
        exclude_payment_id: str | None = None,
    ) -> AllocationOutcome:
        """
        Allocate a new (or edited) payment dated ``payment_date``.

        ``exclude_payment_id`` removes a payment being edited from the paid
        snapshot so that its old allocation does not count against itself.
        """
        months = self.months(payment_date, self.lookahead_months)
        return self.engine.allocate(
            amount=amount,
            months=months,
            paid_by_month=self.paid_by_month(exclude_payment_id),
            rent_by_month=self.rent_by_month(months),
        )

    def allocate_reversal(self, amount: Decimal) -> AllocationOutcome:
        """Unwind ``amount`` against the current paid snapshot."""
        return self.engine.allocate_reversal(
            amount=amount,
            paid_by_month=self.paid_by_month(),
        )

    def preview(self, amount: Decimal, payment_date: date) -> AllocationPreview:
        months = self.months(payment_date, self.lookahead_months)
        return self.engine.preview(
            amount=amount,
            months=months,
            paid_by_month=self.paid_by_month(),
            rent_by_month=self.rent_by_month(months),
        )

    def statement(self, through_date: date) -> tuple[MonthStatement, ...]:
        """Per-month statement from move-in through ``through_date``."""
        months = self.months(through_date)
        return build_statement(
            months,
            self.rent_by_month(months),
            self.paid_by_month(),
            payment_summary_by_month(self.payments),
        )

    def status(self, today: date) -> TenantStatusReport:
        current = MonthKey.from_date(today)
        report = tenant_status(self.terms.tenant_id, current, self.statement(today))
        logger.debug("tenant_status_computed", extra={
            "tenant_id": self.terms.tenant_id,
            "month": str(current),
            "status": report.status.value,
            "arrears": str(report.arrears),
        })
        return report
