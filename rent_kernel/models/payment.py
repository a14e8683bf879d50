"""
Module: rent_kernel.models.payment
Responsibility: ORM persistence for rent payments and reversals, including
    the allocation record computed at write time.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one reversal per payment: ``reversed_payment_id`` is UNIQUE
      (uq_rent_payment_reversed).  The service checks first; the constraint
      is the storage-level backstop for concurrent writers.
    - ``sequence`` is a per-tenant insertion counter (1, 2, ...), UNIQUE per
      tenant (uq_rent_payment_tenant_sequence).  It orders rows that share a
      payment date and record time.
    - ``allocation_json`` is written once per row and is the sole source the
      paid-balance aggregator replays.  Edits rewrite it in the same
      transaction as the amount/date change.

Failure modes:
    - IntegrityError on a second reversal of the same payment (translated to
      PaymentAlreadyReversedError by the service).
"""

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rent_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from rent_kernel.models.tenant import Tenant


class RentPayment(TrackedBase):
    """
    A posted payment (amount > 0) or a reversal (amount < 0).

    Contract:
        Rows are never deleted.  A reversal references exactly one
        non-reversal payment through ``reversed_payment_id``.
    """

    __tablename__ = "rent_payments"

    __table_args__ = (
        UniqueConstraint("reversed_payment_id", name="uq_rent_payment_reversed"),
        UniqueConstraint("tenant_id", "sequence", name="uq_rent_payment_tenant_sequence"),
        Index("idx_rent_payment_tenant", "tenant_id"),
        Index("idx_rent_payment_tenant_date", "tenant_id", "payment_date"),
    )

    tenant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tenants.id"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    # "cash" or "bank"
    method: Mapped[str] = mapped_column(String(20), nullable=False)

    payment_date: Mapped[date] = mapped_column(Date, nullable=False)

    # {"YYYY-MM": "amount", ...}; negative values on reversals
    allocation_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")

    # Amount no month could absorb (forward overflow or partial reversal)
    unapplied_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    is_reversal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    reversed_payment_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("rent_payments.id"),
        nullable=True,
    )

    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Clock time the write path recorded the row; tie-breaks same-day payments
    recorded_at: Mapped[datetime] = mapped_column(nullable=False)

    # Per-tenant insertion order; assigned under the tenant lock, kept on edit
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    tenant: Mapped["Tenant"] = relationship(back_populates="payments")

    def __repr__(self) -> str:
        kind = "reversal" if self.is_reversal else "payment"
        return f"<RentPayment {kind} {self.id}: {self.amount} on {self.payment_date}>"
