"""
Module: rent_kernel.selectors.payment_selector
Responsibility: Read-only access to tenants and their payments, converting
    rows into the immutable domain snapshots (``TenantTerms``, ``Payment``)
    consumed by the rent engines.
Architecture position: Kernel > Selectors.  May import from models/, domain/
    and selectors/base.py.  MUST NOT import from services/ or engines.

Invariants enforced:
    - Read-only: no mutations performed on any queried data.
    - One corrupt allocation row never makes a tenant's ledger unreadable:
      the row is kept with an empty allocation and the event is logged
      (corrupt_allocation_skipped).

Failure modes:
    - TenantNotFoundError from ``load_terms`` for an unknown tenant id.
    - Returns None/empty when payments do not exist (never raises on absence).
"""

from collections.abc import Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rent_kernel.domain.payments import Payment, decode_allocation
from rent_kernel.domain.terms import TenantTerms
from rent_kernel.exceptions import CorruptAllocationError, TenantNotFoundError
from rent_kernel.logging_config import get_logger
from rent_kernel.models.house import House
from rent_kernel.models.payment import RentPayment
from rent_kernel.models.tenant import Tenant
from rent_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.payment")


def payment_from_row(row: RentPayment) -> Payment:
    """Convert a stored payment row into a domain ``Payment``."""
    try:
        allocation = decode_allocation(row.allocation_json, payment_id=row.id)
    except CorruptAllocationError as exc:
        logger.error("corrupt_allocation_skipped", extra={
            "payment_id": row.id,
            "tenant_id": row.tenant_id,
            "detail": exc.detail,
        })
        allocation = {}
    return Payment(
        payment_id=row.id,
        tenant_id=row.tenant_id,
        amount=row.amount,
        method=row.method,
        payment_date=row.payment_date,
        allocation=allocation,
        is_reversal=row.is_reversal,
        reversed_payment_id=row.reversed_payment_id,
        reference=row.reference,
        notes=row.notes,
        recorded_by=row.created_by,
        recorded_at=row.recorded_at,
        unapplied_amount=row.unapplied_amount,
        sequence=row.sequence,
    )


class TenantSelector(BaseSelector[Tenant]):
    """Tenant and house lookups."""

    def get_row(self, tenant_id: str, for_update: bool = False) -> Tenant | None:
        """
        Load the tenant row, optionally locking it (``SELECT ... FOR UPDATE``).

        The lock is a no-op on SQLite and a row lock on PostgreSQL.
        """
        stmt = select(Tenant).where(Tenant.id == tenant_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def load_terms(self, tenant_id: str, for_update: bool = False) -> TenantTerms:
        """
        Build the tenant's rent terms.

        Raises:
            TenantNotFoundError: If no tenant has ``tenant_id``.
        """
        tenant = self.get_row(tenant_id, for_update=for_update)
        if tenant is None:
            raise TenantNotFoundError(tenant_id)

        house: House | None = None
        if tenant.house_id is not None:
            house = self.session.get(House, tenant.house_id)

        return TenantTerms.from_records(
            tenant_id=tenant.id,
            move_in_date=tenant.move_in_date,
            move_out_date=tenant.move_out_date,
            rent_override=tenant.rent_override,
            monthly_rent=house.monthly_rent if house is not None else None,
            tenant_history_json=tenant.rent_history_json,
            house_history_json=house.rent_history_json if house is not None else None,
            house_id=tenant.house_id,
        )


class PaymentSelector(BaseSelector[RentPayment]):
    """
    Payment history reads.

    Satisfies ``rent_engines.ledger.PaymentHistorySource``.
    """

    def get_row(self, payment_id: str) -> RentPayment | None:
        return self.session.get(RentPayment, payment_id)

    def payments_for_tenant(self, tenant_id: str) -> Sequence[Payment]:
        """Every payment and reversal of the tenant in replay order."""
        rows = self.session.execute(
            select(RentPayment)
            .where(RentPayment.tenant_id == tenant_id)
            .order_by(
                RentPayment.payment_date,
                RentPayment.recorded_at,
                RentPayment.sequence,
                RentPayment.id,
            )
        ).scalars().all()
        return tuple(payment_from_row(row) for row in rows)

    def reversal_of(self, payment_id: str) -> RentPayment | None:
        """The reversal row referencing ``payment_id``, if any."""
        return self.session.execute(
            select(RentPayment).where(RentPayment.reversed_payment_id == payment_id)
        ).scalars().first()

    def next_sequence(self, tenant_id: str) -> int:
        """One past the tenant's highest stored sequence; call under the tenant lock."""
        current = self.session.execute(
            select(func.max(RentPayment.sequence)).where(RentPayment.tenant_id == tenant_id)
        ).scalar_one()
        return (current or 0) + 1
