"""
Module: rent_kernel.selectors.audit_selector
Responsibility: Read-only access to the payment audit trail.
Architecture position: Kernel > Selectors.  May import from models/ and
    selectors/base.py.

Invariants enforced:
    - Read-only: no mutations performed on any queried data.
    - Entries come back in write order (per-tenant ``seq``), independent of
      clock resolution.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import func, select

from rent_kernel.models.audit_event import RentAuditAction, RentAuditEvent
from rent_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class PaymentAuditEntry:
    """One audited change to a payment, as stored."""

    action: RentAuditAction
    payment_id: str
    tenant_id: str
    actor_id: str | None
    occurred_at: datetime
    before: dict[str, Any] | None
    after: dict[str, Any]


def audit_entry_from_row(row: RentAuditEvent) -> PaymentAuditEntry:
    payload = row.payload or {}
    return PaymentAuditEntry(
        action=RentAuditAction(row.action),
        payment_id=row.entity_id,
        tenant_id=row.tenant_id,
        actor_id=row.actor_id,
        occurred_at=row.occurred_at,
        before=payload.get("before"),
        after=payload.get("after", {}),
    )


class AuditSelector(BaseSelector[RentAuditEvent]):
    """Audit trail reads."""

    def events_for_payment(self, payment_id: str) -> Sequence[PaymentAuditEntry]:
        """Every audit entry recorded against ``payment_id``, oldest first."""
        rows = self.session.execute(
            select(RentAuditEvent)
            .where(
                RentAuditEvent.entity_type == "RentPayment",
                RentAuditEvent.entity_id == payment_id,
            )
            .order_by(RentAuditEvent.seq)
        ).scalars().all()
        return tuple(audit_entry_from_row(row) for row in rows)

    def next_seq(self, tenant_id: str) -> int:
        """One past the tenant's highest audit ``seq``; call under the tenant lock."""
        current = self.session.execute(
            select(func.max(RentAuditEvent.seq)).where(RentAuditEvent.tenant_id == tenant_id)
        ).scalar_one()
        return (current or 0) + 1
