"""
Module: rent_kernel.models.audit_event
Responsibility: ORM persistence for the payment audit trail: one row per
    create, edit or reversal of a rent payment, holding the state the write
    replaced.
Architecture position: Kernel > Models.  May import from db/base.py,
    rent_kernel.exceptions and rent_kernel.logging_config.

Invariants enforced:
    - Audit records are append-only; UPDATE and DELETE are blocked by ORM
      listeners (ImmutabilityViolationError).
    - ``seq`` increases monotonically per tenant (assigned under the tenant
      lock) and orders a tenant's audit trail.
    - Every audit row is written in the same transaction as the payment
      write it describes, so either both exist or neither does.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.

Audit relevance:
    Edits overwrite a payment row in place.  The ``payload`` of the
    matching PAYMENT_UPDATED event keeps the previous amount, date, method
    and allocation, so every historic allocation stays recoverable from
    stored data.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Index, Integer, String, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column

from rent_kernel.db.base import Base
from rent_kernel.exceptions import ImmutabilityViolationError
from rent_kernel.logging_config import get_logger

logger = get_logger("models.audit_event")


class RentAuditAction(str, Enum):
    """Auditable payment actions."""

    PAYMENT_CREATED = "payment_created"
    PAYMENT_UPDATED = "payment_updated"
    PAYMENT_REVERSED = "payment_reversed"


class RentAuditEvent(Base):
    """
    One audited change to a rent payment.

    Contract:
        Rows are append-only.  ``entity_id`` is the payment the action
        applies to (for a reversal, the reversed payment); ``payload`` holds
        JSON-safe strings only.
    """

    __tablename__ = "rent_audit_events"

    __table_args__ = (
        Index("idx_rent_audit_entity", "entity_type", "entity_id"),
        Index("idx_rent_audit_tenant", "tenant_id"),
        UniqueConstraint("tenant_id", "seq", name="uq_rent_audit_tenant_seq"),
    )

    # Monotonic per-tenant sequence for ordering
    seq: Mapped[int] = mapped_column(Integer, nullable=False)

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[str] = mapped_column(String(36), nullable=False)

    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)

    actor_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    # {"before": {...} | null, "after": {...}}
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<RentAuditEvent {self.action} on {self.entity_type}:{self.entity_id}>"


def _block(target: RentAuditEvent, operation: str, reason: str) -> None:
    logger.error("immutability_violation_blocked", extra={
        "entity_type": "RentAuditEvent",
        "entity_id": str(target.id),
        "operation": operation,
    })
    raise ImmutabilityViolationError(
        entity_type="RentAuditEvent",
        entity_id=str(target.id),
        reason=reason,
    )


@event.listens_for(RentAuditEvent, "before_update")
def _check_audit_event_immutability(mapper, connection, target):
    _block(target, "UPDATE", "Audit events are immutable and cannot be modified")


@event.listens_for(RentAuditEvent, "before_delete")
def _check_audit_event_delete(mapper, connection, target):
    _block(target, "DELETE", "Audit events cannot be deleted")
