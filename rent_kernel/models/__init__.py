"""ORM models for the rent kernel."""

from rent_kernel.models.audit_event import RentAuditAction, RentAuditEvent
from rent_kernel.models.house import House
from rent_kernel.models.payment import RentPayment
from rent_kernel.models.tenant import Tenant

__all__ = [
    "House",
    "RentAuditAction",
    "RentAuditEvent",
    "RentPayment",
    "Tenant",
]
