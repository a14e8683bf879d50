"""Read-only selectors for tenants, payments and the payment audit trail."""

from rent_kernel.selectors.audit_selector import (
    AuditSelector,
    PaymentAuditEntry,
    audit_entry_from_row,
)
from rent_kernel.selectors.base import BaseSelector
from rent_kernel.selectors.payment_selector import (
    PaymentSelector,
    TenantSelector,
    payment_from_row,
)

__all__ = [
    "AuditSelector",
    "BaseSelector",
    "PaymentAuditEntry",
    "PaymentSelector",
    "TenantSelector",
    "audit_entry_from_row",
    "payment_from_row",
]
