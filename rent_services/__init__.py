"""
rent_services -- Package init and public API.

Responsibility:
    Stateful orchestration that composes the pure rent engines
    (rent_engines/) with database sessions, the clock and per-tenant locks.
    This is the only layer that may hold sessions or read wall-clock time.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction:
        rent_services/ -> rent_engines/  (allowed)
        rent_services/ -> rent_kernel/   (allowed)
        rent_services/ -> rent_config/   (allowed)
        rent_engines/  -> rent_services/ (FORBIDDEN)
        rent_kernel/   -> rent_services/ (FORBIDDEN)
"""

from rent_services.rent_payment_service import (
    PaymentEdit,
    PaymentRequest,
    RecordedPayment,
    RentPaymentService,
    ReversalRequest,
    build_rent_payment_service,
)
from rent_services.tenant_lock import TenantLockRegistry

__all__ = [
    "PaymentEdit",
    "PaymentRequest",
    "RecordedPayment",
    "RentPaymentService",
    "ReversalRequest",
    "TenantLockRegistry",
    "build_rent_payment_service",
]
