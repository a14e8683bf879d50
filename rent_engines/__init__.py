"""
Module: rent_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure rent
    calculation engines.  This is the import surface for the write path in
    rent_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import rent_kernel.domain, rent_kernel.exceptions and
    rent_kernel.logging_config (and sibling engine modules).
    MUST NOT import rent_services, rent_kernel.models or rent_kernel.db.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      "Today" is always an argument supplied by the caller's Clock.
    - Decimal-only arithmetic, cent rounding after every step.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Allocation and aggregation calls are traced via ``@traced_engine``
    (see ``rent_engines.tracer``), emitting RENT_ENGINE_TRACE records.

Usage:
    from rent_engines import RentAllocationEngine, RentLedger, TenantTerms
"""

from rent_engines.allocation import (
    AllocationOutcome,
    AllocationPreview,
    AllocationPreviewLine,
    RentAllocationEngine,
)
from rent_engines.eligibility import (
    PaymentState,
    check_edit_date,
    check_editable,
    check_reversible,
    find_payment,
    find_reversal,
    is_editable,
    latest_live_payment,
    payment_state,
)
from rent_engines.ledger import (
    DEFAULT_LOOKAHEAD_MONTHS,
    PaymentHistorySource,
    RentLedger,
    TenantTerms,
)
from rent_engines.paid_balance import (
    MonthPaymentLine,
    paid_by_month,
    payment_summary_by_month,
    total_paid,
)
from rent_engines.status import (
    MonthStatement,
    MonthStatus,
    TenantStatus,
    TenantStatusReport,
    build_statement,
    month_status,
    tenant_status,
)
from rent_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    # Allocation
    "AllocationOutcome",
    "AllocationPreview",
    "AllocationPreviewLine",
    "RentAllocationEngine",
    # Eligibility
    "PaymentState",
    "check_edit_date",
    "check_editable",
    "check_reversible",
    "find_payment",
    "find_reversal",
    "is_editable",
    "latest_live_payment",
    "payment_state",
    # Ledger
    "DEFAULT_LOOKAHEAD_MONTHS",
    "PaymentHistorySource",
    "RentLedger",
    "TenantTerms",
    # Paid balance
    "MonthPaymentLine",
    "paid_by_month",
    "payment_summary_by_month",
    "total_paid",
    # Status
    "MonthStatement",
    "MonthStatus",
    "TenantStatus",
    "TenantStatusReport",
    "build_statement",
    "month_status",
    "tenant_status",
    # Tracing
    "compute_input_fingerprint",
    "traced_engine",
]
