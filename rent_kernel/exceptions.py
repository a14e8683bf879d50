"""
Typed Exception Hierarchy for the Rent Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every rejection on the payment write path must reach the end user as a
specific, actionable reason ("this payment has already been reversed"), not a
generic "failed".  Callers therefore catch by TYPE and read structured
attributes instead of parsing messages:

    try:
        service.reverse_payment(request)
    except PaymentAlreadyReversedError as e:
        respond(code=e.code, reversal_id=e.reversal_id)
    except BusinessRuleError as e:
        respond(code=e.code, message=str(e))

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    RentKernelError (base)
    |
    +-- ValidationError                 (a) rejected before any computation
    |   +-- MissingFieldError
    |   +-- InvalidAmountError
    |   +-- InvalidPaymentMethodError
    |   +-- InvalidDateError
    |   +-- InvalidMonthKeyError
    |   +-- InvalidPaymentError
    |   +-- InvalidRentHistoryError
    |
    +-- NotFoundError                   (b) referential
    |   +-- TenantNotFoundError
    |   +-- HouseNotFoundError
    |   +-- PaymentNotFoundError
    |
    +-- BusinessRuleError               (c) conflicts
    |   +-- PaymentAlreadyReversedError
    |   +-- ReversalOfReversalError
    |   +-- PaymentNotEditableError
    |   +-- ReversalNotAbsorbableError
    |
    +-- ConcurrencyError
    |   +-- TenantBusyError
    |
    +-- DataIntegrityError              (d) corrupt or protected stored data
        +-- CorruptAllocationError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | MISSING_FIELD               | Required request field absent
                | INVALID_AMOUNT              | Amount not a positive finite number
                | INVALID_PAYMENT_METHOD      | Method not one of cash/bank
                | INVALID_DATE                | Date missing or unparseable
                | INVALID_MONTH_KEY           | Token is not YYYY-MM
                | INVALID_PAYMENT             | Payment violates sign/reversal invariants
                | INVALID_RENT_HISTORY        | Rent history entry cannot be built
----------------|-----------------------------|-----------------------------------------
Referential     | TENANT_NOT_FOUND            | Tenant id doesn't exist
                | HOUSE_NOT_FOUND             | House id doesn't exist
                | PAYMENT_NOT_FOUND           | Payment id doesn't exist
----------------|-----------------------------|-----------------------------------------
Conflict        | PAYMENT_ALREADY_REVERSED    | Second reversal of one payment
                | REVERSAL_OF_REVERSAL        | Target is itself a reversal
                | PAYMENT_NOT_EDITABLE        | Edit outside the latest/current-month rule
                | REVERSAL_NOT_ABSORBABLE     | Nothing currently paid to unwind
----------------|-----------------------------|-----------------------------------------
Concurrency     | TENANT_BUSY                 | Tenant lock not acquired in time
----------------|-----------------------------|-----------------------------------------
Integrity       | CORRUPT_ALLOCATION          | Stored allocation JSON unreadable
                | IMMUTABILITY_VIOLATION      | Audit event updated or deleted

===============================================================================
"""


class RentKernelError(Exception):
    """
    Base exception for all rent kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    identification.
    """

    code: str = "RENT_KERNEL_ERROR"


# Validation exceptions


class ValidationError(RentKernelError):
    """Base exception for malformed or missing request data."""

    code: str = "VALIDATION_ERROR"


class MissingFieldError(ValidationError):
    """One or more required fields were not supplied."""

    code: str = "MISSING_FIELD"

    def __init__(self, fields: list[str] | tuple[str, ...]):
        self.fields = tuple(fields)
        super().__init__(f"Missing fields: {', '.join(self.fields)}")


class InvalidAmountError(ValidationError):
    """Amount is not usable for the requested operation."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: object, reason: str):
        self.amount = str(amount)
        self.reason = reason
        super().__init__(f"Invalid amount {self.amount}: {reason}")


class InvalidPaymentMethodError(ValidationError):
    """Payment method is not one of the supported methods."""

    code: str = "INVALID_PAYMENT_METHOD"

    def __init__(self, method: object, allowed: tuple[str, ...]):
        self.method = str(method)
        self.allowed = allowed
        super().__init__(
            f"Invalid payment method {self.method!r}; expected one of {', '.join(allowed)}"
        )


class InvalidDateError(ValidationError):
    """A date field is missing or cannot be parsed."""

    code: str = "INVALID_DATE"

    def __init__(self, field: str, value: object):
        self.field = field
        self.value = str(value)
        super().__init__(f"Invalid date for {field}: {self.value!r}")


class InvalidMonthKeyError(ValidationError):
    """Month token is not a valid YYYY-MM key."""

    code: str = "INVALID_MONTH_KEY"

    def __init__(self, value: object):
        self.value = str(value)
        super().__init__(f"Invalid month key {self.value!r}; expected YYYY-MM")


class InvalidPaymentError(ValidationError):
    """Payment fields contradict the payment/reversal invariants."""

    code: str = "INVALID_PAYMENT"

    def __init__(self, payment_id: str, reason: str):
        self.payment_id = payment_id
        self.reason = reason
        super().__init__(f"Invalid payment {payment_id}: {reason}")


class InvalidRentHistoryError(ValidationError):
    """Rent history entry cannot be constructed."""

    code: str = "INVALID_RENT_HISTORY"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid rent history entry: {reason}")


# Referential exceptions


class NotFoundError(RentKernelError):
    """Base exception for unknown entity ids."""

    code: str = "NOT_FOUND"


class TenantNotFoundError(NotFoundError):
    """Tenant with given ID was not found."""

    code: str = "TENANT_NOT_FOUND"

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        super().__init__(f"Tenant not found: {tenant_id}")


class HouseNotFoundError(NotFoundError):
    """House with given ID was not found."""

    code: str = "HOUSE_NOT_FOUND"

    def __init__(self, house_id: str):
        self.house_id = house_id
        super().__init__(f"House not found: {house_id}")


class PaymentNotFoundError(NotFoundError):
    """Payment with given ID was not found."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment not found: {payment_id}")


# Business-rule conflicts


class BusinessRuleError(RentKernelError):
    """Base exception for requests that conflict with ledger rules."""

    code: str = "BUSINESS_RULE_CONFLICT"


class PaymentAlreadyReversedError(BusinessRuleError):
    """Payment already has a reversal record."""

    code: str = "PAYMENT_ALREADY_REVERSED"

    def __init__(self, payment_id: str, reversal_id: str | None = None):
        self.payment_id = payment_id
        self.reversal_id = reversal_id
        super().__init__(f"Payment {payment_id} has already been reversed")


class ReversalOfReversalError(BusinessRuleError):
    """A reversal record cannot itself be reversed."""

    code: str = "REVERSAL_OF_REVERSAL"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(
            f"Payment {payment_id} is a reversal and cannot be reversed"
        )


class PaymentNotEditableError(BusinessRuleError):
    """
    Payment is outside the bounded edit window.

    ``reason`` is one of: ``is_reversal``, ``reversed``, ``not_current_month``,
    ``not_latest``, ``date_outside_current_month``.
    """

    code: str = "PAYMENT_NOT_EDITABLE"

    _MESSAGES = {
        "is_reversal": "reversal records cannot be edited",
        "reversed": "the payment has been reversed",
        "not_current_month": "only payments dated in the current month can be edited",
        "not_latest": "only the tenant's latest payment can be edited",
        "date_outside_current_month": "the edited payment date must stay in the current month",
    }

    def __init__(self, payment_id: str, reason: str):
        self.payment_id = payment_id
        self.reason = reason
        detail = self._MESSAGES.get(reason, reason)
        super().__init__(
            f"Payment {payment_id} cannot be edited: {detail}; "
            "correct it with a reversal and a new payment instead"
        )


class ReversalNotAbsorbableError(BusinessRuleError):
    """No currently paid month is available for the reversal to unwind."""

    code: str = "REVERSAL_NOT_ABSORBABLE"

    def __init__(self, payment_id: str, amount: str):
        self.payment_id = payment_id
        self.amount = amount
        super().__init__(
            f"Reversal of payment {payment_id} for {amount} cannot be applied: "
            "the tenant has no paid months left to unwind"
        )


# Concurrency exceptions


class ConcurrencyError(RentKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class TenantBusyError(ConcurrencyError):
    """Another allocation for the same tenant held the lock too long."""

    code: str = "TENANT_BUSY"

    def __init__(self, tenant_id: str, timeout_seconds: float):
        self.tenant_id = tenant_id
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Another payment for tenant {tenant_id} is being recorded; "
            f"retry shortly (waited {timeout_seconds}s)"
        )


# Data integrity exceptions


class DataIntegrityError(RentKernelError):
    """Base exception for unreadable stored data."""

    code: str = "DATA_INTEGRITY_ERROR"


class CorruptAllocationError(DataIntegrityError):
    """A stored allocation record cannot be decoded."""

    code: str = "CORRUPT_ALLOCATION"

    def __init__(self, payment_id: str | None, detail: str):
        self.payment_id = payment_id
        self.detail = detail
        super().__init__(f"Corrupt allocation on payment {payment_id}: {detail}")


class ImmutabilityViolationError(DataIntegrityError):
    """Attempted to modify or delete an append-only audit record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
