"""
Payments -- the immutable payment record and its allocation map.

Responsibility:
    Defines ``Payment`` (a posted payment or a reversal), ``PaymentMethod``,
    and the codec for the allocation record persisted with every payment
    (``{"YYYY-MM": "amount", ...}``).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    (a) A non-reversal payment has amount > 0 and no reversed_payment_id.
    (b) A reversal has amount < 0, is_reversal = True and exactly one
        reversed_payment_id.
    - The allocation map is sparse: absence means zero.

Failure modes:
    - InvalidPaymentError when (a)/(b) are violated at construction.
    - InvalidPaymentMethodError for unknown methods.
    - CorruptAllocationError from ``decode_allocation`` on unreadable JSON.

Audit relevance:
    The decoded allocation map is the sole source of truth replayed by the
    paid-balance aggregator; the encoder is deterministic (sorted keys,
    string decimals) so identical allocations store identical bytes.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any

from rent_kernel.domain.months import MonthKey
from rent_kernel.domain.values import ZERO, coerce_date, to_decimal, to_money
from rent_kernel.exceptions import (
    CorruptAllocationError,
    InvalidAmountError,
    InvalidMonthKeyError,
    InvalidPaymentError,
    InvalidPaymentMethodError,
)
from rent_kernel.logging_config import get_logger

logger = get_logger("domain.payments")

Allocation = Mapping[MonthKey, Decimal]


class PaymentMethod(str, Enum):
    """How the tenant paid."""

    CASH = "cash"
    BANK = "bank"

    @classmethod
    def coerce(cls, value: Any) -> PaymentMethod:
        try:
            return cls(value)
        except ValueError as exc:
            raise InvalidPaymentMethodError(
                value, tuple(m.value for m in cls)
            ) from exc


@dataclass(frozen=True)
class Payment:
    """
    A payment or reversal as stored in the tenant's history.

    Contract:
        Immutable snapshot handed to the pure engines.  ``allocation`` is a
        read-only mapping; values are kept exactly as stored (they may be
        non-finite or zero on corrupt rows, which the aggregator skips).
    Guarantees:
        - Invariants (a) and (b) hold.
        - ``amount`` is cent-rounded.
    """

    payment_id: str
    tenant_id: str
    amount: Decimal
    method: PaymentMethod
    payment_date: date
    allocation: Allocation = field(default_factory=dict)
    is_reversal: bool = False
    reversed_payment_id: str | None = None
    reference: str | None = None
    notes: str | None = None
    recorded_by: str | None = None
    recorded_at: datetime | None = None
    unapplied_amount: Decimal = ZERO
    sequence: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_money(self.amount))
        object.__setattr__(self, "method", PaymentMethod.coerce(self.method))
        object.__setattr__(self, "payment_date", coerce_date(self.payment_date, "payment_date"))
        object.__setattr__(self, "unapplied_amount", to_money(self.unapplied_amount))
        object.__setattr__(
            self,
            "allocation",
            MappingProxyType({month: to_decimal(v) for month, v in self.allocation.items()}),
        )

        if self.is_reversal:
            if self.amount >= ZERO:
                raise InvalidPaymentError(self.payment_id, "reversal amount must be negative")
            if not self.reversed_payment_id:
                raise InvalidPaymentError(self.payment_id, "reversal must reference a payment")
            if self.reversed_payment_id == self.payment_id:
                raise InvalidPaymentError(self.payment_id, "reversal cannot reference itself")
        else:
            if self.amount <= ZERO:
                raise InvalidPaymentError(self.payment_id, "payment amount must be positive")
            if self.reversed_payment_id is not None:
                raise InvalidPaymentError(
                    self.payment_id, "only reversals may reference another payment"
                )

    @property
    def month(self) -> MonthKey:
        """Calendar month the payment is dated in."""
        return MonthKey.from_date(self.payment_date)

    @property
    def allocated_total(self) -> Decimal:
        """Sum of the magnitudes of the finite allocation values."""
        return sum(
            (abs(v) for v in self.allocation.values() if v.is_finite()),
            ZERO,
        )

    @property
    def ordering_key(self) -> tuple[date, float, int, str]:
        """Canonical replay order: payment date, record time, insertion sequence, id."""
        recorded = self.recorded_at.timestamp() if self.recorded_at else float("-inf")
        return (self.payment_date, recorded, self.sequence, self.payment_id)


def encode_allocation(allocation: Allocation) -> str:
    """
    Serialize an allocation map for storage.

    Zero entries are dropped (sparse form); keys are sorted; amounts are
    written as strings so no float ever touches the stored record.
    """
    data = {
        str(month): str(to_money(amount))
        for month, amount in sorted(allocation.items())
        if to_money(amount) != ZERO
    }
    return json.dumps(data, sort_keys=True)


def decode_allocation(raw: str | None, payment_id: str | None = None) -> dict[MonthKey, Decimal]:
    """
    Decode a stored allocation record.

    Accepts the string-decimal form written by ``encode_allocation`` and the
    legacy numeric form.  Individual entries with an invalid month key or a
    non-numeric value are skipped and logged; the rest of the record is kept.

    Raises:
        CorruptAllocationError: If the record is not a JSON object.
    """
    if raw is None or raw == "":
        return {}
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as exc:
        raise CorruptAllocationError(payment_id, "invalid JSON") from exc
    if not isinstance(data, dict):
        raise CorruptAllocationError(payment_id, f"expected object, got {type(data).__name__}")

    allocation: dict[MonthKey, Decimal] = {}
    for token, value in data.items():
        try:
            allocation[MonthKey.parse(token)] = to_decimal(value)
        except (InvalidMonthKeyError, InvalidAmountError) as exc:
            logger.warning("allocation_entry_skipped", extra={
                "payment_id": payment_id,
                "month": str(token),
                "error_code": exc.code,
            })
    return allocation
