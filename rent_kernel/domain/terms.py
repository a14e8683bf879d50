"""
Tenant terms -- the rent-relevant facts of one tenancy.

Responsibility:
    Joins a tenant's move-in/out dates, rent override and rent history with
    its house's monthly rent and rent history into one immutable value the
    engines can consume without touching storage.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from rent_kernel.domain.rent_history import (
    RentHistoryEntry,
    RentHistoryTimeline,
    RentSource,
    parse_rent_history,
)
from rent_kernel.domain.values import ZERO, to_money


@dataclass(frozen=True)
class TenantTerms:
    """
    Contract:
        Immutable join of the tenant's fields with its house's.
    Guarantees:
        - ``fallback_rent`` is the tenant's override if set, else the
          house's monthly rent, else zero (tenant without a house).
    """

    tenant_id: str
    move_in_date: date | None
    move_out_date: date | None = None
    rent_override: Decimal | None = None
    monthly_rent: Decimal | None = None
    tenant_history: tuple[RentHistoryEntry, ...] = ()
    house_history: tuple[RentHistoryEntry, ...] = ()
    house_id: str | None = None

    @property
    def fallback_rent(self) -> Decimal:
        if self.rent_override is not None:
            return to_money(self.rent_override)
        if self.monthly_rent is not None:
            return to_money(self.monthly_rent)
        return ZERO

    @property
    def timeline(self) -> RentHistoryTimeline:
        return RentHistoryTimeline.build(self.tenant_history, self.house_history)

    @classmethod
    def from_records(
        cls,
        tenant_id: str,
        move_in_date: date | None,
        move_out_date: date | None = None,
        rent_override: Decimal | None = None,
        monthly_rent: Decimal | None = None,
        tenant_history_json: str | None = None,
        house_history_json: str | None = None,
        house_id: str | None = None,
    ) -> TenantTerms:
        """
        Build terms from stored columns.

        House-owned history entries stored without a source count as
        ``house``; tenant-owned ones as ``manual``.
        """
        return cls(
            tenant_id=tenant_id,
            move_in_date=move_in_date,
            move_out_date=move_out_date,
            rent_override=rent_override,
            monthly_rent=monthly_rent,
            tenant_history=parse_rent_history(tenant_history_json, RentSource.MANUAL),
            house_history=parse_rent_history(house_history_json, RentSource.HOUSE),
            house_id=house_id,
        )
