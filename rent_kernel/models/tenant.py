"""
Module: rent_kernel.models.tenant
Responsibility: ORM persistence for tenants and the rent terms attached to
    them (move-in/out dates, rent override, tenant-level rent history).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - The tenant row is the lock target for the payment write path
      (``SELECT ... FOR UPDATE``); every payment write for a tenant first
      locks this row.
"""

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Date, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rent_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from rent_kernel.models.house import House
    from rent_kernel.models.payment import RentPayment


class Tenant(TrackedBase):
    """
    A person renting a house.

    Guarantees:
        - ``house_id`` may be null (tenant not yet assigned); the rent
          fallback is then the override or zero.
    """

    __tablename__ = "tenants"

    __table_args__ = (
        Index("idx_tenant_house", "house_id"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    house_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("houses.id"),
        nullable=True,
    )

    move_in_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    move_out_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Tenant-specific rent; overrides the house's monthly_rent as fallback
    rent_override: Mapped[Decimal | None] = mapped_column(nullable=True)

    rent_history_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    house: Mapped["House | None"] = relationship(back_populates="tenants")

    payments: Mapped[list["RentPayment"]] = relationship(back_populates="tenant")

    def __repr__(self) -> str:
        return f"<Tenant {self.name} ({self.id})>"
