"""
Module: rent_kernel.models.house
Responsibility: ORM persistence for rental houses: the current monthly rent
    and the house-level effective-dated rent history.
Architecture position: Kernel > Models.  May import from db/base.py only.

Audit relevance:
    ``rent_history_json`` is append-only (see
    ``rent_kernel.domain.rent_history.append_rent_history``); ``monthly_rent``
    is the fallback for months no history entry covers.
"""

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rent_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from rent_kernel.models.tenant import Tenant


class House(TrackedBase):
    """A rentable property."""

    __tablename__ = "houses"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    address: Mapped[str | None] = mapped_column(String(500), nullable=True)

    monthly_rent: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # JSON list of {"effectiveDate", "amount", "source", "note"?}
    rent_history_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    tenants: Mapped[list["Tenant"]] = relationship(back_populates="house")

    def __repr__(self) -> str:
        return f"<House {self.name}: {self.monthly_rent}>"
