"""
Rent history -- effective-dated rent rates and their resolution per month.

Responsibility:
    Models ``RentHistoryEntry`` ("starting on this date, rent is this
    amount"), parses/serializes the stored JSON lists owned by houses and
    tenants, merges them into one ``RentHistoryTimeline`` and answers "what
    was rent for this tenant in month M?".

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Timeline order is (effective_date, source priority) with ``house``
      before ``override``/``manual`` on the same date, so a tenant-specific
      rate always wins a tie with the house rate.  Equal keys keep their
      stored order (stable sort).
    - Each month is resolved independently: a rate change never alters
      months before its effective date.

Failure modes:
    - InvalidRentHistoryError when building an entry with a negative or
      non-finite amount or an unknown source.
    - Parsing never raises: malformed JSON and malformed entries are
      skipped and logged (rent_history_malformed, rent_history_entry_skipped).
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from rent_kernel.domain.months import MonthKey
from rent_kernel.domain.values import ZERO, coerce_date, to_money
from rent_kernel.exceptions import InvalidRentHistoryError, ValidationError
from rent_kernel.logging_config import get_logger

logger = get_logger("domain.rent_history")


class RentSource(str, Enum):
    """Who set a rent rate."""

    HOUSE = "house"
    OVERRIDE = "override"
    MANUAL = "manual"

    @property
    def priority(self) -> int:
        """Tie-break rank on equal effective dates (lower sorts first)."""
        return 0 if self is RentSource.HOUSE else 1


@dataclass(frozen=True)
class RentHistoryEntry:
    """
    Starting on ``effective_date``, rent is ``amount``.

    Contract:
        Immutable.  Lists of entries are only ever appended to; a newer entry
        supersedes an older one through date ordering.
    Guarantees:
        - ``amount`` is a cent-rounded, non-negative Decimal.
    """

    effective_date: date
    amount: Decimal
    source: RentSource
    note: str | None = None

    def __post_init__(self) -> None:
        try:
            amount = to_money(self.amount)
            source = RentSource(self.source)
            effective = coerce_date(self.effective_date, "effective_date")
        except (ValidationError, ValueError) as exc:
            raise InvalidRentHistoryError(str(exc)) from exc
        if amount < ZERO:
            raise InvalidRentHistoryError(f"amount must not be negative, got {amount}")
        object.__setattr__(self, "amount", amount)
        object.__setattr__(self, "source", source)
        object.__setattr__(self, "effective_date", effective)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "effectiveDate": self.effective_date.isoformat(),
            "amount": str(self.amount),
            "source": self.source.value,
        }
        if self.note:
            data["note"] = self.note
        return data

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        default_source: RentSource = RentSource.MANUAL,
    ) -> RentHistoryEntry:
        """Build an entry from its stored form; a missing source takes ``default_source``."""
        return cls(
            effective_date=data["effectiveDate"],
            amount=data["amount"],
            source=data.get("source") or default_source,
            note=data.get("note"),
        )


def _sort_key(entry: RentHistoryEntry) -> tuple[date, int]:
    return (entry.effective_date, entry.source.priority)


def parse_rent_history(
    raw: str | Sequence[Mapping[str, Any]] | None,
    default_source: RentSource = RentSource.MANUAL,
) -> tuple[RentHistoryEntry, ...]:
    """
    Parse a stored rent history into entries ordered by effective date.

    Accepts the serialized JSON list, an already-decoded list of dicts, or
    ``None``.  Entries missing ``effectiveDate``/``amount`` or carrying
    invalid values are skipped, never fatal.

    Args:
        raw: Stored history.
        default_source: Source for entries stored without one (house-owned
            lists pass ``RentSource.HOUSE``).
    """
    if raw is None or raw == "":
        return ()

    items: Any = raw
    if isinstance(raw, str):
        try:
            items = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("rent_history_malformed", extra={"reason": "invalid_json"})
            return ()

    if not isinstance(items, list):
        logger.warning("rent_history_malformed", extra={
            "reason": "not_a_list",
            "type": type(items).__name__,
        })
        return ()

    entries: list[RentHistoryEntry] = []
    for index, item in enumerate(items):
        if not isinstance(item, Mapping) or "effectiveDate" not in item or "amount" not in item:
            logger.warning("rent_history_entry_skipped", extra={
                "index": index,
                "reason": "missing_fields",
            })
            continue
        try:
            entries.append(RentHistoryEntry.from_dict(item, default_source))
        except InvalidRentHistoryError as exc:
            logger.warning("rent_history_entry_skipped", extra={
                "index": index,
                "reason": exc.reason,
            })

    return tuple(sorted(entries, key=_sort_key))


def serialize_rent_history(entries: Iterable[RentHistoryEntry]) -> str:
    """Serialize entries to the stored JSON list, ordered by effective date."""
    ordered = sorted(entries, key=_sort_key)
    return json.dumps([entry.to_dict() for entry in ordered])


def append_rent_history(
    existing: str | Sequence[RentHistoryEntry] | None,
    entry: RentHistoryEntry,
    default_source: RentSource = RentSource.MANUAL,
) -> str:
    """
    Append a rate change and return the new serialized history.

    An existing entry with the same effective date AND source is superseded
    by ``entry``; everything else is kept.  Unlike the legacy browser client,
    which replaced any same-date entry whatever its source, a same-day house
    change and tenant override are both kept on purpose: the resolver ranks
    them by source priority.
    """
    if existing is None or isinstance(existing, str):
        history = parse_rent_history(existing, default_source)
    else:
        history = tuple(existing)
    kept = [
        item for item in history
        if not (item.effective_date == entry.effective_date and item.source == entry.source)
    ]
    kept.append(entry)
    return serialize_rent_history(kept)


@dataclass(frozen=True)
class RentHistoryTimeline:
    """
    The merged, ordered rate history used to resolve rent for one tenant.

    Contract:
        Built by ``RentHistoryTimeline.build``; never persisted.
    Guarantees:
        - ``entries`` are ordered by (effective_date, source priority).
    """

    entries: tuple[RentHistoryEntry, ...]

    @classmethod
    def build(
        cls,
        tenant_history: Sequence[RentHistoryEntry],
        house_history: Sequence[RentHistoryEntry],
    ) -> RentHistoryTimeline:
        """
        Choose and merge the histories that govern a tenant.

        - Tenant has any non-house entries: house entries + those entries.
        - Otherwise, house has entries: house entries alone.
        - Otherwise: the tenant's raw entries (possibly empty).
        """
        tenant_specific = [e for e in tenant_history if e.source is not RentSource.HOUSE]
        if tenant_specific:
            base = [*house_history, *tenant_specific]
        elif house_history:
            base = list(house_history)
        else:
            base = list(tenant_history)
        return cls(entries=tuple(sorted(base, key=_sort_key)))

    def entry_for(self, month: MonthKey) -> RentHistoryEntry | None:
        """Last entry in timeline order effective on or before the month's first day."""
        cutoff = month.first_day
        found: RentHistoryEntry | None = None
        for entry in self.entries:
            if entry.effective_date <= cutoff:
                found = entry
            else:
                break
        return found

    def rent_for(self, month: MonthKey, fallback_rent: Decimal) -> Decimal:
        entry = self.entry_for(month)
        return entry.amount if entry is not None else to_money(fallback_rent)


def rent_for_month(
    month: MonthKey,
    tenant_history: Sequence[RentHistoryEntry],
    house_history: Sequence[RentHistoryEntry],
    fallback_rent: Decimal,
) -> Decimal:
    """
    Rent due for ``month``.

    Returns the amount of the last timeline entry effective on or before
    the first day of the month, or ``fallback_rent`` (the tenant's rent
    override if set, else the house's current monthly rent) if none is.
    """
    timeline = RentHistoryTimeline.build(tenant_history, house_history)
    return timeline.rent_for(month, fallback_rent)


def rent_by_month(
    months: Iterable[MonthKey],
    tenant_history: Sequence[RentHistoryEntry],
    house_history: Sequence[RentHistoryEntry],
    fallback_rent: Decimal,
) -> dict[MonthKey, Decimal]:
    """Rent due for each of ``months``, resolved independently per month."""
    timeline = RentHistoryTimeline.build(tenant_history, house_history)
    return {month: timeline.rent_for(month, fallback_rent) for month in months}
