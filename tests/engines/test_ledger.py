"""
Tests for RentLedger: the month window, rent resolution and allocation
over one tenant's terms and an injected payment snapshot.
"""

from datetime import date
from decimal import Decimal

import pytest

from rent_engines.ledger import RentLedger
from rent_engines.status import MonthStatus, TenantStatus
from rent_kernel.domain.months import MonthKey
from rent_kernel.domain.terms import TenantTerms
from rent_kernel.exceptions import MissingFieldError
from tests.support import house_rate, make_payment, month_map, months, override_rate


def terms(**overrides) -> TenantTerms:
    values = dict(
        tenant_id="tenant-1",
        move_in_date=date(2024, 1, 1),
        monthly_rent=Decimal("1000"),
    )
    values.update(overrides)
    return TenantTerms(**values)


class InMemoryHistory:
    """Minimal PaymentHistorySource."""

    def __init__(self, payments):
        self.payments = payments
        self.calls = []

    def payments_for_tenant(self, tenant_id):
        self.calls.append(tenant_id)
        return [p for p in self.payments if p.tenant_id == tenant_id]


class TestTenantTerms:

    def test_fallback_prefers_override(self):
        assert terms(rent_override=Decimal("900")).fallback_rent == Decimal("900.00")

    def test_fallback_house_rent(self):
        assert terms().fallback_rent == Decimal("1000.00")

    def test_fallback_zero_without_house(self):
        assert terms(monthly_rent=None).fallback_rent == Decimal("0.00")

    def test_from_records_default_sources(self):
        built = TenantTerms.from_records(
            tenant_id="t1",
            move_in_date=date(2024, 1, 1),
            tenant_history_json='[{"effectiveDate": "2024-02-01", "amount": 800}]',
            house_history_json='[{"effectiveDate": "2024-01-01", "amount": 1000}]',
        )
        assert built.tenant_history[0].source.value == "manual"
        assert built.house_history[0].source.value == "house"


class TestLedgerMonths:

    def test_window_from_move_in(self):
        ledger = RentLedger(terms(), ())
        assert ledger.months(date(2024, 3, 15)) == tuple(months("2024-01", "2024-02", "2024-03"))

    def test_window_trimmed_at_move_out(self):
        ledger = RentLedger(terms(move_out_date=date(2024, 2, 10)), ())
        assert ledger.months(date(2024, 3, 15), extra_months=6) == tuple(months("2024-01", "2024-02"))

    def test_missing_move_in(self):
        ledger = RentLedger(terms(move_in_date=None), ())
        with pytest.raises(MissingFieldError):
            ledger.months(date(2024, 3, 1))


class TestLedgerAllocation:

    def test_first_payment_fills_arrears(self):
        ledger = RentLedger(terms(), ())
        outcome = ledger.allocate_payment(Decimal("2500"), date(2024, 3, 15))
        assert outcome.allocation == month_map({
            "2024-01": "1000",
            "2024-02": "1000",
            "2024-03": "500",
        })
        assert outcome.remaining == Decimal("0.00")

    def test_rent_increase_applies_to_new_month(self):
        """House rate rises to 1200 from March; Jan to Mar already paid."""
        history = (
            make_payment("p1", {"2024-01": "1000", "2024-02": "1000"}, payment_date=date(2024, 2, 1)),
            make_payment("p2", {"2024-03": "1200"}, payment_date=date(2024, 3, 5)),
        )
        ledger = RentLedger(
            terms(house_history=(house_rate("2024-03-01", "1200"),)),
            history,
        )
        outcome = ledger.allocate_payment(Decimal("1200"), date(2024, 4, 10))
        assert outcome.allocation == month_map({"2024-04": "1200"})

    def test_prepayment_spills_into_lookahead(self):
        ledger = RentLedger(terms(), (), lookahead_months=2)
        outcome = ledger.allocate_payment(Decimal("3500"), date(2024, 1, 5))
        assert outcome.allocation == month_map({
            "2024-01": "1000",
            "2024-02": "1000",
            "2024-03": "1000",
        })
        assert outcome.remaining == Decimal("500.00")

    def test_zero_lookahead_keeps_excess_unapplied(self):
        ledger = RentLedger(terms(), (), lookahead_months=0)
        outcome = ledger.allocate_payment(Decimal("1500"), date(2024, 1, 5))
        assert outcome.allocation == month_map({"2024-01": "1000"})
        assert outcome.remaining == Decimal("500.00")

    def test_override_history_drives_rent(self):
        ledger = RentLedger(
            terms(tenant_history=(override_rate("2024-01-01", "750"),)),
            (),
        )
        outcome = ledger.allocate_payment(Decimal("1500"), date(2024, 2, 1))
        assert outcome.allocation == month_map({"2024-01": "750", "2024-02": "750"})

    def test_exclude_payment_being_edited(self):
        history = (make_payment("p1", {"2024-01": "1000"}, payment_date=date(2024, 1, 5)),)
        ledger = RentLedger(terms(), history)
        outcome = ledger.allocate_payment(
            Decimal("600"), date(2024, 1, 5), exclude_payment_id="p1"
        )
        assert outcome.allocation == month_map({"2024-01": "600"})

    def test_reversal_unwinds_latest_paid_month(self):
        history = (
            make_payment("p1", {"2024-01": "1000"}, payment_date=date(2024, 1, 5)),
            make_payment("p2", {"2024-02": "1000"}, payment_date=date(2024, 2, 5)),
        )
        ledger = RentLedger(terms(), history)
        outcome = ledger.allocate_reversal(Decimal("1000"))
        assert outcome.allocation == month_map({"2024-02": "-1000"})

    def test_reversal_uses_current_snapshot_not_original_allocation(self):
        """p1 funded January, but February is the latest paid month now."""
        history = (
            make_payment("p1", {"2024-01": "1000"}, payment_date=date(2024, 1, 5)),
            make_payment("p2", {"2024-02": "400"}, payment_date=date(2024, 2, 5)),
        )
        ledger = RentLedger(terms(), history)
        outcome = ledger.allocate_reversal(Decimal("1000"))
        assert outcome.allocation == month_map({"2024-01": "-600", "2024-02": "-400"})

    def test_from_source_reads_injected_history(self):
        source = InMemoryHistory([
            make_payment("p1", {"2024-01": "1000"}),
            make_payment("x1", {"2024-01": "1000"}, tenant_id="tenant-2"),
        ])
        ledger = RentLedger.from_source(terms(), source)
        assert source.calls == ["tenant-1"]
        assert ledger.paid_by_month() == month_map({"2024-01": "1000"})


class TestLedgerViews:

    def test_preview_lists_whole_window(self):
        ledger = RentLedger(terms(), (), lookahead_months=1)
        preview = ledger.preview(Decimal("1500"), date(2024, 2, 15))
        assert [str(line.month) for line in preview.lines] == ["2024-01", "2024-02", "2024-03"]
        assert preview.allocation == month_map({"2024-01": "1000", "2024-02": "500"})

    def test_statement_and_status(self):
        history = (
            make_payment("p1", {"2024-01": "1000", "2024-02": "1000", "2024-03": "300"},
                         payment_date=date(2024, 3, 2)),
        )
        ledger = RentLedger(terms(), history)
        rows = ledger.statement(date(2024, 3, 20))
        assert [r.status for r in rows] == [MonthStatus.PAID, MonthStatus.PAID, MonthStatus.PARTIAL]
        assert rows[2].payments[0].payment_id == "p1"

        report = ledger.status(date(2024, 3, 20))
        assert report.month == MonthKey(2024, 3)
        assert report.status is TenantStatus.ORANGE
        assert report.arrears == Decimal("700.00")
