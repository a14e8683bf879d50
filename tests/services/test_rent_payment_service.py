"""
Integration tests for RentPaymentService against a real database.

Covers:
- Recording payments (oldest-unpaid-first, persisted allocation record)
- Reversals: LIFO unwind, no double reversal, no reversal of a reversal,
  partially absorbed and unabsorbable reversals
- The bounded edit path (latest payment, current month only), including
  same-instant payments ordered by insertion sequence
- The audit trail: create, edit and reversal events, previous state kept,
  append-only rows
- Request validation before any I/O
- Corrupt stored allocations are logged and skipped
- Read-side views: preview, statement, status
"""

import json
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from rent_engines.status import MonthStatus, TenantStatus
from rent_kernel.db.engine import get_session_factory, reset_engine, session_scope
from rent_kernel.domain.payments import decode_allocation
from rent_kernel.exceptions import (
    ImmutabilityViolationError,
    InvalidAmountError,
    InvalidDateError,
    InvalidPaymentMethodError,
    MissingFieldError,
    PaymentAlreadyReversedError,
    PaymentNotEditableError,
    PaymentNotFoundError,
    ReversalNotAbsorbableError,
    ReversalOfReversalError,
    TenantNotFoundError,
)
from rent_kernel.models.audit_event import RentAuditAction, RentAuditEvent
from rent_kernel.models.house import House
from rent_kernel.models.payment import RentPayment
from rent_kernel.models.tenant import Tenant
from rent_services import PaymentEdit, PaymentRequest, ReversalRequest, build_rent_payment_service
from tests.support import house_rate, month_map


def pay(service, tenant_id, amount, on="2024-03-05", method="cash", **kwargs):
    return service.record_payment(
        PaymentRequest(
            tenant_id=tenant_id,
            amount=amount,
            method=method,
            payment_date=on,
            **kwargs,
        )
    )


def row_count(session_factory) -> int:
    with session_scope(session_factory) as session:
        return session.scalar(select(func.count()).select_from(RentPayment))


def stored_allocation(session_factory, payment_id) -> dict:
    with session_scope(session_factory) as session:
        return json.loads(session.get(RentPayment, payment_id).allocation_json)


def paid(service, tenant_id, through="2024-03-20"):
    return {
        str(row.month): row.paid
        for row in service.tenant_statement(tenant_id, date.fromisoformat(through))
    }


# =============================================================================
# Recording
# =============================================================================


class TestRecordPayment:

    def test_arrears_paid_oldest_first(self, service, tenant_id, session_factory):
        result = pay(service, tenant_id, "2500", on="2024-03-15")

        assert result.allocation == month_map({
            "2024-01": "1000",
            "2024-02": "1000",
            "2024-03": "500",
        })
        assert result.remaining == Decimal("0.00")
        assert stored_allocation(session_factory, result.payment_id) == {
            "2024-01": "1000.00",
            "2024-02": "1000.00",
            "2024-03": "500.00",
        }

    def test_next_payment_continues_where_previous_stopped(self, service, tenant_id):
        pay(service, tenant_id, "2500", on="2024-03-15")
        second = pay(service, tenant_id, "800", on="2024-03-16")

        assert second.allocation == month_map({"2024-03": "500", "2024-04": "300"})

    def test_rent_increase_scenario(self, service, seed_tenant):
        tenant = seed_tenant(house_history=[house_rate("2024-03-01", "1200")])
        pay(service, tenant, "3200", on="2024-03-10")

        result = pay(service, tenant, "1200", on="2024-04-10")

        assert result.allocation == month_map({"2024-04": "1200"})

    def test_recorded_payment_fields(self, service, tenant_id, deterministic_clock):
        result = pay(
            service, tenant_id, "100.005", method="bank",
            reference="TX-42", notes="March", actor_id="clerk-7",
        )
        payment = result.payment

        assert payment.amount == Decimal("100.01")
        assert payment.method.value == "bank"
        assert payment.reference == "TX-42"
        assert payment.recorded_by == "clerk-7"
        assert payment.recorded_at == deterministic_clock.now()
        assert not payment.is_reversal

    def test_excess_beyond_window_is_unapplied(self, service, seed_tenant, session_factory):
        tenant = seed_tenant(move_out_date=date(2024, 2, 10))
        result = pay(service, tenant, "2300")

        assert result.allocation == month_map({"2024-01": "1000", "2024-02": "1000"})
        assert result.remaining == Decimal("300.00")
        with session_scope(session_factory) as session:
            assert session.get(RentPayment, result.payment_id).unapplied_amount == Decimal("300.00")

    def test_logs_carry_tenant_context(self, service, tenant_id, captured_logs):
        pay(service, tenant_id, "1000", actor_id="clerk-1")

        recorded = [r for r in captured_logs() if r["message"] == "payment_recorded"]
        assert len(recorded) == 1
        assert recorded[0]["tenant_id"] == tenant_id
        assert recorded[0]["actor_id"] == "clerk-1"
        assert recorded[0]["months"] == ["2024-01"]


class TestRequestValidation:

    def test_missing_fields_listed(self, service):
        with pytest.raises(MissingFieldError) as exc_info:
            service.record_payment(
                PaymentRequest(tenant_id=None, amount="", method=None, payment_date="2024-03-01")
            )
        assert exc_info.value.fields == ("tenant_id", "amount", "method")

    @pytest.mark.parametrize("amount", ["0", "-10", "abc", "NaN"])
    def test_bad_amount(self, service, tenant_id, session_factory, amount):
        with pytest.raises(InvalidAmountError):
            pay(service, tenant_id, amount)
        assert row_count(session_factory) == 0

    def test_bad_method(self, service, tenant_id):
        with pytest.raises(InvalidPaymentMethodError):
            pay(service, tenant_id, "100", method="cheque")

    def test_bad_date(self, service, tenant_id):
        with pytest.raises(InvalidDateError):
            pay(service, tenant_id, "100", on="yesterday")

    def test_unknown_tenant(self, service, session_factory):
        with pytest.raises(TenantNotFoundError):
            pay(service, "no-such-tenant", "100")
        assert row_count(session_factory) == 0

    def test_tenant_without_move_in(self, service, seed_tenant, session_factory):
        tenant = seed_tenant(move_in_date=None)
        with pytest.raises(MissingFieldError):
            pay(service, tenant, "100")
        assert row_count(session_factory) == 0


# =============================================================================
# Reversals
# =============================================================================


class TestReversePayment:

    def test_unwinds_most_recent_paid_month(self, service, tenant_id):
        pay(service, tenant_id, "1000", on="2024-01-10")
        second = pay(service, tenant_id, "1000", on="2024-02-10")

        reversal = service.reverse_payment(ReversalRequest(payment_id=second.payment_id))

        assert reversal.allocation == month_map({"2024-02": "-1000"})
        assert reversal.payment.is_reversal
        assert reversal.payment.amount == Decimal("-1000.00")
        assert reversal.payment.reversed_payment_id == second.payment_id
        assert reversal.payment.payment_date == date(2024, 3, 20)
        assert paid(service, tenant_id) == {
            "2024-01": Decimal("1000.00"),
            "2024-02": Decimal("0.00"),
            "2024-03": Decimal("0.00"),
        }

    def test_reversal_targets_current_snapshot(self, service, tenant_id):
        first = pay(service, tenant_id, "1000", on="2024-01-10")
        pay(service, tenant_id, "1000", on="2024-02-10")

        reversal = service.reverse_payment(ReversalRequest(payment_id=first.payment_id))

        assert reversal.allocation == month_map({"2024-02": "-1000"})

    def test_explicit_reversal_date_and_method(self, service, tenant_id):
        original = pay(service, tenant_id, "500", method="bank", reference="TX-1")
        reversal = service.reverse_payment(
            ReversalRequest(payment_id=original.payment_id, payment_date="2024-03-18", notes="bounced")
        )

        assert reversal.payment.payment_date == date(2024, 3, 18)
        assert reversal.payment.method.value == "bank"
        assert reversal.payment.reference == "TX-1"
        assert reversal.payment.notes == "bounced"

    def test_reversal_of_reversal_rejected(self, service, tenant_id, session_factory):
        original = pay(service, tenant_id, "1000")
        reversal = service.reverse_payment(ReversalRequest(payment_id=original.payment_id))
        before = row_count(session_factory)

        with pytest.raises(ReversalOfReversalError):
            service.reverse_payment(ReversalRequest(payment_id=reversal.payment_id))

        assert row_count(session_factory) == before

    def test_second_reversal_rejected_and_nothing_changes(self, service, tenant_id, session_factory):
        pay(service, tenant_id, "1000", on="2024-01-10")
        target = pay(service, tenant_id, "1000", on="2024-02-10")
        service.reverse_payment(ReversalRequest(payment_id=target.payment_id))
        before_rows = row_count(session_factory)
        before_paid = paid(service, tenant_id)

        with pytest.raises(PaymentAlreadyReversedError) as exc_info:
            service.reverse_payment(ReversalRequest(payment_id=target.payment_id))

        assert exc_info.value.payment_id == target.payment_id
        assert row_count(session_factory) == before_rows
        assert paid(service, tenant_id) == before_paid

    def test_stored_reversal_outside_history_blocks(self, service, tenant_id, seed_tenant, session_factory):
        """The uniqueness query on reversed_payment_id is authoritative, not the tenant's history."""
        original = pay(service, tenant_id, "1000")
        other = seed_tenant(name="Other")
        with session_scope(session_factory) as session:
            session.add(RentPayment(
                id="stray-reversal",
                tenant_id=other,
                amount=Decimal("-1000"),
                method="cash",
                payment_date=date(2024, 3, 6),
                allocation_json="{}",
                is_reversal=True,
                reversed_payment_id=original.payment_id,
                recorded_at=datetime(2024, 3, 6, 9, tzinfo=timezone.utc),
                sequence=1,
            ))

        with pytest.raises(PaymentAlreadyReversedError) as exc_info:
            service.reverse_payment(ReversalRequest(payment_id=original.payment_id))

        assert exc_info.value.reversal_id == "stray-reversal"
        assert row_count(session_factory) == 2

    def test_unknown_payment(self, service):
        with pytest.raises(PaymentNotFoundError):
            service.reverse_payment(ReversalRequest(payment_id="missing"))

    def test_missing_payment_id(self, service):
        with pytest.raises(MissingFieldError):
            service.reverse_payment(ReversalRequest(payment_id=None))

    def test_partially_absorbed_reversal_is_recorded(self, service, seed_tenant, captured_logs):
        tenant = seed_tenant(move_out_date=date(2024, 1, 31))
        first = pay(service, tenant, "700", on="2024-01-10")
        second = pay(service, tenant, "500", on="2024-01-11")
        assert second.remaining == Decimal("200.00")
        service.reverse_payment(ReversalRequest(payment_id=first.payment_id))

        reversal = service.reverse_payment(ReversalRequest(payment_id=second.payment_id))

        assert reversal.allocation == month_map({"2024-01": "-300"})
        assert reversal.remaining == Decimal("200.00")
        assert reversal.payment.unapplied_amount == Decimal("200.00")
        assert any(r["message"] == "reversal_partially_absorbed" for r in captured_logs())

    def test_unabsorbable_reversal_rejected(self, service, seed_tenant, session_factory):
        tenant = seed_tenant(move_out_date=date(2024, 1, 31))
        first = pay(service, tenant, "1000", on="2024-01-10")
        excess = pay(service, tenant, "500", on="2024-01-11")
        assert excess.allocation == {}
        service.reverse_payment(ReversalRequest(payment_id=first.payment_id))
        before = row_count(session_factory)

        with pytest.raises(ReversalNotAbsorbableError):
            service.reverse_payment(ReversalRequest(payment_id=excess.payment_id))

        assert row_count(session_factory) == before


# =============================================================================
# Edits
# =============================================================================


class TestEditPayment:

    def test_edit_recomputes_allocation(self, service, tenant_id, session_factory, captured_logs):
        original = pay(service, tenant_id, "1000", on="2024-03-05")

        edited = service.edit_payment(PaymentEdit(payment_id=original.payment_id, amount="2500"))

        assert edited.payment_id == original.payment_id
        assert edited.allocation == month_map({
            "2024-01": "1000",
            "2024-02": "1000",
            "2024-03": "500",
        })
        assert edited.payment.amount == Decimal("2500.00")
        assert edited.payment.recorded_at == original.payment.recorded_at
        assert row_count(session_factory) == 1
        assert stored_allocation(session_factory, original.payment_id)["2024-03"] == "500.00"
        edits = [r for r in captured_logs() if r["message"] == "payment_edited"]
        assert edits[0]["previous_amount"] == "1000.00"

    def test_edit_down_frees_months(self, service, tenant_id):
        pay(service, tenant_id, "1000", on="2024-03-01")
        latest = pay(service, tenant_id, "2000", on="2024-03-05")

        service.edit_payment(PaymentEdit(payment_id=latest.payment_id, amount="500"))

        assert paid(service, tenant_id) == {
            "2024-01": Decimal("1000.00"),
            "2024-02": Decimal("500.00"),
            "2024-03": Decimal("0.00"),
        }

    def test_edit_other_fields(self, service, tenant_id):
        original = pay(service, tenant_id, "1000", on="2024-03-05")
        edited = service.edit_payment(
            PaymentEdit(
                payment_id=original.payment_id,
                amount="1000",
                payment_date="2024-03-07",
                method="bank",
                reference="TX-9",
            )
        )
        assert edited.payment.payment_date == date(2024, 3, 7)
        assert edited.payment.method.value == "bank"
        assert edited.payment.reference == "TX-9"

    def test_only_latest_payment_editable(self, service, tenant_id):
        first = pay(service, tenant_id, "1000", on="2024-03-01")
        pay(service, tenant_id, "1000", on="2024-03-05")

        with pytest.raises(PaymentNotEditableError) as exc_info:
            service.edit_payment(PaymentEdit(payment_id=first.payment_id, amount="900"))
        assert exc_info.value.reason == "not_latest"

    def test_same_day_same_instant_latest_is_last_recorded(self, service, tenant_id, session_factory):
        """The clock does not move between these writes; insertion order decides."""
        first = pay(service, tenant_id, "400", on="2024-03-05")
        second = pay(service, tenant_id, "300", on="2024-03-05")
        assert first.payment.recorded_at == second.payment.recorded_at
        assert (first.payment.sequence, second.payment.sequence) == (1, 2)

        with pytest.raises(PaymentNotEditableError) as exc_info:
            service.edit_payment(PaymentEdit(payment_id=first.payment_id, amount="450"))
        assert exc_info.value.reason == "not_latest"

        edited = service.edit_payment(PaymentEdit(payment_id=second.payment_id, amount="350"))
        assert edited.payment.sequence == 2
        assert edited.allocation == month_map({"2024-01": "350"})

    def test_previous_month_payment_not_editable(self, service, tenant_id):
        old = pay(service, tenant_id, "1000", on="2024-02-28")

        with pytest.raises(PaymentNotEditableError) as exc_info:
            service.edit_payment(PaymentEdit(payment_id=old.payment_id, amount="900"))
        assert exc_info.value.reason == "not_current_month"

    def test_cannot_move_out_of_current_month(self, service, tenant_id, session_factory):
        original = pay(service, tenant_id, "1000", on="2024-03-05")

        with pytest.raises(PaymentNotEditableError) as exc_info:
            service.edit_payment(
                PaymentEdit(payment_id=original.payment_id, amount="1000", payment_date="2024-02-05")
            )
        assert exc_info.value.reason == "date_outside_current_month"
        with session_scope(session_factory) as session:
            assert session.get(RentPayment, original.payment_id).payment_date == date(2024, 3, 5)

    def test_reversed_payment_not_editable(self, service, tenant_id):
        original = pay(service, tenant_id, "1000", on="2024-03-05")
        reversal = service.reverse_payment(ReversalRequest(payment_id=original.payment_id))

        with pytest.raises(PaymentNotEditableError) as exc_info:
            service.edit_payment(PaymentEdit(payment_id=original.payment_id, amount="900"))
        assert exc_info.value.reason == "reversed"

        with pytest.raises(PaymentNotEditableError) as exc_info:
            service.edit_payment(PaymentEdit(payment_id=reversal.payment_id, amount="900"))
        assert exc_info.value.reason == "is_reversal"

    def test_edit_requires_positive_amount(self, service, tenant_id):
        original = pay(service, tenant_id, "1000")
        with pytest.raises(InvalidAmountError):
            service.edit_payment(PaymentEdit(payment_id=original.payment_id, amount="-1"))


# =============================================================================
# Stored data and read side
# =============================================================================


class TestAuditTrail:

    def test_create_is_audited(self, service, tenant_id, deterministic_clock):
        recorded = pay(service, tenant_id, "1000", actor_id="clerk-1")

        trail = service.payment_audit_trail(recorded.payment_id)

        assert [e.action for e in trail] == [RentAuditAction.PAYMENT_CREATED]
        assert trail[0].actor_id == "clerk-1"
        assert trail[0].tenant_id == tenant_id
        assert trail[0].before is None
        assert trail[0].after["amount"] == "1000.00"
        assert trail[0].occurred_at == deterministic_clock.now()

    def test_edit_keeps_previous_allocation(self, service, tenant_id, deterministic_clock, session_factory):
        recorded = pay(service, tenant_id, "1000", actor_id="clerk-1")
        deterministic_clock.advance(60)
        service.edit_payment(
            PaymentEdit(payment_id=recorded.payment_id, amount="2500", actor_id="clerk-2")
        )

        created, updated = service.payment_audit_trail(recorded.payment_id)

        assert updated.action == RentAuditAction.PAYMENT_UPDATED
        assert updated.actor_id == "clerk-2"
        assert (updated.occurred_at - created.occurred_at).total_seconds() == 60
        assert updated.before["amount"] == "1000.00"
        assert decode_allocation(updated.before["allocation"]) == month_map({"2024-01": "1000"})
        assert decode_allocation(updated.after["allocation"]) == month_map(
            {"2024-01": "1000", "2024-02": "1000", "2024-03": "500"}
        )
        assert json.loads(updated.after["allocation"]) == stored_allocation(session_factory, recorded.payment_id)

    def test_reversal_audited_against_reversed_payment(self, service, tenant_id):
        recorded = pay(service, tenant_id, "1000")
        reversal = service.reverse_payment(
            ReversalRequest(payment_id=recorded.payment_id, actor_id="manager")
        )

        trail = service.payment_audit_trail(recorded.payment_id)

        assert [e.action for e in trail] == [
            RentAuditAction.PAYMENT_CREATED,
            RentAuditAction.PAYMENT_REVERSED,
        ]
        assert trail[1].actor_id == "manager"
        assert trail[1].after["payment_id"] == reversal.payment_id
        assert trail[1].after["amount"] == "-1000.00"

    def test_rejected_write_leaves_no_audit_event(self, service, tenant_id):
        first = pay(service, tenant_id, "1000", on="2024-03-01")
        pay(service, tenant_id, "1000", on="2024-03-05")

        with pytest.raises(PaymentNotEditableError):
            service.edit_payment(PaymentEdit(payment_id=first.payment_id, amount="900"))

        assert [e.action for e in service.payment_audit_trail(first.payment_id)] == [
            RentAuditAction.PAYMENT_CREATED,
        ]

    def test_audit_events_are_append_only(self, service, tenant_id, session_factory):
        pay(service, tenant_id, "1000")

        with pytest.raises(ImmutabilityViolationError):
            with session_scope(session_factory) as session:
                event = session.execute(select(RentAuditEvent)).scalars().one()
                event.actor_id = "someone-else"

        with pytest.raises(ImmutabilityViolationError):
            with session_scope(session_factory) as session:
                session.delete(session.execute(select(RentAuditEvent)).scalars().one())

        with session_scope(session_factory) as session:
            assert session.scalar(select(func.count()).select_from(RentAuditEvent)) == 1


class TestCorruptStoredAllocation:

    def test_corrupt_row_logged_and_skipped(self, service, tenant_id, session_factory, captured_logs):
        with session_scope(session_factory) as session:
            session.add(RentPayment(
                id="corrupt-1",
                tenant_id=tenant_id,
                amount=Decimal("1000"),
                method="cash",
                payment_date=date(2024, 1, 10),
                allocation_json="{not json",
                recorded_at=datetime(2024, 1, 10, 9, tzinfo=timezone.utc),
            ))

        result = pay(service, tenant_id, "1000")

        assert result.allocation == month_map({"2024-01": "1000"})
        skipped = [r for r in captured_logs() if r["message"] == "corrupt_allocation_skipped"]
        assert skipped and skipped[0]["payment_id"] == "corrupt-1"


class TestReadViews:

    def test_preview_writes_nothing(self, service, tenant_id, session_factory):
        preview = service.preview_allocation(tenant_id, "1500", "2024-02-01")

        assert preview.allocation == month_map({"2024-01": "1000", "2024-02": "500"})
        assert row_count(session_factory) == 0

    def test_preview_defaults_to_today(self, service, tenant_id):
        preview = service.preview_allocation(tenant_id, "100")
        assert str(preview.lines[0].month) == "2024-01"
        assert str(preview.lines[-1].month) == "2026-03"

    def test_statement(self, service, tenant_id):
        pay(service, tenant_id, "1500")

        rows = service.tenant_statement(tenant_id)

        assert [r.status for r in rows] == [MonthStatus.PAID, MonthStatus.PARTIAL, MonthStatus.UNPAID]
        assert rows[1].balance == Decimal("500.00")

    def test_status(self, service, tenant_id):
        pay(service, tenant_id, "2500")

        report = service.tenant_status(tenant_id)

        assert report.status is TenantStatus.ORANGE
        assert report.arrears == Decimal("500.00")

    def test_status_green_when_current_month_paid(self, service, tenant_id):
        pay(service, tenant_id, "3000")
        assert service.tenant_status(tenant_id).status is TenantStatus.GREEN

    def test_unknown_tenant_statement(self, service):
        with pytest.raises(TenantNotFoundError):
            service.tenant_statement("missing")


class TestBuildFromConfig:

    def test_builds_service_bound_to_configured_database(self, tmp_path, deterministic_clock):
        db_path = tmp_path / "configured.db"
        config_path = tmp_path / "rent.yaml"
        config_path.write_text(
            f"database:\n  url: sqlite:///{db_path}\nledger:\n  lookahead_months: 0\n"
        )
        try:
            service = build_rent_payment_service(
                config_path, clock=deterministic_clock, create_schema=True
            )
            with session_scope(get_session_factory()) as session:
                house = House(name="Configured", monthly_rent=Decimal("1000"))
                session.add(house)
                session.flush()
                tenant = Tenant(name="T", house_id=house.id, move_in_date=date(2024, 3, 1))
                session.add(tenant)
                session.flush()
                tenant_id = tenant.id

            result = pay(service, tenant_id, "1500")

            assert result.allocation == month_map({"2024-03": "1000"})
            assert result.remaining == Decimal("500.00")
            assert db_path.exists()
        finally:
            reset_engine()
