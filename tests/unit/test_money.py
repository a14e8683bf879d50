"""
Unit tests for money rounding and value coercion.

Every ledger computation rounds through round_money, so these cover the
half-away-from-zero rule and the boundary conversions from stored values.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from rent_kernel.domain.values import (
    ZERO,
    coerce_date,
    round_money,
    to_decimal,
    to_money,
)
from rent_kernel.exceptions import InvalidAmountError, InvalidDateError


class TestRoundMoney:

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("10.005", "10.01"),
            ("10.004", "10.00"),
            ("-10.005", "-10.01"),
            ("0.125", "0.13"),
            ("1000", "1000.00"),
        ],
    )
    def test_half_away_from_zero(self, raw, expected):
        assert round_money(Decimal(raw)) == Decimal(expected)

    def test_result_has_two_places(self):
        assert str(round_money(Decimal("5"))) == "5.00"


class TestToDecimal:

    def test_float_goes_through_str(self):
        assert to_decimal(0.1) == Decimal("0.1")

    def test_string_is_stripped(self):
        assert to_decimal(" 12.50 ") == Decimal("12.50")

    def test_decimal_passes_through(self):
        value = Decimal("3.333")
        assert to_decimal(value) is value

    def test_boolean_rejected(self):
        with pytest.raises(InvalidAmountError):
            to_decimal(True)

    def test_garbage_rejected(self):
        with pytest.raises(InvalidAmountError):
            to_decimal("twelve")

    def test_unsupported_type_rejected(self):
        with pytest.raises(InvalidAmountError):
            to_decimal([1])


class TestToMoney:

    def test_rounds(self):
        assert to_money("99.999") == Decimal("100.00")

    def test_int(self):
        assert to_money(1000) == Decimal("1000.00")

    @pytest.mark.parametrize("raw", ["NaN", "Infinity", "-Infinity"])
    def test_non_finite_rejected(self, raw):
        with pytest.raises(InvalidAmountError):
            to_money(raw)

    def test_zero_constant(self):
        assert to_money(0) == ZERO


class TestCoerceDate:

    def test_date_passes_through(self):
        assert coerce_date(date(2024, 3, 15)) == date(2024, 3, 15)

    def test_datetime_keeps_calendar_date(self):
        assert coerce_date(datetime(2024, 3, 15, 23, 0, tzinfo=timezone.utc)) == date(2024, 3, 15)

    def test_iso_string(self):
        assert coerce_date("2024-03-15") == date(2024, 3, 15)

    def test_iso_timestamp_string(self):
        assert coerce_date("2024-03-15T10:00:00Z") == date(2024, 3, 15)

    @pytest.mark.parametrize("raw", [None, "", "2024-3-5", "2024-13-01", 20240315])
    def test_invalid_rejected(self, raw):
        with pytest.raises(InvalidDateError) as exc_info:
            coerce_date(raw, "payment_date")
        assert exc_info.value.field == "payment_date"
