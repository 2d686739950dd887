"""
Tests for money and rounding primitives.
"""

from decimal import Decimal

import pytest

from quoteflow.errors import InvalidInput
from quoteflow.pricing.money import (
    ceil_to_tenth,
    format_money,
    round_cents,
    round_up_to_increment,
    to_decimal,
)


class TestRoundCents:

    def test_half_rounds_up(self):
        assert round_cents(Decimal("2.345")) == Decimal("2.35")

    def test_below_half_rounds_down(self):
        assert round_cents(Decimal("2.344")) == Decimal("2.34")

    def test_negative_half_rounds_away_from_zero(self):
        assert round_cents(Decimal("-0.005")) == Decimal("-0.01")

    def test_accepts_strings_and_ints(self):
        assert round_cents("10") == Decimal("10.00")
        assert round_cents(3) == Decimal("3.00")


class TestRoundUpToIncrement:

    def test_rounds_up_to_next_increment(self):
        assert round_up_to_increment(Decimal("67.60")) == Decimal("70.00")

    def test_exact_multiple_unchanged(self):
        assert round_up_to_increment(Decimal("75.00")) == Decimal("75.00")

    def test_just_above_multiple(self):
        assert round_up_to_increment(Decimal("72.51")) == Decimal("75.00")

    def test_effective_rate_example(self):
        assert round_up_to_increment(Decimal("65") * Decimal("1.15")) == Decimal("75.00")

    def test_zero(self):
        assert round_up_to_increment(Decimal("0")) == Decimal("0.00")

    def test_custom_increment(self):
        assert round_up_to_increment(Decimal("10.01"), Decimal("5")) == Decimal("15.00")


class TestCeilToTenth:

    def test_rounds_up(self):
        assert ceil_to_tenth(Decimal("2.5556")) == Decimal("2.6")

    def test_exact_tenth_unchanged(self):
        assert ceil_to_tenth(Decimal("2.6")) == Decimal("2.6")

    def test_tiny_fraction_rounds_up(self):
        assert ceil_to_tenth(Decimal("1.0001")) == Decimal("1.1")


class TestToDecimal:

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-Infinity", "abc", None])
    def test_rejects_non_finite_and_garbage(self, value):
        with pytest.raises(InvalidInput):
            to_decimal(value)

    def test_rejects_booleans(self):
        with pytest.raises(InvalidInput):
            to_decimal(True)

    def test_float_goes_through_str(self):
        assert to_decimal(0.1) == Decimal("0.1")

    def test_error_names_field(self):
        with pytest.raises(InvalidInput) as exc:
            to_decimal("x", "base_rate")
        assert exc.value.context["field"] == "base_rate"


class TestFormatMoney:

    def test_thousands_separator(self):
        assert format_money(Decimal("1234")) == "$1,234.00"

    def test_rounds_to_cents(self):
        assert format_money("74.745") == "$74.75"
