"""
Tests for delivery dates, cutoffs and turnaround options.
Naive datetimes are business-local (America/Edmonton). 2026-03-10 is a Tuesday.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from quoteflow.errors import InvalidInput
from quoteflow.models.enums import TurnaroundType
from quoteflow.pricing.turnaround import (
    business_now,
    cutoff_available,
    delivery_date,
    is_business_day,
    is_same_day_eligible,
    next_business_day,
    order_start_date,
    standard_days,
    turnaround_options,
)
from quoteflow.schemas.turnaround import SameDayRule, TurnaroundDefinition

TUESDAY_MORNING = datetime(2026, 3, 10, 10, 0)
FRIDAY_MORNING = datetime(2026, 3, 13, 10, 0)
SATURDAY = datetime(2026, 3, 14, 12, 0)


class TestStandardDays:

    @pytest.mark.parametrize("pages, days", [
        (Decimal("1"), 2),
        (Decimal("2.6"), 2),
        (Decimal("3"), 3),
        (Decimal("5"), 4),
        (Decimal("10"), 6),
    ])
    def test_formula(self, pages, days):
        assert standard_days(pages) == days

    def test_less_than_one_page_rejected(self):
        with pytest.raises(InvalidInput):
            standard_days(Decimal("0.5"))


class TestBusinessDays:

    def test_weekend_is_not_a_business_day(self):
        assert not is_business_day(date(2026, 3, 14))
        assert is_business_day(date(2026, 3, 13))

    def test_holiday_is_not_a_business_day(self):
        assert not is_business_day(date(2026, 3, 11), [date(2026, 3, 11)])

    def test_next_business_day_skips_weekend(self):
        assert next_business_day(date(2026, 3, 13)) == date(2026, 3, 16)


class TestOrderStartDate:

    def test_before_cutoff_counts_today(self):
        assert order_start_date(TUESDAY_MORNING) == date(2026, 3, 10)

    def test_after_daily_cutoff_counts_tomorrow(self):
        assert order_start_date(datetime(2026, 3, 10, 21, 30)) == date(2026, 3, 11)

    def test_weekend_counts_monday(self):
        assert order_start_date(SATURDAY) == date(2026, 3, 16)

    def test_after_cutoff_before_holiday(self):
        start = order_start_date(datetime(2026, 3, 10, 22, 0), holidays=[date(2026, 3, 11)])
        assert start == date(2026, 3, 12)

    def test_aware_time_is_converted_to_business_zone(self):
        # 02:00 UTC on the 11th is 20:00 on the 10th in Edmonton
        assert order_start_date(datetime(2026, 3, 11, 2, 0, tzinfo=timezone.utc)) == date(2026, 3, 10)


class TestDeliveryDate:

    def test_two_business_days(self):
        assert delivery_date(2, now=TUESDAY_MORNING) == date(2026, 3, 12)

    def test_skips_weekend(self):
        assert delivery_date(2, now=FRIDAY_MORNING) == date(2026, 3, 17)

    def test_skips_holiday(self):
        assert delivery_date(2, [date(2026, 3, 16)], FRIDAY_MORNING) == date(2026, 3, 18)

    def test_zero_days_is_start_date(self):
        assert delivery_date(0, now=SATURDAY) == date(2026, 3, 16)

    def test_negative_days_rejected(self):
        with pytest.raises(InvalidInput):
            delivery_date(-1, now=TUESDAY_MORNING)


class TestCutoffs:

    def test_before_cutoff(self):
        assert cutoff_available(16, 30, datetime(2026, 3, 10, 16, 29))

    def test_at_cutoff_is_closed(self):
        assert not cutoff_available(16, 30, datetime(2026, 3, 10, 16, 30))

    def test_closed_on_weekends(self):
        assert not cutoff_available(16, 30, datetime(2026, 3, 14, 9, 0))

    def test_unknown_timezone_rejected(self):
        with pytest.raises(InvalidInput):
            business_now(TUESDAY_MORNING, "Not/AZone")


class TestSameDayEligibility:

    RULE = SameDayRule(
        source_language="pt", target_language="en", document_type="birth_certificate", intended_use="immigration",
    )

    def test_matching_rule(self):
        assert is_same_day_eligible("pt", "en", "birth_certificate", "immigration", [self.RULE])

    def test_no_matching_rule(self):
        assert not is_same_day_eligible("es", "en", "birth_certificate", "immigration", [self.RULE])

    def test_inactive_rule_ignored(self):
        rule = self.RULE.model_copy(update={"is_active": False})
        assert not is_same_day_eligible("pt", "en", "birth_certificate", "immigration", [rule])


class TestTurnaroundOptions:

    def _options(self, now, eligible=True, **kwargs):
        options = turnaround_options(Decimal("2.6"), Decimal("170.00"), eligible, now=now, **kwargs)
        return {o.turnaround_type: o for o in options}

    def test_all_tiers_open_in_the_morning(self):
        options = self._options(TUESDAY_MORNING)

        standard = options[TurnaroundType.STANDARD]
        assert standard.fee == Decimal("0.00")
        assert standard.business_days == 2
        assert standard.delivery_date == date(2026, 3, 12)
        assert standard.available

        rush = options[TurnaroundType.RUSH]
        assert rush.fee == Decimal("51.00")
        assert rush.business_days == 1
        assert rush.delivery_date == date(2026, 3, 11)
        assert rush.available

        same_day = options[TurnaroundType.SAME_DAY]
        assert same_day.fee == Decimal("170.00")
        assert same_day.delivery_date == date(2026, 3, 10)
        assert same_day.available

    def test_same_day_closes_before_rush(self):
        options = self._options(datetime(2026, 3, 10, 15, 0))
        assert options[TurnaroundType.RUSH].available
        assert not options[TurnaroundType.SAME_DAY].available
        assert options[TurnaroundType.SAME_DAY].unavailable_reason == "same-day cutoff has passed"

    def test_rush_closes_after_cutoff(self):
        options = self._options(datetime(2026, 3, 10, 17, 0))
        assert not options[TurnaroundType.RUSH].available
        assert options[TurnaroundType.RUSH].unavailable_reason == "rush cutoff has passed"
        assert options[TurnaroundType.STANDARD].available

    def test_ineligible_same_day(self):
        options = self._options(TUESDAY_MORNING, eligible=False)
        assert not options[TurnaroundType.SAME_DAY].available
        assert options[TurnaroundType.SAME_DAY].unavailable_reason == "not eligible for same-day delivery"

    def test_configured_definitions(self):
        definitions = [
            TurnaroundDefinition(turnaround_type=TurnaroundType.STANDARD, label="Regular", multiplier=Decimal("1")),
            TurnaroundDefinition(turnaround_type=TurnaroundType.RUSH, label="Express", multiplier=Decimal("1.5")),
            TurnaroundDefinition(
                turnaround_type=TurnaroundType.SAME_DAY, label="Today", multiplier=Decimal("3"), is_active=False,
            ),
        ]
        options = self._options(TUESDAY_MORNING, definitions=definitions)
        assert set(options) == {TurnaroundType.STANDARD, TurnaroundType.RUSH}
        assert options[TurnaroundType.RUSH].label == "Express"
        assert options[TurnaroundType.RUSH].fee == Decimal("85.00")
