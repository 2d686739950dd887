"""
Delivery dates, cutoff checks and turnaround options.

All wall-clock logic runs in the configured business timezone. Functions
take an optional `now` so callers (and tests) can pin the clock; a naive
`now` is taken to already be business-local time.
"""

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Iterable, Optional

import structlog
from dateutil import tz

from quoteflow.config import PricingSettings, default_pricing_settings
from quoteflow.errors import InvalidInput
from quoteflow.models.enums import TurnaroundType
from quoteflow.pricing.calculator import rush_fee
from quoteflow.pricing.money import to_decimal
from quoteflow.schemas.turnaround import SameDayRule, TurnaroundDefinition, TurnaroundOption

logger = structlog.get_logger(__name__)

SATURDAY = 5


def business_now(now: Optional[datetime] = None, timezone: Optional[str] = None) -> datetime:
    """Current time in the business timezone."""
    zone = tz.gettz(timezone or default_pricing_settings().timezone)
    if zone is None:
        raise InvalidInput("unknown business timezone", timezone=timezone)
    if now is None:
        return datetime.now(zone)
    if now.tzinfo is None:
        return now.replace(tzinfo=zone)
    return now.astimezone(zone)


def standard_days(total_billable_pages) -> int:
    """Business days for standard turnaround: 2 + floor((pages - 1) / 2)."""
    pages = to_decimal(total_billable_pages, "total_billable_pages")
    if pages < 1:
        raise InvalidInput("turnaround needs at least one billable page", pages=pages)
    return 2 + int((pages - 1) // 2)


def is_business_day(day: date, holidays: Iterable[date] = ()) -> bool:
    return day.weekday() < SATURDAY and day not in set(holidays)


def next_business_day(day: date, holidays: Iterable[date] = ()) -> date:
    """First business day strictly after `day`."""
    holidays = set(holidays)
    day += timedelta(days=1)
    while not is_business_day(day, holidays):
        day += timedelta(days=1)
    return day


def order_start_date(
    now: Optional[datetime] = None,
    holidays: Iterable[date] = (),
    pricing: Optional[PricingSettings] = None,
) -> date:
    """
    The business day an order is considered received.
    Orders placed after the daily cutoff, on a weekend or on a holiday
    count from the next business day.
    """
    pricing = pricing or default_pricing_settings()
    holidays = set(holidays)
    local = business_now(now, pricing.timezone)
    start = local.date()
    if local.hour >= pricing.daily_cutoff_hour or not is_business_day(start, holidays):
        start = next_business_day(start, holidays)
    return start


def delivery_date(
    days_to_add: int,
    holidays: Iterable[date] = (),
    now: Optional[datetime] = None,
    pricing: Optional[PricingSettings] = None,
) -> date:
    """
    Walk forward from the order start date one calendar day at a time,
    counting only business days, until days_to_add have been consumed.
    """
    if days_to_add < 0:
        raise InvalidInput("days to add cannot be negative", days_to_add=days_to_add)
    holidays = set(holidays)
    current = order_start_date(now, holidays, pricing)
    added = 0
    while added < days_to_add:
        current += timedelta(days=1)
        if is_business_day(current, holidays):
            added += 1
    return current


def cutoff_available(
    hour: int,
    minute: int,
    now: Optional[datetime] = None,
    timezone: Optional[str] = None,
) -> bool:
    """True on weekdays strictly before hour:minute local time."""
    local = business_now(now, timezone)
    if local.weekday() >= SATURDAY:
        return False
    return local.time() < time(hour, minute)


def is_same_day_eligible(
    source_language: str,
    target_language: str,
    document_type: str,
    intended_use: str,
    rules: Iterable[SameDayRule],
) -> bool:
    key = (source_language, target_language, document_type, intended_use)
    return any(
        rule.is_active
        and (rule.source_language, rule.target_language, rule.document_type, rule.intended_use) == key
        for rule in rules
    )


def default_turnaround_definitions(pricing: Optional[PricingSettings] = None) -> list[TurnaroundDefinition]:
    pricing = pricing or default_pricing_settings()
    return [
        TurnaroundDefinition(
            turnaround_type=TurnaroundType.STANDARD, label="Standard", multiplier=Decimal("1.00"),
        ),
        TurnaroundDefinition(
            turnaround_type=TurnaroundType.RUSH, label="Rush", multiplier=pricing.rush_multiplier,
        ),
        TurnaroundDefinition(
            turnaround_type=TurnaroundType.SAME_DAY, label="Same Day", multiplier=pricing.same_day_multiplier,
        ),
    ]


def turnaround_options(
    total_billable_pages,
    base_subtotal: Decimal,
    same_day_eligible: bool,
    holidays: Iterable[date] = (),
    now: Optional[datetime] = None,
    pricing: Optional[PricingSettings] = None,
    definitions: Optional[list[TurnaroundDefinition]] = None,
) -> list[TurnaroundOption]:
    """
    Price, date and availability for each turnaround tier.

    Rush is offered while the rush cutoff is open. Same-day is offered only
    when the order is eligible and the same-day cutoff is open.
    """
    pricing = pricing or default_pricing_settings()
    holidays = set(holidays)
    definitions = [d for d in (definitions or []) if d.is_active] or default_turnaround_definitions(pricing)
    days = standard_days(total_billable_pages)
    local = business_now(now, pricing.timezone)

    rush_open = cutoff_available(pricing.rush_cutoff_hour, pricing.rush_cutoff_minute, local)
    same_day_open = cutoff_available(pricing.same_day_cutoff_hour, pricing.same_day_cutoff_minute, local)

    options = []
    for definition in definitions:
        tier_pricing = pricing
        if definition.turnaround_type == TurnaroundType.RUSH:
            tier_pricing = pricing.model_copy(update={"rush_multiplier": definition.multiplier})
            tier_days = max(1, days - pricing.rush_turnaround_days)
            tier_date = delivery_date(tier_days, holidays, local, pricing)
            available = rush_open
            reason = None if available else "rush cutoff has passed"
        elif definition.turnaround_type == TurnaroundType.SAME_DAY:
            tier_pricing = pricing.model_copy(update={"same_day_multiplier": definition.multiplier})
            tier_days = 0
            tier_date = local.date()
            available = same_day_eligible and same_day_open
            if not same_day_eligible:
                reason = "not eligible for same-day delivery"
            elif not same_day_open:
                reason = "same-day cutoff has passed"
            else:
                reason = None
        else:
            tier_days = days
            tier_date = delivery_date(days, holidays, local, pricing)
            available = True
            reason = None

        options.append(TurnaroundOption(
            turnaround_type=definition.turnaround_type,
            label=definition.label,
            multiplier=definition.multiplier,
            fee=rush_fee(base_subtotal, definition.turnaround_type, tier_pricing),
            business_days=tier_days,
            delivery_date=tier_date,
            available=available,
            unavailable_reason=reason,
        ))

    logger.debug(
        "turnaround_options_computed",
        standard_days=days,
        rush_open=rush_open,
        same_day_open=same_day_open,
        same_day_eligible=same_day_eligible,
    )
    return options
