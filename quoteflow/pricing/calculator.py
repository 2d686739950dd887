"""
Quote pricing calculator.

Pure and deterministic: the same PricingInput and PricingSettings always
produce an identical PricingBreakdown. Every monetary aggregate is rounded
to cents as soon as it is formed, not only at the end.

    translation  = sum(ceil(pages * rate * lang / 2.50) * 2.50)
    base         = translation + certification
    rush_fee     = base * (multiplier - 1)
    taxable      = base + surcharge - discount + rush_fee + delivery_fee
    total        = taxable + taxable * tax_rate
"""

from decimal import Decimal
from typing import Iterable, Optional, Union

import structlog

from quoteflow.config import PricingSettings, default_pricing_settings
from quoteflow.errors import InvalidInput
from quoteflow.models.enums import TurnaroundType
from quoteflow.pricing.money import (
    ZERO,
    format_money,
    round_cents,
    round_up_to_increment,
    to_decimal,
)
from quoteflow.schemas.pricing import (
    CertificationLine,
    DeliveryOption,
    DocumentLine,
    DocumentLineTotal,
    Flat,
    Percent,
    PricingBreakdown,
    PricingInput,
)

logger = structlog.get_logger(__name__)

HUNDRED = Decimal("100")


# ── Per-document translation cost ────────────────────────────
def effective_rate(base_rate: Decimal, language_multiplier: Decimal) -> Decimal:
    """Per-page rate after the language multiplier, rounded up to the next $2.50."""
    return round_up_to_increment(to_decimal(base_rate, "base_rate") * to_decimal(language_multiplier, "language_multiplier"))


def pricing_breakdown_text(base_rate: Decimal, language_multiplier: Decimal) -> str:
    """Human-readable rate derivation, e.g. "$65.00 × 1.15 = $74.75 → $75.00"."""
    raw = round_cents(to_decimal(base_rate) * to_decimal(language_multiplier))
    return (
        f"{format_money(base_rate)} × {language_multiplier} = "
        f"{format_money(raw)} → {format_money(effective_rate(base_rate, language_multiplier))}"
    )


def document_line_total(
    billable_pages: Decimal, base_rate: Decimal, language_multiplier: Decimal
) -> Decimal:
    pages = to_decimal(billable_pages, "billable_pages")
    if pages < 0:
        raise InvalidInput("billable pages cannot be negative", billable_pages=billable_pages)
    multiplier = to_decimal(language_multiplier, "language_multiplier")
    if multiplier <= 0:
        raise InvalidInput("language multiplier must be positive", language_multiplier=multiplier)
    return round_up_to_increment(pages * to_decimal(base_rate, "base_rate") * multiplier)


def translation_lines(
    documents: Iterable[DocumentLine], base_rate: Decimal
) -> list[DocumentLineTotal]:
    return [
        DocumentLineTotal(
            document_id=doc.document_id,
            billable_pages=doc.billable_pages,
            effective_rate=effective_rate(base_rate, doc.language_multiplier),
            line_total=document_line_total(doc.billable_pages, base_rate, doc.language_multiplier),
        )
        for doc in documents
    ]


# ── Certification, adjustments, fees ─────────────────────────
def certification_line_total(line: CertificationLine) -> Decimal:
    if line.quantity < 0:
        raise InvalidInput("certification quantity cannot be negative", line_id=line.line_id)
    price = line.unit_price_override if line.unit_price_override is not None else line.unit_price
    price = to_decimal(price, "unit_price")
    if price < 0:
        raise InvalidInput("certification price cannot be negative", line_id=line.line_id)
    return round_cents(line.quantity * price)


def certification_total(lines: Iterable[CertificationLine]) -> Decimal:
    """Sum of active certification lines. Deleted lines are skipped."""
    return round_cents(
        sum((certification_line_total(line) for line in lines if not line.is_deleted), ZERO)
    )


def evaluate_adjustment(
    adjustment: Union[Flat, Percent, None], base: Decimal, name: str = "adjustment"
) -> Decimal:
    """Dollar value of a flat or percent adjustment against base."""
    if adjustment is None:
        return ZERO
    if isinstance(adjustment, Flat):
        amount = to_decimal(adjustment.amount, name)
        if amount < 0:
            raise InvalidInput(f"{name} amount cannot be negative", amount=amount)
        return round_cents(amount)
    rate = to_decimal(adjustment.rate, name)
    if rate < 0 or rate > HUNDRED:
        raise InvalidInput(f"{name} percent must be between 0 and 100", rate=rate)
    return round_cents(base * rate / HUNDRED)


def turnaround_multiplier(turnaround_type: TurnaroundType, pricing: PricingSettings) -> Decimal:
    if turnaround_type == TurnaroundType.RUSH:
        return pricing.rush_multiplier
    if turnaround_type == TurnaroundType.SAME_DAY:
        return pricing.same_day_multiplier
    return Decimal("1.00")


def rush_fee(base: Decimal, turnaround_type: TurnaroundType, pricing: PricingSettings) -> Decimal:
    if turnaround_type == TurnaroundType.STANDARD:
        return ZERO
    return round_cents(base * (turnaround_multiplier(turnaround_type, pricing) - 1))


def delivery_fee(code: Optional[str], options: Iterable[DeliveryOption]) -> Decimal:
    """Price of the selected delivery option. No selection means digital delivery."""
    if not code:
        return ZERO
    for option in options:
        if option.code == code:
            return round_cents(option.price)
    raise InvalidInput("unknown delivery option", delivery_option=code)


# ── Full calculation ─────────────────────────────────────────
def calculate_pricing(
    pricing_input: PricingInput,
    pricing: Optional[PricingSettings] = None,
) -> PricingBreakdown:
    """Compute the full breakdown for a quote."""
    pricing = pricing or default_pricing_settings()
    base_rate = pricing_input.base_rate if pricing_input.base_rate is not None else pricing.base_rate
    tax_rate = pricing_input.tax_rate if pricing_input.tax_rate is not None else pricing.tax_rate
    if to_decimal(base_rate, "base_rate") < 0:
        raise InvalidInput("base rate cannot be negative", base_rate=base_rate)
    if to_decimal(tax_rate, "tax_rate") < 0:
        raise InvalidInput("tax rate cannot be negative", tax_rate=tax_rate)

    lines = translation_lines(pricing_input.documents, base_rate)
    subtotal = round_cents(sum((line.line_total for line in lines), ZERO))
    cert_total = certification_total(pricing_input.certifications)
    base = round_cents(subtotal + cert_total)

    surcharge = evaluate_adjustment(pricing_input.surcharge, base, "surcharge")
    discount = evaluate_adjustment(pricing_input.discount, base, "discount")
    rush = rush_fee(base, pricing_input.turnaround_type, pricing)
    delivery = delivery_fee(pricing_input.delivery_option, pricing_input.delivery_options)

    taxable = round_cents(base + surcharge - discount + rush + delivery)
    if taxable < 0:
        raise InvalidInput(
            "discount exceeds the quote value",
            discount=discount,
            taxable=taxable,
        )
    tax_amount = round_cents(taxable * tax_rate)
    total = round_cents(taxable + tax_amount)

    balance_change = None
    if pricing_input.previous_total is not None:
        balance_change = round_cents(total - to_decimal(pricing_input.previous_total, "previous_total"))
    amount_paid = round_cents(pricing_input.amount_paid)

    return PricingBreakdown(
        document_lines=lines,
        subtotal=subtotal,
        certification_total=cert_total,
        surcharge_total=surcharge,
        discount_total=discount,
        rush_fee=rush,
        delivery_fee=delivery,
        tax_rate=to_decimal(tax_rate),
        tax_amount=tax_amount,
        total=total,
        turnaround_type=pricing_input.turnaround_type,
        balance_change=balance_change,
        amount_paid=amount_paid,
        balance_due=round_cents(total - amount_paid),
    )
