"""
Change detection between the last persisted pricing inputs and the current ones.

Every input field is compared directly. A monetary delta of zero does not
mean nothing changed: toggling rush on and off between saves, or swapping
one certification for another of the same price, is still a change.
"""

from typing import Optional

from quoteflow.schemas.pricing import CertificationLine, FieldChange, PricingSnapshot


def _adjustment_repr(adjustment) -> Optional[str]:
    if adjustment is None:
        return None
    value = adjustment.amount if adjustment.type == "flat" else adjustment.rate
    return f"{adjustment.type}:{value.normalize():f}"


def _certifications_repr(lines: list[CertificationLine]) -> str:
    active = sorted(
        (
            line.certification_code,
            line.quantity,
            f"{line.unit_price.normalize():f}",
            f"{line.unit_price_override.normalize():f}" if line.unit_price_override is not None else "",
        )
        for line in lines
        if not line.is_deleted
    )
    return ";".join("|".join(str(part) for part in item) for item in active)


def detect_changes(previous: PricingSnapshot, current: PricingSnapshot) -> list[FieldChange]:
    """List every pricing input that differs between the two snapshots."""
    pairs = [
        ("turnaround_type", previous.turnaround_type.value, current.turnaround_type.value),
        ("delivery_option", previous.delivery_option, current.delivery_option),
        (
            "certifications",
            _certifications_repr(previous.certifications),
            _certifications_repr(current.certifications),
        ),
        ("surcharge", _adjustment_repr(previous.surcharge), _adjustment_repr(current.surcharge)),
        ("discount", _adjustment_repr(previous.discount), _adjustment_repr(current.discount)),
    ]
    return [
        FieldChange(field=name, old_value=old, new_value=new)
        for name, old, new in pairs
        if old != new
    ]


def has_changes(previous: PricingSnapshot, current: PricingSnapshot) -> bool:
    return bool(detect_changes(previous, current))
