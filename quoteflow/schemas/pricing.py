"""
Pricing input, adjustment variants and the computed breakdown.
"""

from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from quoteflow.models.enums import TurnaroundType


# ── Adjustments ──────────────────────────────────────────────
class Flat(BaseModel):
    """A fixed dollar amount."""
    model_config = ConfigDict(frozen=True)

    type: Literal["flat"] = "flat"
    amount: Decimal


class Percent(BaseModel):
    """A percentage of the translation + certification subtotal (10 = 10%)."""
    model_config = ConfigDict(frozen=True)

    type: Literal["percent"] = "percent"
    rate: Decimal


Adjustment = Annotated[Union[Flat, Percent], Field(discriminator="type")]


# ── Lines ────────────────────────────────────────────────────
class DocumentLine(BaseModel):
    document_id: Optional[str] = None
    billable_pages: Decimal
    language_multiplier: Decimal = Decimal("1.0")


class CertificationLine(BaseModel):
    line_id: Optional[str] = None
    certification_code: str = ""
    quantity: int = 1
    unit_price: Decimal
    unit_price_override: Optional[Decimal] = None   # staff override
    is_deleted: bool = False


class DeliveryOption(BaseModel):
    code: str
    name: str = ""
    price: Decimal = Decimal("0.00")
    is_physical: bool = False
    estimated_days: Optional[int] = None


# ── Input / Output ───────────────────────────────────────────
class PricingInput(BaseModel):
    """Everything the calculator needs. Rates left as None use configuration."""
    documents: list[DocumentLine] = []
    certifications: list[CertificationLine] = []
    base_rate: Optional[Decimal] = None
    surcharge: Optional[Adjustment] = None
    discount: Optional[Adjustment] = None
    turnaround_type: TurnaroundType = TurnaroundType.STANDARD
    delivery_option: Optional[str] = None
    delivery_options: list[DeliveryOption] = []
    tax_rate: Optional[Decimal] = None
    previous_total: Optional[Decimal] = None
    amount_paid: Decimal = Decimal("0.00")


class DocumentLineTotal(BaseModel):
    model_config = ConfigDict(frozen=True)

    document_id: Optional[str] = None
    billable_pages: Decimal
    effective_rate: Decimal
    line_total: Decimal


class PricingBreakdown(BaseModel):
    """Result of one calculation. subtotal is the translation subtotal."""
    model_config = ConfigDict(frozen=True)

    document_lines: list[DocumentLineTotal] = []
    subtotal: Decimal
    certification_total: Decimal
    surcharge_total: Decimal
    discount_total: Decimal
    rush_fee: Decimal
    delivery_fee: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    turnaround_type: TurnaroundType
    balance_change: Optional[Decimal] = None
    amount_paid: Decimal = Decimal("0.00")
    balance_due: Decimal


class PricingSnapshot(BaseModel):
    """The persisted inputs that change detection compares against."""
    turnaround_type: TurnaroundType = TurnaroundType.STANDARD
    delivery_option: Optional[str] = None
    certifications: list[CertificationLine] = []
    surcharge: Optional[Adjustment] = None
    discount: Optional[Adjustment] = None


class FieldChange(BaseModel):
    field: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
