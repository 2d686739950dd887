"""
Quote and document records as seen by the services.
The storage layer converts ORM rows to and from these models.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from quoteflow.models.enums import ProcessingStatus, QuoteStatus, TurnaroundType
from quoteflow.schemas.pricing import Adjustment, CertificationLine, PricingBreakdown


class QuotePage(BaseModel):
    page_id: str
    file_id: str
    page_number: int
    word_count: int = 0


class QuoteDocument(BaseModel):
    """An uploaded file with its analysis results."""
    file_id: str
    quote_id: str
    filename: str
    storage_path: Optional[str] = None
    page_count: int = 1
    word_count: int = 0
    processing_status: ProcessingStatus = ProcessingStatus.PENDING
    detected_language: Optional[str] = None
    detected_document_type: Optional[str] = None
    assessed_complexity: Optional[str] = None
    billable_pages: Optional[Decimal] = None          # derived
    billable_pages_override: Optional[Decimal] = None # staff correction
    line_total: Optional[Decimal] = None
    certification_code: Optional[str] = None
    certification_price: Optional[Decimal] = None
    ocr_confidence: Optional[float] = None
    language_confidence: Optional[float] = None
    classification_confidence: Optional[float] = None
    complexity_confidence: Optional[float] = None
    failure_reason: Optional[str] = None
    pages: list[QuotePage] = []


class Quote(BaseModel):
    quote_id: str
    quote_number: Optional[str] = None
    customer_id: Optional[str] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    source_language: Optional[str] = None
    target_language: Optional[str] = None
    language_multiplier: Decimal = Decimal("1.0")
    document_type: Optional[str] = None
    intended_use: Optional[str] = None
    subtotal: Decimal = Decimal("0.00")
    certification_total: Decimal = Decimal("0.00")
    surcharge_total: Decimal = Decimal("0.00")
    discount_total: Decimal = Decimal("0.00")
    rush_fee: Decimal = Decimal("0.00")
    delivery_fee: Decimal = Decimal("0.00")
    tax_rate: Decimal = Decimal("0.05")
    tax_amount: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")
    amount_paid: Decimal = Decimal("0.00")
    balance_due: Decimal = Decimal("0.00")
    turnaround_type: TurnaroundType = TurnaroundType.STANDARD
    delivery_option: Optional[str] = None
    surcharge: Optional[Adjustment] = None
    discount: Optional[Adjustment] = None
    certifications: list[CertificationLine] = []
    status: QuoteStatus = QuoteStatus.DRAFT
    version: int = 1
    billing_address: Optional[dict] = None
    shipping_address: Optional[dict] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def apply_breakdown(self, breakdown: PricingBreakdown) -> "Quote":
        """Copy of this quote carrying the breakdown's monetary fields."""
        return self.model_copy(update={
            "subtotal": breakdown.subtotal,
            "certification_total": breakdown.certification_total,
            "surcharge_total": breakdown.surcharge_total,
            "discount_total": breakdown.discount_total,
            "rush_fee": breakdown.rush_fee,
            "delivery_fee": breakdown.delivery_fee,
            "tax_rate": breakdown.tax_rate,
            "tax_amount": breakdown.tax_amount,
            "total": breakdown.total,
            "balance_due": breakdown.balance_due,
        })


class QuoteVersion(BaseModel):
    quote_id: str
    version: int
    snapshot: dict
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None


class RecalculationResult(BaseModel):
    quote: Quote
    breakdown: PricingBreakdown
    changes: list[dict] = []
    has_changes: bool = False
    warnings: list[str] = []
