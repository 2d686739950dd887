"""
Request and response bodies for the HTTP API.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from quoteflow.schemas.grouping import GroupSummary, LedgerItem
from quoteflow.schemas.pricing import PricingBreakdown, PricingSnapshot
from quoteflow.schemas.quotes import Quote
from quoteflow.schemas.reviews import Correction


# ── Reviews ──────────────────────────────────────────────────
class DecisionRequest(BaseModel):
    notes: Optional[str] = None


class ReasonRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class BetterScanRequest(BaseModel):
    reason: str = Field(..., min_length=1)
    file_ids: list[str] = Field(..., min_length=1)


class NoteRequest(BaseModel):
    text: str = Field(..., min_length=1)


class CorrectionsRequest(BaseModel):
    corrections: list[Correction] = Field(..., min_length=1)


class SendResponse(BaseModel):
    quote: Quote
    version: int
    checkout_url: Optional[str] = None


class QueueStats(BaseModel):
    pending: int = 0
    in_review: int = 0
    approved: int = 0
    rejected: int = 0
    escalated: int = 0
    total: int = 0


# ── Quotes ───────────────────────────────────────────────────
class RecalculateRequest(BaseModel):
    reason: str = "manual"


class PricingInputsRequest(PricingSnapshot):
    reason: str = Field(..., min_length=1)       # free-text, audited with each change


class RecalculationResponse(BaseModel):
    quote_id: str
    breakdown: PricingBreakdown
    changes: list[dict] = []
    has_changes: bool = False
    warnings: list[str] = []


class WatchResponse(BaseModel):
    quote_id: str
    job_id: str


class BalancePaymentResponse(BaseModel):
    quote_id: str
    payment_url: Optional[str] = None     # None when nothing is owed


# ── Grouping ─────────────────────────────────────────────────
class CreateGroupRequest(BaseModel):
    label: str = Field(..., min_length=1)
    document_type: Optional[str] = None
    complexity: Optional[str] = None
    certification_code: Optional[str] = None
    certification_price: Decimal = Decimal("0.00")


class AssignItemRequest(BaseModel):
    item_id: str


class SplitRequest(CreateGroupRequest):
    item_ids: list[str] = Field(..., min_length=1)


class CombineRequest(BaseModel):
    item_ids: list[str] = Field(..., min_length=1)


class GroupsResponse(BaseModel):
    quote_id: str
    groups: list[GroupSummary] = []
    unassigned: list[LedgerItem] = []
