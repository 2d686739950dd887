"""
Turnaround tiers, same-day eligibility rules and delivery estimates.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict

from quoteflow.models.enums import TurnaroundType


class TurnaroundDefinition(BaseModel):
    """A configured turnaround tier."""
    turnaround_type: TurnaroundType
    label: str
    multiplier: Decimal
    is_active: bool = True


class SameDayRule(BaseModel):
    source_language: str
    target_language: str
    document_type: str
    intended_use: str
    is_active: bool = True


class TurnaroundOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    turnaround_type: TurnaroundType
    label: str
    multiplier: Decimal
    fee: Decimal
    business_days: int
    delivery_date: date
    available: bool
    unavailable_reason: Optional[str] = None
