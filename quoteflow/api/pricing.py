"""
/api/v1/pricing endpoints.
Pure calculation with no persistence.
"""

from fastapi import APIRouter, Depends

from quoteflow.config import load_pricing_settings
from quoteflow.dependencies import get_store, verify_api_key
from quoteflow.pricing.calculator import calculate_pricing, effective_rate, pricing_breakdown_text
from quoteflow.pricing.money import to_decimal
from quoteflow.schemas.pricing import PricingBreakdown, PricingInput
from quoteflow.storage.base import QuoteStore

router = APIRouter(prefix="/api/v1/pricing", tags=["pricing"], dependencies=[Depends(verify_api_key)])


@router.post("/calculate", response_model=PricingBreakdown)
async def calculate(body: PricingInput, store: QuoteStore = Depends(get_store)):
    """Price the given lines with the current pricing settings."""
    pricing = await load_pricing_settings(store)
    return calculate_pricing(body, pricing)


@router.get("/rate")
async def rate(language_multiplier: str = "1.0", store: QuoteStore = Depends(get_store)):
    """Per-page rate for a language multiplier, with its display text."""
    pricing = await load_pricing_settings(store)
    multiplier = to_decimal(language_multiplier, "language_multiplier")
    return {
        "base_rate": str(pricing.base_rate),
        "language_multiplier": str(multiplier),
        "effective_rate": str(effective_rate(pricing.base_rate, multiplier)),
        "text": pricing_breakdown_text(pricing.base_rate, multiplier),
    }
