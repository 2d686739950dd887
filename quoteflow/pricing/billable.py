"""
Billable page calculation.

billable = ceil(words / words_per_page * multiplier * 10) / 10 per page,
summed per document and floored at the per-document minimum.
"""

from decimal import Decimal
from typing import Iterable, Optional, Union

import structlog

from quoteflow.config import PricingSettings, default_pricing_settings
from quoteflow.errors import InvalidInput
from quoteflow.models.enums import Complexity
from quoteflow.pricing.money import ceil_to_tenth, to_decimal

logger = structlog.get_logger(__name__)


def complexity_multiplier(
    complexity: Union[Complexity, str, None],
    pricing: Optional[PricingSettings] = None,
    warnings: Optional[list[str]] = None,
) -> Decimal:
    """
    Look up the multiplier for a complexity level.
    Unknown levels fall back to 1.0 and are reported as a data-quality warning.
    """
    pricing = pricing or default_pricing_settings()
    key = complexity.value if isinstance(complexity, Complexity) else str(complexity or "").lower()
    multiplier = pricing.complexity_multipliers.get(key)
    if multiplier is not None:
        return multiplier

    message = f"unknown complexity '{complexity}', using multiplier 1.0"
    logger.warning("unknown_complexity_level", complexity=complexity)
    if warnings is not None:
        warnings.append(message)
    return Decimal("1.0")


def page_billable(words: int, multiplier: Decimal, words_per_page: int) -> Decimal:
    """Billable pages for a single page of text, rounded up to 0.1."""
    if isinstance(words, bool) or not isinstance(words, int):
        raise InvalidInput("word count must be an integer", word_count=words)
    if words < 0:
        raise InvalidInput("word count cannot be negative", word_count=words)
    if words_per_page <= 0:
        raise InvalidInput("words per page must be positive", words_per_page=words_per_page)
    if words == 0:
        return Decimal("0.0")
    raw = Decimal(words) / Decimal(words_per_page) * to_decimal(multiplier, "multiplier")
    return ceil_to_tenth(raw)


def document_billable_pages(
    page_word_counts: Iterable[int],
    complexity: Union[Complexity, str, None],
    pricing: Optional[PricingSettings] = None,
    warnings: Optional[list[str]] = None,
) -> Decimal:
    """Sum the page values for one document and apply the minimum."""
    pricing = pricing or default_pricing_settings()
    multiplier = complexity_multiplier(complexity, pricing, warnings)
    total = sum(
        (page_billable(w, multiplier, pricing.words_per_page) for w in page_word_counts),
        Decimal("0.0"),
    )
    total = ceil_to_tenth(total)
    return max(total, pricing.min_billable_pages)
