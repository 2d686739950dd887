"""
HITL trigger evaluation, review priority and SLA.

Threshold keys (hitl_thresholds table):
    ocr_confidence_min, language_confidence_min,
    classification_confidence_min, complexity_confidence_min,
    max_auto_approve_pages, max_auto_approve_value
A key missing from the table is not checked.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional

import structlog

from quoteflow.config import settings
from quoteflow.models.enums import TriggerReason
from quoteflow.schemas.analysis import DocumentAnalysis
from quoteflow.schemas.reviews import ThresholdCheck, ThresholdReport

logger = structlog.get_logger(__name__)

DEFAULT_PRIORITY = 5
URGENT_PRIORITY = 1

# Confidence fields: (threshold key, analysis attribute, trigger)
_CONFIDENCE_CHECKS = [
    ("ocr_confidence_min", "ocr_confidence", TriggerReason.LOW_OCR_CONFIDENCE),
    ("language_confidence_min", "language_confidence", TriggerReason.LOW_LANGUAGE_CONFIDENCE),
    ("classification_confidence_min", "classification_confidence", TriggerReason.LOW_CLASSIFICATION_CONFIDENCE),
    ("complexity_confidence_min", "complexity_confidence", TriggerReason.LOW_COMPLEXITY_CONFIDENCE),
]

CUSTOMER_REASONS = {
    TriggerReason.TIMEOUT: "Our automatic analysis took longer than expected, so a specialist will finish your quote.",
    TriggerReason.PROCESSING_ERROR: "We could not read one of your files automatically, so a specialist will review it.",
    TriggerReason.LOW_OCR_CONFIDENCE: "Some text in your documents was hard to read, so a specialist will check it.",
    TriggerReason.LOW_LANGUAGE_CONFIDENCE: "We want to confirm the language of your documents.",
    TriggerReason.LOW_CLASSIFICATION_CONFIDENCE: "We want to confirm the type of document you uploaded.",
    TriggerReason.LOW_COMPLEXITY_CONFIDENCE: "We want to confirm the complexity of your documents.",
    TriggerReason.HIGH_VALUE_ORDER: "Larger orders are reviewed by our team to make sure your quote is accurate.",
    TriggerReason.HIGH_PAGE_COUNT: "Orders with many pages are reviewed by our team.",
    TriggerReason.CUSTOMER_REQUESTED: "You asked for a review by our team.",
    TriggerReason.QUALITY_CHECK: "Your quote is part of a routine quality check.",
    TriggerReason.MANUAL_TRIGGER: "A member of our team is reviewing your quote.",
}


def default_thresholds() -> dict[str, float]:
    values = {
        "ocr_confidence_min": settings.HITL_OCR_CONFIDENCE_MIN,
        "language_confidence_min": settings.HITL_LANGUAGE_CONFIDENCE_MIN,
        "classification_confidence_min": settings.HITL_CLASSIFICATION_CONFIDENCE_MIN,
        "complexity_confidence_min": settings.HITL_COMPLEXITY_CONFIDENCE_MIN,
        "max_auto_approve_pages": settings.HITL_MAX_AUTO_APPROVE_PAGES,
        "max_auto_approve_value": settings.HITL_MAX_AUTO_APPROVE_VALUE,
    }
    return {k: float(v) for k, v in values.items() if v is not None}


async def load_thresholds(store) -> dict[str, float]:
    """Active thresholds from the store, or the configured fallbacks."""
    result = await store.get_thresholds()
    if not result.ok:
        logger.warning("thresholds_unavailable", detail=result.detail)
        return default_thresholds()
    return result.value or default_thresholds()


def evaluate_thresholds(
    analyses: Iterable[DocumentAnalysis],
    quote_total: Optional[Decimal] = None,
    thresholds: Optional[dict[str, float]] = None,
) -> ThresholdReport:
    """Aggregate per-document analysis and compare against each threshold."""
    analyses = list(analyses)
    thresholds = default_thresholds() if thresholds is None else thresholds
    report = ThresholdReport()
    if not analyses:
        return report

    for key, attribute, trigger in _CONFIDENCE_CHECKS:
        if key not in thresholds:
            continue
        values = [getattr(a, attribute) for a in analyses if getattr(a, attribute) is not None]
        worst = min(values, default=1.0)
        report.checks.append(ThresholdCheck(
            trigger=trigger, value=worst, threshold=thresholds[key], passed=worst >= thresholds[key],
        ))

    if "max_auto_approve_pages" in thresholds:
        pages = float(sum(a.page_count or 0 for a in analyses))
        limit = thresholds["max_auto_approve_pages"]
        report.checks.append(ThresholdCheck(
            trigger=TriggerReason.HIGH_PAGE_COUNT, value=pages, threshold=limit, passed=pages <= limit,
        ))

    if "max_auto_approve_value" in thresholds:
        value = float(sum(a.line_total or 0 for a in analyses))
        if quote_total is not None and float(quote_total) > value:
            value = float(quote_total)
        limit = thresholds["max_auto_approve_value"]
        report.checks.append(ThresholdCheck(
            trigger=TriggerReason.HIGH_VALUE_ORDER, value=value, threshold=limit, passed=value <= limit,
        ))

    if report.requires_review:
        logger.info("hitl_thresholds_failed", triggers=[t.value for t in report.triggers])
    return report


def review_priority(triggers: Iterable[TriggerReason]) -> int:
    """
    Lower number = more urgent. Timeouts and processing errors are always
    urgent; otherwise more triggers and high value raise the priority.
    """
    triggers = list(triggers)
    if TriggerReason.TIMEOUT in triggers or TriggerReason.PROCESSING_ERROR in triggers:
        return URGENT_PRIORITY
    priority = DEFAULT_PRIORITY
    if len(triggers) >= 3:
        priority = 3
    elif len(triggers) >= 2:
        priority = 4
    if TriggerReason.HIGH_VALUE_ORDER in triggers:
        priority -= 1
    return max(1, min(10, priority))


def sla_deadline(now: datetime, hours: Optional[int] = None) -> datetime:
    return now + timedelta(hours=settings.HITL_SLA_HOURS if hours is None else hours)


def customer_reasons(triggers: Iterable[TriggerReason]) -> list[str]:
    """Customer-facing explanations, one per distinct trigger."""
    seen = []
    for trigger in triggers:
        reason = CUSTOMER_REASONS.get(trigger)
        if reason and reason not in seen:
            seen.append(reason)
    return seen
