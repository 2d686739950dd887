"""
Tests for HITL trigger evaluation, priority and SLA.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from quoteflow.models.enums import ProcessingStatus, TriggerReason
from quoteflow.schemas.analysis import DocumentAnalysis
from quoteflow.workflow.triggers import (
    URGENT_PRIORITY,
    customer_reasons,
    default_thresholds,
    evaluate_thresholds,
    load_thresholds,
    review_priority,
    sla_deadline,
)


def _analysis(**fields) -> DocumentAnalysis:
    values = {
        "document_id": "f1",
        "status": ProcessingStatus.COMPLETED,
        "page_count": 2,
        "ocr_confidence": 0.97,
        "language_confidence": 0.99,
        "classification_confidence": 0.95,
        "line_total": 170.0,
    }
    values.update(fields)
    return DocumentAnalysis(**values)


class TestEvaluateThresholds:

    def test_confident_analysis_passes(self):
        report = evaluate_thresholds([_analysis()])
        assert not report.requires_review
        assert report.triggers == []

    def test_worst_document_decides(self):
        report = evaluate_thresholds([_analysis(), _analysis(document_id="f2", ocr_confidence=0.42)])
        assert report.triggers == [TriggerReason.LOW_OCR_CONFIDENCE]
        check = next(c for c in report.checks if c.trigger == TriggerReason.LOW_OCR_CONFIDENCE)
        assert check.value == pytest.approx(0.42)

    def test_missing_key_is_not_checked(self):
        report = evaluate_thresholds([_analysis(ocr_confidence=0.1)], thresholds={"language_confidence_min": 0.5})
        assert not report.requires_review
        assert [c.trigger for c in report.checks] == [TriggerReason.LOW_LANGUAGE_CONFIDENCE]

    def test_page_count_limit(self):
        report = evaluate_thresholds([_analysis(page_count=15), _analysis(document_id="f2", page_count=10)])
        assert TriggerReason.HIGH_PAGE_COUNT in report.triggers

    def test_quote_total_counts_towards_value(self):
        report = evaluate_thresholds([_analysis()], quote_total=Decimal("1500.00"))
        assert report.triggers == [TriggerReason.HIGH_VALUE_ORDER]

    def test_no_analyses_no_checks(self):
        assert evaluate_thresholds([]).checks == []

    def test_unreported_confidence_passes(self):
        report = evaluate_thresholds([_analysis(ocr_confidence=None)])
        assert TriggerReason.LOW_OCR_CONFIDENCE not in report.triggers


class TestLoadThresholds:

    @pytest.mark.asyncio
    async def test_store_values_win(self, store):
        store.thresholds = {"ocr_confidence_min": 0.5}
        assert await load_thresholds(store) == {"ocr_confidence_min": 0.5}

    @pytest.mark.asyncio
    async def test_empty_table_uses_defaults(self, store):
        assert await load_thresholds(store) == default_thresholds()

    @pytest.mark.asyncio
    async def test_unreachable_store_uses_defaults(self, store):
        store.failing.add("get_thresholds")
        assert await load_thresholds(store) == default_thresholds()


class TestReviewPriority:

    def test_timeout_is_urgent(self):
        assert review_priority([TriggerReason.TIMEOUT]) == URGENT_PRIORITY

    def test_processing_error_is_urgent(self):
        assert review_priority([TriggerReason.LOW_OCR_CONFIDENCE, TriggerReason.PROCESSING_ERROR]) == URGENT_PRIORITY

    def test_single_trigger_default(self):
        assert review_priority([TriggerReason.LOW_OCR_CONFIDENCE]) == 5

    def test_more_triggers_raise_priority(self):
        assert review_priority([TriggerReason.LOW_OCR_CONFIDENCE, TriggerReason.HIGH_PAGE_COUNT]) == 4
        assert review_priority([
            TriggerReason.LOW_OCR_CONFIDENCE,
            TriggerReason.HIGH_PAGE_COUNT,
            TriggerReason.LOW_LANGUAGE_CONFIDENCE,
        ]) == 3

    def test_high_value_bumps_priority(self):
        assert review_priority([TriggerReason.HIGH_VALUE_ORDER]) == 4


class TestSlaAndReasons:

    def test_sla_deadline(self):
        now = datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)
        assert sla_deadline(now) == now + timedelta(hours=4)
        assert sla_deadline(now, hours=1) == now + timedelta(hours=1)

    def test_customer_reasons_are_deduplicated(self):
        reasons = customer_reasons([TriggerReason.TIMEOUT, TriggerReason.TIMEOUT])
        assert len(reasons) == 1
        assert "longer than expected" in reasons[0]
