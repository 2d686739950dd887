"""
Analysis watchdog.

Polls the analysis pipeline for one quote while any document is still
processing. Modelled as an explicit state machine driven by tick():

    IDLE --start()--> POLLING --complete | escalate | cap | cancel()--> STOPPED

Each tick is one poll attempt. A failed poll still counts as an attempt.
Ticks never overlap, and once the watchdog is STOPPED (including by
cancel() while a poll is in flight) no further side effects happen.

At the attempt cap the watchdog runs the timeout sequence best-effort:
mark still-processing documents failed, open a `timeout` review, notify
the customer, stop. A failure in one step does not block the next.
"""

import asyncio
from decimal import Decimal
from enum import Enum
from typing import Awaitable, Callable, Optional

import structlog

from quoteflow.config import settings
from quoteflow.errors import AnalysisTimeout, QuoteflowError
from quoteflow.integrations import notify
from quoteflow.integrations.base import AnalysisPipeline, NotificationService
from quoteflow.models.enums import ProcessingStatus, TriggerReason
from quoteflow.observability.metrics import watchdog_outcomes_total, watchdog_polls_total
from quoteflow.pricing.service import RepricingService
from quoteflow.schemas.analysis import DocumentAnalysis, WatchdogResult
from quoteflow.storage.base import QuoteStore
from quoteflow.workflow.reviews import ReviewService
from quoteflow.workflow.triggers import customer_reasons, evaluate_thresholds, load_thresholds

logger = structlog.get_logger(__name__)

TIMEOUT_REASON = "analysis_timeout"

IN_FLIGHT = {ProcessingStatus.PENDING, ProcessingStatus.PROCESSING}


class WatchdogState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    STOPPED = "stopped"


class AnalysisWatchdog:
    """Bounded polling of analysis status for one quote."""

    def __init__(
        self,
        quote_id: str,
        pipeline: AnalysisPipeline,
        store: QuoteStore,
        reviews: ReviewService,
        repricer: Optional[RepricingService] = None,
        notifier: Optional[NotificationService] = None,
        max_attempts: Optional[int] = None,
        interval: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.quote_id = quote_id
        self.pipeline = pipeline
        self.store = store
        self.reviews = reviews
        self.repricer = repricer or reviews.repricer
        self.notifier = notifier
        self.max_attempts = max_attempts or settings.WATCHDOG_MAX_ATTEMPTS
        self.interval = settings.WATCHDOG_POLL_INTERVAL_SECONDS if interval is None else interval
        self._sleep = sleep

        self.state = WatchdogState.IDLE
        self.attempts = 0
        self.result: Optional[WatchdogResult] = None
        self.last_analyses: list[DocumentAnalysis] = []
        self._thresholds: Optional[dict[str, float]] = None
        self._ticking = False

    # ── State transitions ────────────────────────────────────
    @property
    def is_polling(self) -> bool:
        return self.state == WatchdogState.POLLING

    def start(self) -> None:
        if self.state == WatchdogState.IDLE:
            self.state = WatchdogState.POLLING
            logger.info(
                "watchdog_started",
                quote_id=self.quote_id,
                max_attempts=self.max_attempts,
                interval=self.interval,
            )

    def cancel(self) -> None:
        """Stop polling. Safe to call at any time, including mid-poll."""
        if self.state == WatchdogState.STOPPED:
            return
        self.state = WatchdogState.STOPPED
        self._finish("cancelled")

    def _finish(self, outcome: str, **fields) -> WatchdogResult:
        self.state = WatchdogState.STOPPED
        if self.result is None:
            self.result = WatchdogResult(
                quote_id=self.quote_id,
                outcome=outcome,
                attempts=self.attempts,
                **fields,
            )
            watchdog_outcomes_total.labels(outcome=outcome).inc()
            logger.info("watchdog_stopped", quote_id=self.quote_id, outcome=outcome, attempts=self.attempts)
        return self.result

    # ── Tick ─────────────────────────────────────────────────
    async def tick(self) -> Optional[WatchdogResult]:
        """
        Run one poll attempt. Returns the final result once stopped,
        None while polling should continue.
        """
        if self.state != WatchdogState.POLLING:
            return self.result
        if self._ticking:
            logger.debug("watchdog_tick_skipped", quote_id=self.quote_id)
            return None

        self._ticking = True
        try:
            self.attempts += 1
            watchdog_polls_total.inc()
            status = await self.pipeline.get_status(self.quote_id)
            if self.state != WatchdogState.POLLING:
                return self.result

            if status.ok:
                self.last_analyses = status.value
                in_flight = [a for a in self.last_analyses if a.status in IN_FLIGHT]
                if not in_flight:
                    return await self._complete()
                early = await self._early_triggers()
                if early:
                    return await self._escalate_early(early)
            else:
                logger.warning(
                    "watchdog_poll_failed",
                    quote_id=self.quote_id,
                    attempt=self.attempts,
                    detail=status.detail,
                )

            if self.attempts >= self.max_attempts:
                return await self._timeout()
            return None
        finally:
            self._ticking = False

    async def run(self) -> WatchdogResult:
        """Drive ticks at the configured interval until stopped."""
        self.start()
        try:
            while self.state == WatchdogState.POLLING:
                result = await self.tick()
                if result is not None or self.state != WatchdogState.POLLING:
                    break
                await self._sleep(self.interval)
        except asyncio.CancelledError:
            self.cancel()
            raise
        return self.result or self._finish("cancelled")

    # ── Outcomes ─────────────────────────────────────────────
    async def _thresholds_for_run(self) -> dict[str, float]:
        if self._thresholds is None:
            self._thresholds = await load_thresholds(self.store)
        return self._thresholds

    async def _early_triggers(self) -> list[TriggerReason]:
        finished = [a for a in self.last_analyses if a.status == ProcessingStatus.COMPLETED]
        triggers = []
        if any(a.customer_requested_review for a in self.last_analyses):
            triggers.append(TriggerReason.CUSTOMER_REQUESTED)
        if finished:
            # confidence minimums only fall and page and value sums only grow
            report = evaluate_thresholds(finished, None, await self._thresholds_for_run())
            triggers.extend(report.triggers)
        return triggers

    async def _apply_analyses(self, failed_steps: list[str]) -> None:
        """Copy finished analysis results onto the stored documents."""
        result = await self.store.list_documents(self.quote_id)
        if not result.ok:
            failed_steps.append("load_documents")
            return
        by_id = {a.document_id: a for a in self.last_analyses}
        for doc in result.value:
            analysis = by_id.get(doc.file_id)
            if analysis is None or analysis.status in IN_FLIGHT:
                continue
            update = {"processing_status": analysis.status}
            for field in (
                "word_count", "page_count", "detected_language", "detected_document_type",
                "assessed_complexity", "ocr_confidence", "language_confidence",
                "classification_confidence", "complexity_confidence",
            ):
                value = getattr(analysis, field)
                if value is not None:
                    update[field] = value
            if analysis.error:
                update["failure_reason"] = analysis.error
            saved = await self.store.save_document(doc.model_copy(update=update))
            if not saved.ok:
                failed_steps.append(f"save_document:{doc.file_id}")

    async def _reprice(self, failed_steps: list[str], reason: str) -> Optional[Decimal]:
        try:
            recalculated = await self.repricer.recalculate(self.quote_id, reason=reason)
        except QuoteflowError as e:
            failed_steps.append("recalculate")
            logger.warning("watchdog_reprice_failed", quote_id=self.quote_id, error_code=e.error_code)
            return None
        return recalculated.breakdown.total

    async def _complete(self) -> WatchdogResult:
        """All documents finished: reprice, then open a review if any trigger fires."""
        failed_steps: list[str] = []
        await self._apply_analyses(failed_steps)
        quote_total = await self._reprice(failed_steps, "analysis_complete")

        triggers: list[TriggerReason] = []
        if any(a.status == ProcessingStatus.FAILED for a in self.last_analyses):
            triggers.append(TriggerReason.PROCESSING_ERROR)
        if any(a.customer_requested_review for a in self.last_analyses):
            triggers.append(TriggerReason.CUSTOMER_REQUESTED)
        report = evaluate_thresholds(self.last_analyses, quote_total, await self._thresholds_for_run())
        triggers.extend(report.triggers)

        if triggers:
            return await self._escalate(triggers, failed_steps)
        logger.info("analysis_complete", quote_id=self.quote_id, attempts=self.attempts)
        return self._finish("completed", failed_steps=failed_steps)

    async def _escalate_early(self, triggers: list[TriggerReason]) -> WatchdogResult:
        """Keep what already finished, then hand the quote to staff."""
        failed_steps: list[str] = []
        await self._apply_analyses(failed_steps)
        await self._reprice(failed_steps, "analysis_partial")
        return await self._escalate(triggers, failed_steps)

    async def _escalate(
        self,
        triggers: list[TriggerReason],
        failed_steps: Optional[list[str]] = None,
    ) -> WatchdogResult:
        failed_steps = failed_steps if failed_steps is not None else []
        review_id = None
        try:
            review = await self.reviews.open_review(self.quote_id, triggers)
            review_id = review.review_id
        except QuoteflowError as e:
            failed_steps.append("open_review")
            logger.error("watchdog_escalation_failed", quote_id=self.quote_id, error_code=e.error_code)
        return self._finish("escalated", triggers=triggers, review_id=review_id, failed_steps=failed_steps)

    async def _timeout(self) -> WatchdogResult:
        """Cap reached. Every step is attempted even if an earlier one fails."""
        error = AnalysisTimeout(
            "analysis did not finish within the polling window",
            quote_id=self.quote_id,
            attempts=self.attempts,
        )
        logger.warning("analysis_timeout", quote_id=self.quote_id, attempts=self.attempts)
        failed_steps: list[str] = []

        stuck = [a.document_id for a in self.last_analyses if a.status in IN_FLIGHT]
        if not self.last_analyses:
            documents = await self.store.list_documents(self.quote_id)
            if documents.ok:
                stuck = [d.file_id for d in documents.value if d.processing_status in IN_FLIGHT]
            else:
                failed_steps.append("load_documents")
        for file_id in stuck:
            marked = await self.store.mark_analysis_failed(file_id, TIMEOUT_REASON)
            if not marked.ok:
                failed_steps.append(f"mark_failed:{file_id}")
                logger.warning("mark_failed_error", quote_id=self.quote_id, file_id=file_id, detail=marked.detail)

        review_id = None
        try:
            review = await self.reviews.open_review(
                self.quote_id, [TriggerReason.TIMEOUT], notify_customer=False,
            )
            review_id = review.review_id
        except QuoteflowError as e:
            failed_steps.append("open_review")
            logger.error("watchdog_escalation_failed", quote_id=self.quote_id, error_code=e.error_code)

        notifier = self.notifier or self.reviews.notifier
        quote = await self.store.get_quote(self.quote_id)
        if not quote.ok:
            failed_steps.append("notify")
        elif notifier is not None:
            sent = await notify.notify_customer(
                notifier,
                quote.value,
                notify.ANALYSIS_TIMEOUT,
                {"reasons": customer_reasons([TriggerReason.TIMEOUT])},
            )
            if not sent:
                failed_steps.append("notify")

        return self._finish(
            "timeout",
            triggers=[TriggerReason.TIMEOUT],
            review_id=review_id,
            failed_steps=failed_steps,
            error=error.to_dict(),
        )


async def watch_quote(
    quote_id: str,
    pipeline: AnalysisPipeline,
    store: QuoteStore,
    reviews: ReviewService,
    **kwargs,
) -> Optional[WatchdogResult]:
    """Run a watchdog only if the quote has documents still in analysis."""
    documents = await store.list_documents(quote_id)
    if documents.ok and not any(d.processing_status in IN_FLIGHT for d in documents.value):
        logger.info("watchdog_not_needed", quote_id=quote_id)
        return None
    watchdog = AnalysisWatchdog(quote_id, pipeline, store, reviews, **kwargs)
    return await watchdog.run()
