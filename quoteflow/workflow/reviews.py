"""
HITL review workflow.

Opens reviews, applies staff decisions and mirrors each review
transition onto the quote explicitly. Rejecting a review sends the quote
back to draft; rejecting the quote is permanent. Escalated and rejected
reviews are read-only.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional

import structlog

from quoteflow.errors import InvalidInput, InvalidTransition, NotFound, QuoteflowError
from quoteflow.integrations import notify
from quoteflow.integrations.base import NotificationService, PaymentGateway
from quoteflow.models.enums import (
    ACTIVE_REVIEW_STATUSES,
    QuoteStatus,
    ReviewStatus,
    TriggerReason,
)
from quoteflow.observability.metrics import (
    hitl_reviews_opened_total,
    hitl_transitions_total,
    review_queue_depth,
)
from quoteflow.pricing.service import RepricingService, pricing_for_quote
from quoteflow.result import CONFLICT, unwrap
from quoteflow.schemas.quotes import Quote, QuoteDocument, QuoteVersion
from quoteflow.schemas.reviews import (
    AuditEntry,
    Correction,
    CorrectionOutcome,
    CorrectionReport,
    InternalNote,
    Review,
    StaffContext,
)
from quoteflow.storage.base import QuoteStore
from quoteflow.workflow.claims import ClaimService, utcnow
from quoteflow.workflow.state_machine import (
    ensure_quote_transition,
    ensure_review_mutable,
    ensure_review_transition,
)
from quoteflow.workflow.triggers import customer_reasons, review_priority, sla_deadline

logger = structlog.get_logger(__name__)

# Correctable fields and the value type each accepts
DOCUMENT_FIELDS = {
    "word_count": int,
    "page_count": int,
    "assessed_complexity": str,
    "detected_language": str,
    "detected_document_type": str,
    "billable_pages_override": Decimal,
    "certification_code": str,
    "certification_price": Decimal,
}
QUOTE_FIELDS = {
    "source_language": str,
    "target_language": str,
    "language_multiplier": Decimal,
    "document_type": str,
    "intended_use": str,
    "tax_rate": Decimal,
}


def _coerce(field: str, kind: type, value: Any) -> Any:
    if value is None:
        return None
    if kind is str:
        return str(value)
    try:
        coerced = kind(str(value))
    except (ValueError, ArithmeticError):
        raise InvalidInput(f"invalid value for {field}", field=field, value=value)
    if isinstance(coerced, Decimal) and not coerced.is_finite():
        raise InvalidInput(f"invalid value for {field}", field=field, value=value)
    if coerced < 0:
        raise InvalidInput(f"{field} cannot be negative", field=field, value=value)
    return coerced


class ReviewService:
    """Staff-facing review operations."""

    def __init__(
        self,
        store: QuoteStore,
        repricer: Optional[RepricingService] = None,
        notifier: Optional[NotificationService] = None,
        payments: Optional[PaymentGateway] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.clock = clock or utcnow
        self.repricer = repricer or RepricingService(store)
        self.notifier = notifier
        self.payments = payments
        self.claims = ClaimService(store, self.clock)

    # ── Opening ──────────────────────────────────────────────
    async def open_review(
        self,
        quote_id: str,
        triggers: Iterable[TriggerReason],
        notify_customer: bool = True,
    ) -> Review:
        """
        Open a review for a quote, or return the one already active.
        Check-then-insert; never creates a second active review.
        """
        triggers = list(dict.fromkeys(triggers))
        if not triggers:
            raise InvalidInput("a review needs at least one trigger reason", quote_id=quote_id)

        existing = unwrap(await self.store.find_active_review(quote_id), quote_id=quote_id)
        if existing is not None:
            logger.info("hitl_review_exists", quote_id=quote_id, review_id=existing.review_id)
            return existing

        quote = unwrap(await self.store.get_quote(quote_id), quote_id=quote_id)
        if quote.status not in (QuoteStatus.HITL_PENDING, QuoteStatus.IN_REVIEW):
            ensure_quote_transition(quote_id, quote.status, QuoteStatus.HITL_PENDING)

        now = self.clock()
        review = Review(
            review_id=str(uuid.uuid4()),
            quote_id=quote_id,
            status=ReviewStatus.PENDING,
            trigger_reasons=triggers,
            priority=review_priority(triggers),
            sla_deadline=sla_deadline(now),
            created_at=now,
            updated_at=now,
        )
        inserted = await self.store.insert_review(review)
        if not inserted.ok and inserted.kind == CONFLICT:
            # lost the race on the one-active-review index
            existing = unwrap(await self.store.find_active_review(quote_id), quote_id=quote_id)
            if existing is not None:
                logger.info("hitl_review_exists", quote_id=quote_id, review_id=existing.review_id)
                return existing
        review = unwrap(inserted, quote_id=quote_id)
        if quote.status != QuoteStatus.HITL_PENDING:
            quote = quote.model_copy(update={"status": QuoteStatus.HITL_PENDING, "updated_at": now})
            unwrap(await self.store.save_quote(quote), quote_id=quote_id)

        for trigger in triggers:
            hitl_reviews_opened_total.labels(trigger=trigger.value).inc()
        logger.info(
            "hitl_review_opened",
            quote_id=quote_id,
            review_id=review.review_id,
            triggers=[t.value for t in triggers],
            priority=review.priority,
        )
        await self._audit(quote_id, None, "hitl_review_opened", {
            "review_id": review.review_id,
            "trigger_reasons": [t.value for t in triggers],
        })
        if notify_customer:
            await notify.notify_customer(self.notifier, quote, notify.HITL_OPENED, {
                "reasons": customer_reasons(triggers),
            })
        return review

    # ── Claims ───────────────────────────────────────────────
    async def claim(self, review_id: str, staff: StaffContext) -> Review:
        return await self.claims.claim(review_id, staff)

    async def override_claim(self, review_id: str, staff: StaffContext) -> Review:
        return await self.claims.override(review_id, staff)

    # ── Decisions ────────────────────────────────────────────
    async def _decide(
        self,
        review_id: str,
        staff: StaffContext,
        review_target: ReviewStatus,
        quote_target: QuoteStatus,
        action: str,
        notes: Optional[str],
    ) -> tuple[Review, Quote]:
        review = unwrap(await self.store.get_review(review_id), review_id=review_id)
        self.claims.require_claim(review, staff, action)
        ensure_review_transition(review, review_target)
        quote = unwrap(await self.store.get_quote(review.quote_id), quote_id=review.quote_id)
        current_quote_status = quote.status
        if current_quote_status == QuoteStatus.HITL_PENDING:
            # claim mirroring did not land; the review is in_review so the quote is too
            current_quote_status = QuoteStatus.IN_REVIEW
        ensure_quote_transition(quote.quote_id, current_quote_status, quote_target)

        now = self.clock()
        review = review.model_copy(update={
            "status": review_target,
            "completed_by": staff.staff_id,
            "completed_at": now,
            "resolution_notes": notes,
            "updated_at": now,
        })
        review = unwrap(await self.store.save_review(review), review_id=review_id)
        quote = quote.model_copy(update={"status": quote_target, "updated_at": now})
        quote = unwrap(await self.store.save_quote(quote), quote_id=quote.quote_id)

        hitl_transitions_total.labels(to_status=review_target.value).inc()
        logger.info(
            "hitl_review_decided",
            review_id=review_id,
            quote_id=quote.quote_id,
            action=action,
            review_status=review_target.value,
            quote_status=quote_target.value,
            staff_id=staff.staff_id,
        )
        await self._audit(quote.quote_id, staff, action, {
            "review_id": review_id,
            "notes": notes,
            "quote_status": quote_target.value,
        })
        return review, quote

    async def approve(self, review_id: str, staff: StaffContext, notes: Optional[str] = None) -> Review:
        review, _ = await self._decide(
            review_id, staff, ReviewStatus.APPROVED, QuoteStatus.APPROVED, "hitl_approve", notes,
        )
        return review

    async def reject_review(self, review_id: str, staff: StaffContext, reason: str) -> Review:
        """Close the review without approving it. The quote returns to draft."""
        if not reason or not reason.strip():
            raise InvalidInput("a reason is required to reject a review")
        review, _ = await self._decide(
            review_id, staff, ReviewStatus.REJECTED, QuoteStatus.DRAFT, "hitl_reject", reason,
        )
        return review

    async def reject_quote(self, review_id: str, staff: StaffContext, reason: str) -> Review:
        """Permanently reject the quote. Cannot be undone."""
        if not reason or not reason.strip():
            raise InvalidInput("a reason is required to reject a quote")
        review, quote = await self._decide(
            review_id, staff, ReviewStatus.REJECTED, QuoteStatus.REJECTED, "hitl_reject_quote", reason,
        )
        await notify.notify_customer(self.notifier, quote, notify.QUOTE_REJECTED, {"reason": reason})
        return review

    async def escalate(self, review_id: str, staff: StaffContext, reason: str) -> Review:
        if not reason or not reason.strip():
            raise InvalidInput("a reason is required to escalate")
        review, _ = await self._decide(
            review_id, staff, ReviewStatus.ESCALATED, QuoteStatus.ESCALATED, "hitl_escalate", reason,
        )
        return review

    # ── Non-terminal actions ─────────────────────────────────
    async def request_better_scan(
        self,
        review_id: str,
        staff: StaffContext,
        reason: str,
        file_ids: list[str],
    ) -> Review:
        """Ask the customer to re-upload files. Does not change pricing or status."""
        review = unwrap(await self.store.get_review(review_id), review_id=review_id)
        self.claims.require_claim(review, staff, "request_better_scan")
        if not reason or not reason.strip():
            raise InvalidInput("a reason is required to request a better scan")
        quote = unwrap(await self.store.get_quote(review.quote_id), quote_id=review.quote_id)
        documents = unwrap(await self.store.list_documents(quote.quote_id), quote_id=quote.quote_id)
        known = {d.file_id: d for d in documents}
        unknown = [f for f in file_ids if f not in known]
        if unknown:
            raise NotFound("files not found on this quote", file_ids=",".join(unknown))

        await self._audit(quote.quote_id, staff, "hitl_request_better_scan", {
            "review_id": review_id,
            "reason": reason,
            "file_ids": file_ids,
        })
        await notify.notify_customer(self.notifier, quote, notify.BETTER_SCAN_REQUESTED, {
            "reason": reason,
            "files": [known[f].filename for f in file_ids],
        })
        logger.info("better_scan_requested", review_id=review_id, quote_id=quote.quote_id, files=len(file_ids))
        return review

    async def add_note(self, review_id: str, staff: StaffContext, text: str) -> Review:
        """Append an internal staff note."""
        if not text or not text.strip():
            raise InvalidInput("note text is required")
        review = unwrap(await self.store.get_review(review_id), review_id=review_id)
        ensure_review_mutable(review, "add_note")
        now = self.clock()
        note = InternalNote(staff_id=staff.staff_id, text=text.strip(), created_at=now)
        review = review.model_copy(update={
            "internal_notes": [*review.internal_notes, note],
            "updated_at": now,
        })
        return unwrap(await self.store.save_review(review), review_id=review_id)

    # ── Corrections ──────────────────────────────────────────
    async def save_corrections(
        self,
        review_id: str,
        staff: StaffContext,
        corrections: list[Correction],
    ) -> CorrectionReport:
        """
        Apply a batch of corrections best-effort. Each correction is saved and
        audited on its own; failures are reported, not raised. Pricing is
        recalculated once if anything was applied.
        """
        review = unwrap(await self.store.get_review(review_id), review_id=review_id)
        self.claims.require_claim(review, staff, "save_corrections")
        if review.status not in ACTIVE_REVIEW_STATUSES:
            raise InvalidTransition(
                "corrections can only be made while the review is open",
                review_id=review_id,
                current_state=review.status.value,
                attempted="save_corrections",
            )

        report = CorrectionReport(review_id=review_id)
        for correction in corrections:
            try:
                outcome = await self._apply_correction(review.quote_id, staff, correction)
            except QuoteflowError as e:
                outcome = CorrectionOutcome(
                    field=correction.field,
                    file_id=correction.file_id,
                    success=False,
                    error=e.message,
                )
                logger.warning(
                    "correction_failed",
                    review_id=review_id,
                    field=correction.field,
                    file_id=correction.file_id,
                    error_code=e.error_code,
                )
            report.outcomes.append(outcome)

        if any(o.success for o in report.outcomes):
            try:
                await self.repricer.recalculate(review.quote_id, reason="correction", staff=staff)
            except QuoteflowError as e:
                report.outcomes.append(CorrectionOutcome(
                    field="pricing", success=False, error=e.message,
                ))
                logger.warning("correction_reprice_failed", review_id=review_id, error_code=e.error_code)

        logger.info(
            "corrections_saved",
            review_id=review_id,
            applied=len(report.outcomes) - len(report.failed),
            failed=len(report.failed),
        )
        return report

    async def _apply_correction(
        self,
        quote_id: str,
        staff: StaffContext,
        correction: Correction,
    ) -> CorrectionOutcome:
        if not correction.reason or not correction.reason.strip():
            raise InvalidInput("a reason is required for every correction", field=correction.field)

        if correction.file_id is not None:
            if correction.field not in DOCUMENT_FIELDS:
                raise InvalidInput("field cannot be corrected on a document", field=correction.field)
            documents = unwrap(await self.store.list_documents(quote_id), quote_id=quote_id)
            document = next((d for d in documents if d.file_id == correction.file_id), None)
            if document is None:
                raise NotFound("document not found", file_id=correction.file_id)
            new_value = _coerce(correction.field, DOCUMENT_FIELDS[correction.field], correction.new_value)
            old_value = getattr(document, correction.field)
            updated: QuoteDocument = document.model_copy(update={correction.field: new_value})
            unwrap(await self.store.save_document(updated), file_id=correction.file_id)
        else:
            if correction.field not in QUOTE_FIELDS:
                raise InvalidInput("field cannot be corrected on a quote", field=correction.field)
            quote = unwrap(await self.store.get_quote(quote_id), quote_id=quote_id)
            new_value = _coerce(correction.field, QUOTE_FIELDS[correction.field], correction.new_value)
            old_value = getattr(quote, correction.field)
            unwrap(await self.store.save_quote(quote.model_copy(update={correction.field: new_value})))

        old_text = None if old_value is None else str(old_value)
        new_text = None if new_value is None else str(new_value)
        await self._audit(quote_id, staff, "hitl_correction", {
            "field": correction.field,
            "file_id": correction.file_id,
            "old_value": old_text,
            "new_value": new_text,
            "reason": correction.reason,
            "staff_id": staff.staff_id,
            "timestamp": self.clock().isoformat(),
        })
        return CorrectionOutcome(
            field=correction.field,
            file_id=correction.file_id,
            success=True,
            old_value=old_text,
            new_value=new_text,
        )

    # ── Sending ──────────────────────────────────────────────
    async def send_quote(self, quote_id: str, staff: StaffContext) -> dict:
        """
        Send an approved (or never-reviewed draft) quote to the customer:
        reprice, snapshot a new version, create the checkout session and
        move the quote to awaiting_payment.
        """
        quote = unwrap(await self.store.get_quote(quote_id), quote_id=quote_id)
        ensure_quote_transition(quote_id, quote.status, QuoteStatus.AWAITING_PAYMENT)
        if quote.status == QuoteStatus.DRAFT:
            active = unwrap(await self.store.find_active_review(quote_id), quote_id=quote_id)
            if active is not None:
                raise InvalidTransition(
                    "quote has an open review",
                    quote_id=quote_id,
                    current_state=quote.status.value,
                    attempted=QuoteStatus.AWAITING_PAYMENT.value,
                )

        recalculated = await self.repricer.recalculate(quote_id, reason="send", staff=staff)
        quote = recalculated.quote

        checkout_url = None
        if self.payments is not None:
            checkout_url = unwrap(
                await self.payments.create_checkout_session(quote_id, quote.total),
                quote_id=quote_id,
            )

        now = self.clock()
        old_version = quote.version
        new_version = old_version + 1
        unwrap(await self.store.save_quote_version(QuoteVersion(
            quote_id=quote_id,
            version=new_version,
            snapshot=pricing_for_quote(recalculated.breakdown),
            created_by=staff.staff_id,
            created_at=now,
        )), quote_id=quote_id)
        quote = quote.model_copy(update={
            "version": new_version,
            "status": QuoteStatus.AWAITING_PAYMENT,
            "updated_at": now,
        })
        quote = unwrap(await self.store.save_quote(quote), quote_id=quote_id)

        logger.info(
            "quote_sent",
            quote_id=quote_id,
            version=new_version,
            total=str(quote.total),
            staff_id=staff.staff_id,
        )
        await self._audit(quote_id, staff, "quote_sent", {
            "old_version": old_version,
            "new_version": new_version,
            "total": str(quote.total),
        })
        await notify.notify_customer(self.notifier, quote, notify.QUOTE_READY, {
            "total": str(quote.total),
            "checkout_url": checkout_url,
        })
        return {"quote": quote, "version": new_version, "checkout_url": checkout_url}

    async def send_review_quote(self, review_id: str, staff: StaffContext) -> dict:
        review = unwrap(await self.store.get_review(review_id), review_id=review_id)
        return await self.send_quote(review.quote_id, staff)

    async def request_balance_payment(self, quote_id: str, staff: StaffContext) -> Optional[str]:
        """Payment link for the outstanding balance, or None when nothing is owed."""
        if self.payments is None:
            raise InvalidTransition("no payment gateway configured", quote_id=quote_id, attempted="payment_link")
        quote = unwrap(await self.store.get_quote(quote_id), quote_id=quote_id)
        if quote.balance_due <= 0:
            return None
        url = unwrap(
            await self.payments.create_payment_link(quote.balance_due, {
                "email": quote.customer_email,
                "name": quote.customer_name,
                "quote_id": quote_id,
            }),
            quote_id=quote_id,
        )
        await self._audit(quote_id, staff, "balance_payment_requested", {"amount": str(quote.balance_due)})
        await notify.notify_customer(self.notifier, quote, notify.BALANCE_DUE, {
            "amount": str(quote.balance_due),
            "payment_url": url,
        })
        return url

    # ── Queue ────────────────────────────────────────────────
    async def queue(self, limit: int = 50, offset: int = 0) -> list[Review]:
        """Open reviews, most urgent first."""
        return unwrap(await self.store.list_reviews(list(ACTIVE_REVIEW_STATUSES), limit, offset))

    async def queue_stats(self) -> dict:
        counts = unwrap(await self.store.review_counts())
        for status in ReviewStatus:
            review_queue_depth.labels(status=status.value).set(counts.get(status.value, 0))
        return {
            "pending": counts.get(ReviewStatus.PENDING.value, 0),
            "in_review": counts.get(ReviewStatus.IN_REVIEW.value, 0),
            "approved": counts.get(ReviewStatus.APPROVED.value, 0),
            "rejected": counts.get(ReviewStatus.REJECTED.value, 0),
            "escalated": counts.get(ReviewStatus.ESCALATED.value, 0),
            "total": sum(counts.values()),
        }

    async def _audit(
        self,
        quote_id: str,
        staff: Optional[StaffContext],
        action: str,
        details: dict,
    ) -> None:
        result = await self.store.append_audit(AuditEntry(
            action_type=action,
            staff_id=staff.staff_id if staff else None,
            entity_type="quote",
            entity_id=quote_id,
            details=details,
            created_at=self.clock(),
        ))
        if not result.ok:
            logger.warning("audit_append_failed", quote_id=quote_id, action=action, detail=result.detail)
