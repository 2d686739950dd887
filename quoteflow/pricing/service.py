"""
Repricing from persisted state.

Loads the confirmed quote, its documents, the grouping ledger and the
reference tables, runs the calculator, and saves the new breakdown.
The baseline is always what the store returns, never a caller's copy.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import structlog

from quoteflow.config import PricingSettings, load_pricing_settings
from quoteflow.grouping.ledger import DocumentLedger, items_from_documents
from quoteflow.models.enums import ProcessingStatus
from quoteflow.observability.metrics import pricing_recalculations_total, quote_total_amount
from quoteflow.pricing.billable import document_billable_pages
from quoteflow.pricing.calculator import calculate_pricing, document_line_total
from quoteflow.pricing.changes import detect_changes
from quoteflow.pricing.turnaround import is_same_day_eligible, turnaround_options
from quoteflow.result import unwrap
from quoteflow.schemas.pricing import (
    CertificationLine,
    DocumentLine,
    PricingBreakdown,
    PricingInput,
    PricingSnapshot,
)
from quoteflow.schemas.quotes import Quote, QuoteDocument, RecalculationResult
from quoteflow.schemas.reviews import AuditEntry, StaffContext
from quoteflow.schemas.turnaround import TurnaroundOption
from quoteflow.storage.base import QuoteStore
from quoteflow.workflow.claims import ClaimService
from quoteflow.workflow.state_machine import ensure_quote_repriceable

logger = structlog.get_logger(__name__)

_PRICED_STATUSES = {ProcessingStatus.COMPLETED}


def snapshot_of(quote: Quote) -> PricingSnapshot:
    return PricingSnapshot(
        turnaround_type=quote.turnaround_type,
        delivery_option=quote.delivery_option,
        certifications=quote.certifications,
        surcharge=quote.surcharge,
        discount=quote.discount,
    )


class RepricingService:
    """Recalculates and persists quote pricing."""

    def __init__(self, store: QuoteStore):
        self.store = store

    # ── Input assembly ───────────────────────────────────────
    def priced_documents(
        self,
        quote: Quote,
        documents: list[QuoteDocument],
        pricing: PricingSettings,
        warnings: list[str],
    ) -> list[QuoteDocument]:
        """Documents with billable pages and line totals filled in."""
        priced = []
        for doc in documents:
            if doc.billable_pages_override is None and doc.processing_status not in _PRICED_STATUSES:
                continue
            if doc.billable_pages_override is not None:
                pages = doc.billable_pages_override
            else:
                word_counts = [p.word_count for p in doc.pages] or [doc.word_count]
                pages = document_billable_pages(word_counts, doc.assessed_complexity, pricing, warnings)
            line_total = document_line_total(pages, pricing.base_rate, quote.language_multiplier)
            priced.append(doc.model_copy(update={"billable_pages": pages, "line_total": line_total}))
        return priced

    def build_input(
        self,
        quote: Quote,
        documents: list[QuoteDocument],
        ledger: DocumentLedger,
        delivery_options: list,
        pricing: PricingSettings,
    ) -> PricingInput:
        """Group lines replace file lines once any group exists."""
        if ledger.active_groups():
            doc_lines, cert_lines = ledger.pricing_lines(quote.language_multiplier, pricing)
        else:
            doc_lines = [
                DocumentLine(
                    document_id=d.file_id,
                    billable_pages=d.billable_pages,
                    language_multiplier=quote.language_multiplier,
                )
                for d in documents
            ]
            cert_lines = [
                CertificationLine(
                    line_id=d.file_id,
                    certification_code=d.certification_code or "",
                    quantity=1,
                    unit_price=d.certification_price,
                )
                for d in documents
                if d.certification_price is not None
            ]
        return PricingInput(
            documents=doc_lines,
            certifications=cert_lines + list(quote.certifications),
            surcharge=quote.surcharge,
            discount=quote.discount,
            turnaround_type=quote.turnaround_type,
            delivery_option=quote.delivery_option,
            delivery_options=delivery_options,
            tax_rate=quote.tax_rate,
            previous_total=quote.total,
            amount_paid=quote.amount_paid,
        )

    # ── Operations ───────────────────────────────────────────
    async def recalculate(
        self,
        quote_id: str,
        reason: str = "manual",
        staff: Optional[StaffContext] = None,
    ) -> RecalculationResult:
        """Reprice from the persisted state and save the breakdown."""
        quote = unwrap(await self.store.get_quote(quote_id), quote_id=quote_id)
        ensure_quote_repriceable(quote_id, quote.status)
        return await self._reprice(quote, reason, staff, changes=[])

    async def update_inputs(
        self,
        quote_id: str,
        snapshot: PricingSnapshot,
        staff: StaffContext,
        reason: str,
    ) -> RecalculationResult:
        """
        Apply staff edits to turnaround, delivery, certifications, surcharge
        or discount. Each changed field is audited even when the total does
        not move.
        """
        quote = unwrap(await self.store.get_quote(quote_id), quote_id=quote_id)
        ensure_quote_repriceable(quote_id, quote.status)
        review = unwrap(await self.store.find_active_review(quote_id), quote_id=quote_id)
        if review is not None:
            ClaimService(self.store).require_claim(review, staff, "update_pricing_inputs")
        changes = detect_changes(snapshot_of(quote), snapshot)
        quote = quote.model_copy(update={
            "turnaround_type": snapshot.turnaround_type,
            "delivery_option": snapshot.delivery_option,
            "certifications": snapshot.certifications,
            "surcharge": snapshot.surcharge,
            "discount": snapshot.discount,
        })
        result = await self._reprice(quote, "staff_edit", staff, changes=[c.model_dump() for c in changes])
        for change in changes:
            await self._audit(quote_id, staff, "pricing_input_changed", {
                "field": change.field,
                "old_value": change.old_value,
                "new_value": change.new_value,
                "reason": reason,
            })
        return result

    async def _reprice(
        self,
        quote: Quote,
        reason: str,
        staff: Optional[StaffContext],
        changes: list[dict],
    ) -> RecalculationResult:
        pricing = await load_pricing_settings(self.store)
        warnings: list[str] = []

        documents = unwrap(await self.store.list_documents(quote.quote_id), quote_id=quote.quote_id)
        priced = self.priced_documents(quote, documents, pricing, warnings)
        ledger = DocumentLedger(unwrap(await self.store.load_ledger(quote.quote_id)))
        ledger.sync_items(items_from_documents(documents))
        delivery_options = unwrap(await self.store.get_delivery_options())

        breakdown = calculate_pricing(
            self.build_input(quote, priced, ledger, delivery_options, pricing),
            pricing,
        )
        updated = quote.apply_breakdown(breakdown).model_copy(
            update={"updated_at": datetime.now(timezone.utc)}
        )
        unwrap(await self.store.save_quote(updated), quote_id=quote.quote_id)
        for doc in priced:
            unwrap(await self.store.save_document(doc), file_id=doc.file_id)

        pricing_recalculations_total.labels(reason=reason).inc()
        quote_total_amount.observe(float(breakdown.total))
        logger.info(
            "quote_repriced",
            quote_id=quote.quote_id,
            reason=reason,
            total=str(breakdown.total),
            balance_change=str(breakdown.balance_change),
            has_changes=bool(changes),
            warnings=len(warnings),
        )
        if staff is not None:
            await self._audit(quote.quote_id, staff, "pricing_recalculated", {
                "reason": reason,
                "previous_total": str(quote.total),
                "new_total": str(breakdown.total),
            })

        return RecalculationResult(
            quote=updated,
            breakdown=breakdown,
            changes=changes,
            has_changes=bool(changes),
            warnings=warnings,
        )

    async def turnaround(
        self,
        quote_id: str,
        now: Optional[datetime] = None,
    ) -> list[TurnaroundOption]:
        """Turnaround tiers for a quote based on its current billable pages."""
        quote = unwrap(await self.store.get_quote(quote_id), quote_id=quote_id)
        pricing = await load_pricing_settings(self.store)
        documents = unwrap(await self.store.list_documents(quote_id), quote_id=quote_id)
        priced = self.priced_documents(quote, documents, pricing, [])
        total_pages = sum((d.billable_pages for d in priced), Decimal("0"))
        total_pages = max(total_pages, pricing.min_billable_pages)

        holidays = await self._reference(self.store.get_holidays(), "holidays")
        rules = await self._reference(self.store.get_same_day_rules(), "same_day_rules")
        definitions = await self._reference(self.store.get_turnaround_definitions(), "turnaround_definitions")
        eligible = is_same_day_eligible(
            quote.source_language or "",
            quote.target_language or "",
            quote.document_type or "",
            quote.intended_use or "",
            rules,
        )
        base = quote.subtotal + quote.certification_total
        return turnaround_options(
            total_pages, base, eligible, holidays, now, pricing, definitions,
        )

    # ── Helpers ──────────────────────────────────────────────
    async def _reference(self, call, name: str) -> list:
        """Reference tables degrade to empty (defaults apply) when unreachable."""
        result = await call
        if not result.ok:
            logger.warning("reference_data_unavailable", table=name, detail=result.detail)
            return []
        return result.value

    async def _audit(self, quote_id: str, staff: StaffContext, action: str, details: dict) -> None:
        result = await self.store.append_audit(AuditEntry(
            action_type=action,
            staff_id=staff.staff_id,
            entity_type="quote",
            entity_id=quote_id,
            details=details,
            created_at=datetime.now(timezone.utc),
        ))
        if not result.ok:
            logger.warning("audit_append_failed", quote_id=quote_id, action=action, detail=result.detail)


def pricing_for_quote(breakdown: PricingBreakdown) -> dict:
    """Breakdown as the JSON snapshot stored with a quote version."""
    return breakdown.model_dump(mode="json")
