"""
Grouping operations against persisted state.

Every structural change loads the confirmed ledger, applies one ledger
operation, saves, then reprices the whole quote. While a review is open
only the staff member holding its claim may regroup.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

import structlog

from quoteflow.config import load_pricing_settings
from quoteflow.grouping.ledger import DocumentLedger, items_from_documents
from quoteflow.pricing.service import RepricingService
from quoteflow.result import unwrap
from quoteflow.schemas.grouping import DocumentGroup, GroupSummary, LedgerState
from quoteflow.schemas.quotes import Quote, RecalculationResult
from quoteflow.schemas.reviews import AuditEntry, StaffContext
from quoteflow.storage.base import QuoteStore
from quoteflow.workflow.claims import ClaimService
from quoteflow.workflow.state_machine import ensure_quote_repriceable

logger = structlog.get_logger(__name__)


class GroupingService:

    def __init__(
        self,
        store: QuoteStore,
        repricer: Optional[RepricingService] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self.store = store
        self.repricer = repricer or RepricingService(store)
        self.claims = ClaimService(store)
        self._id_factory = id_factory

    async def _ledger(self, quote_id: str) -> DocumentLedger:
        documents = unwrap(await self.store.list_documents(quote_id), quote_id=quote_id)
        state = unwrap(await self.store.load_ledger(quote_id), quote_id=quote_id)
        ledger = DocumentLedger(state, self._id_factory)
        ledger.sync_items(items_from_documents(documents))
        return ledger

    async def _editable(self, quote_id: str, staff: StaffContext, attempted: str) -> Quote:
        quote = unwrap(await self.store.get_quote(quote_id), quote_id=quote_id)
        ensure_quote_repriceable(quote_id, quote.status)
        review = unwrap(await self.store.find_active_review(quote_id), quote_id=quote_id)
        if review is not None:
            self.claims.require_claim(review, staff, attempted)
        return quote

    async def _commit(
        self,
        ledger: DocumentLedger,
        staff: StaffContext,
        action: str,
        details: dict,
    ) -> RecalculationResult:
        unwrap(await self.store.save_ledger(ledger.to_state()), quote_id=ledger.quote_id)
        result = await self.repricer.recalculate(ledger.quote_id, reason="grouping_changed", staff=staff)
        audited = await self.store.append_audit(AuditEntry(
            action_type=action,
            staff_id=staff.staff_id,
            entity_type="quote",
            entity_id=ledger.quote_id,
            details=details,
            created_at=datetime.now(timezone.utc),
        ))
        if not audited.ok:
            logger.warning("audit_append_failed", quote_id=ledger.quote_id, action=action)
        return result

    # ── Queries ──────────────────────────────────────────────
    async def state(self, quote_id: str) -> LedgerState:
        return (await self._ledger(quote_id)).to_state()

    async def summaries(self, quote_id: str) -> dict:
        """Active groups with their billable pages, plus unassigned items."""
        quote = unwrap(await self.store.get_quote(quote_id), quote_id=quote_id)
        pricing = await load_pricing_settings(self.store)
        ledger = await self._ledger(quote_id)
        groups: list[GroupSummary] = ledger.summaries(quote.language_multiplier, pricing=pricing)
        return {
            "quote_id": quote_id,
            "groups": groups,
            "unassigned": ledger.unassigned_items(),
        }

    # ── Structural changes ───────────────────────────────────
    async def create_group(
        self,
        quote_id: str,
        staff: StaffContext,
        label: str,
        document_type: Optional[str] = None,
        complexity: Optional[str] = None,
        certification_code: Optional[str] = None,
        certification_price: Decimal = Decimal("0.00"),
    ) -> DocumentGroup:
        await self._editable(quote_id, staff, "create_group")
        ledger = await self._ledger(quote_id)
        group = ledger.create_group(label, document_type, complexity, certification_code, certification_price)
        await self._commit(ledger, staff, "group_created", {"group_id": group.group_id, "label": group.label})
        return group

    async def delete_group(self, quote_id: str, staff: StaffContext, group_id: str) -> RecalculationResult:
        await self._editable(quote_id, staff, "delete_group")
        ledger = await self._ledger(quote_id)
        released = ledger.delete_group(group_id)
        return await self._commit(ledger, staff, "group_deleted", {
            "group_id": group_id,
            "released_items": [i.item_id for i in released],
        })

    async def assign_item(
        self,
        quote_id: str,
        staff: StaffContext,
        group_id: str,
        item_id: str,
    ) -> RecalculationResult:
        await self._editable(quote_id, staff, "assign_item")
        ledger = await self._ledger(quote_id)
        assignment = ledger.assign_item(group_id, item_id)
        return await self._commit(ledger, staff, "group_item_assigned", {
            "group_id": group_id,
            "item_id": item_id,
            "assignment_id": assignment.assignment_id,
        })

    async def remove_item(self, quote_id: str, staff: StaffContext, assignment_id: str) -> RecalculationResult:
        await self._editable(quote_id, staff, "remove_item")
        ledger = await self._ledger(quote_id)
        item = ledger.remove_item(assignment_id)
        return await self._commit(ledger, staff, "group_item_removed", {
            "assignment_id": assignment_id,
            "item_id": item.item_id,
        })

    async def split_pages(
        self,
        quote_id: str,
        staff: StaffContext,
        item_ids: list[str],
        new_group_label: str,
        **group_fields,
    ) -> DocumentGroup:
        await self._editable(quote_id, staff, "split_pages")
        ledger = await self._ledger(quote_id)
        group = ledger.split_pages(item_ids, new_group_label, **group_fields)
        await self._commit(ledger, staff, "group_pages_split", {
            "group_id": group.group_id,
            "item_ids": list(item_ids),
        })
        return group

    async def combine_pages(
        self,
        quote_id: str,
        staff: StaffContext,
        item_ids: list[str],
        target_group_id: str,
    ) -> RecalculationResult:
        await self._editable(quote_id, staff, "combine_pages")
        ledger = await self._ledger(quote_id)
        ledger.combine_pages(item_ids, target_group_id)
        return await self._commit(ledger, staff, "group_pages_combined", {
            "group_id": target_group_id,
            "item_ids": list(item_ids),
        })
