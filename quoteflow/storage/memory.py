"""
Dict-backed QuoteStore.

Used by the test suite and local development. Mirrors the SQL store's
semantics, including the atomic claim compare-and-set. Any method named
in `failing` returns a transport error, which lets tests exercise the
best-effort paths without a database.
"""

from datetime import date, datetime
from typing import Optional

from quoteflow.models.enums import ACTIVE_REVIEW_STATUSES, ReviewStatus, ProcessingStatus
from quoteflow.result import CONFLICT, NOT_FOUND, STALE, TRANSPORT, Err, Ok, Result
from quoteflow.schemas.grouping import LedgerState
from quoteflow.schemas.pricing import DeliveryOption
from quoteflow.schemas.quotes import Quote, QuoteDocument, QuoteVersion
from quoteflow.schemas.reviews import AuditEntry, Review, StaffUser
from quoteflow.schemas.turnaround import SameDayRule, TurnaroundDefinition
from quoteflow.storage.base import QuoteStore


class InMemoryQuoteStore(QuoteStore):
    """Fake store that keeps deep copies of every record."""

    def __init__(self):
        self.quotes: dict[str, Quote] = {}
        self.documents: dict[str, QuoteDocument] = {}
        self.reviews: dict[str, Review] = {}
        self.staff: dict[str, StaffUser] = {}
        self.audit: list[AuditEntry] = []
        self.versions: list[QuoteVersion] = []
        self.ledgers: dict[str, LedgerState] = {}
        self.settings: dict[str, str] = {}
        self.holidays: list[date] = []
        self.delivery_options: list[DeliveryOption] = []
        self.same_day_rules: list[SameDayRule] = []
        self.turnaround_definitions: list[TurnaroundDefinition] = []
        self.thresholds: dict[str, float] = {}
        self.failing: set[str] = set()
        self.calls: list[str] = []

    @property
    def store_name(self) -> str:
        return "memory"

    def _fail(self, method: str) -> Optional[Err]:
        self.calls.append(method)
        if method in self.failing:
            return Err(TRANSPORT, f"{method} unavailable")
        return None

    # ── Quotes ───────────────────────────────────────────────
    async def get_quote(self, quote_id: str) -> Result[Quote]:
        err = self._fail("get_quote")
        if err:
            return err
        quote = self.quotes.get(quote_id)
        if quote is None:
            return Err(NOT_FOUND, f"quote {quote_id} not found")
        return Ok(quote.model_copy(deep=True))

    async def save_quote(self, quote: Quote) -> Result[Quote]:
        err = self._fail("save_quote")
        if err:
            return err
        self.quotes[quote.quote_id] = quote.model_copy(deep=True)
        return Ok(quote)

    async def save_quote_version(self, version: QuoteVersion) -> Result[QuoteVersion]:
        err = self._fail("save_quote_version")
        if err:
            return err
        self.versions.append(version.model_copy(deep=True))
        return Ok(version)

    # ── Documents ────────────────────────────────────────────
    async def list_documents(self, quote_id: str) -> Result[list[QuoteDocument]]:
        err = self._fail("list_documents")
        if err:
            return err
        docs = [d.model_copy(deep=True) for d in self.documents.values() if d.quote_id == quote_id]
        return Ok(sorted(docs, key=lambda d: d.file_id))

    async def save_document(self, document: QuoteDocument) -> Result[QuoteDocument]:
        err = self._fail("save_document")
        if err:
            return err
        self.documents[document.file_id] = document.model_copy(deep=True)
        return Ok(document)

    async def mark_analysis_failed(self, file_id: str, reason: str) -> Result[None]:
        err = self._fail("mark_analysis_failed")
        if err:
            return err
        document = self.documents.get(file_id)
        if document is None:
            return Err(NOT_FOUND, f"document {file_id} not found")
        self.documents[file_id] = document.model_copy(update={
            "processing_status": ProcessingStatus.FAILED,
            "failure_reason": reason,
        })
        return Ok(None)

    # ── Reviews ──────────────────────────────────────────────
    async def get_review(self, review_id: str) -> Result[Review]:
        err = self._fail("get_review")
        if err:
            return err
        review = self.reviews.get(review_id)
        if review is None:
            return Err(NOT_FOUND, f"review {review_id} not found")
        return Ok(review.model_copy(deep=True))

    async def find_active_review(self, quote_id: str) -> Result[Optional[Review]]:
        err = self._fail("find_active_review")
        if err:
            return err
        for review in self.reviews.values():
            if review.quote_id == quote_id and review.status in ACTIVE_REVIEW_STATUSES:
                return Ok(review.model_copy(deep=True))
        return Ok(None)

    async def insert_review(self, review: Review) -> Result[Review]:
        err = self._fail("insert_review")
        if err:
            return err
        if review.status in ACTIVE_REVIEW_STATUSES and any(
            r.quote_id == review.quote_id and r.status in ACTIVE_REVIEW_STATUSES
            for r in self.reviews.values()
        ):
            return Err(CONFLICT, f"quote {review.quote_id} already has an active review")
        self.reviews[review.review_id] = review.model_copy(deep=True)
        return Ok(review)

    async def save_review(self, review: Review) -> Result[Review]:
        err = self._fail("save_review")
        if err:
            return err
        if review.review_id not in self.reviews:
            return Err(NOT_FOUND, f"review {review.review_id} not found")
        self.reviews[review.review_id] = review.model_copy(deep=True)
        return Ok(review)

    async def list_reviews(
        self,
        statuses: Optional[list[ReviewStatus]] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Result[list[Review]]:
        err = self._fail("list_reviews")
        if err:
            return err
        reviews = [
            r.model_copy(deep=True)
            for r in self.reviews.values()
            if statuses is None or r.status in statuses
        ]
        reviews.sort(key=lambda r: (r.priority, r.created_at.timestamp() if r.created_at else 0.0))
        return Ok(reviews[offset:offset + limit])

    async def review_counts(self) -> Result[dict[str, int]]:
        err = self._fail("review_counts")
        if err:
            return err
        counts: dict[str, int] = {}
        for review in self.reviews.values():
            counts[review.status.value] = counts.get(review.status.value, 0) + 1
        return Ok(counts)

    async def compare_and_set_claim(
        self,
        review_id: str,
        expected_assignee: Optional[str],
        new_assignee: str,
        at: datetime,
        override_by: Optional[str] = None,
    ) -> Result[Review]:
        err = self._fail("compare_and_set_claim")
        if err:
            return err
        review = self.reviews.get(review_id)
        if review is None:
            return Err(NOT_FOUND, f"review {review_id} not found")
        if review.assigned_to != expected_assignee or review.status not in ACTIVE_REVIEW_STATUSES:
            kind = CONFLICT if expected_assignee is None else STALE
            return Err(kind, "claim changed", {"assigned_to": review.assigned_to})

        update = {
            "assigned_to": new_assignee,
            "assigned_at": at,
            "status": ReviewStatus.IN_REVIEW,
            "updated_at": at,
        }
        if override_by is not None:
            update.update({
                "previous_assigned_to": expected_assignee,
                "claim_override_at": at,
                "claim_override_by": override_by,
            })
        self.reviews[review_id] = review.model_copy(update=update)
        return Ok(self.reviews[review_id].model_copy(deep=True))

    # ── Staff and audit ──────────────────────────────────────
    async def get_staff(self, staff_id: str) -> Result[StaffUser]:
        err = self._fail("get_staff")
        if err:
            return err
        staff = self.staff.get(staff_id)
        if staff is None or not staff.is_active:
            return Err(NOT_FOUND, f"staff {staff_id} not found")
        return Ok(staff)

    async def append_audit(self, entry: AuditEntry) -> Result[None]:
        err = self._fail("append_audit")
        if err:
            return err
        self.audit.append(entry.model_copy(deep=True))
        return Ok(None)

    async def list_audit(self, entity_id: str) -> Result[list[AuditEntry]]:
        err = self._fail("list_audit")
        if err:
            return err
        return Ok([e for e in self.audit if e.entity_id == entity_id])

    # ── Grouping ledger ──────────────────────────────────────
    async def load_ledger(self, quote_id: str) -> Result[LedgerState]:
        err = self._fail("load_ledger")
        if err:
            return err
        state = self.ledgers.get(quote_id)
        if state is None:
            return Ok(LedgerState(quote_id=quote_id))
        return Ok(state.model_copy(deep=True))

    async def save_ledger(self, state: LedgerState) -> Result[LedgerState]:
        err = self._fail("save_ledger")
        if err:
            return err
        saved = LedgerState(
            quote_id=state.quote_id,
            items=[i.model_copy() for i in state.items],
            groups=[g.model_copy(update={"persisted": True}) for g in state.groups],
            assignments=[a.model_copy(update={"persisted": True}) for a in state.assignments],
        )
        self.ledgers[state.quote_id] = saved
        return Ok(saved.model_copy(deep=True))

    # ── Reference data ───────────────────────────────────────
    async def get_settings(self) -> Result[dict[str, str]]:
        err = self._fail("get_settings")
        if err:
            return err
        return Ok(dict(self.settings))

    async def get_holidays(self) -> Result[list[date]]:
        err = self._fail("get_holidays")
        if err:
            return err
        return Ok(list(self.holidays))

    async def get_delivery_options(self) -> Result[list[DeliveryOption]]:
        err = self._fail("get_delivery_options")
        if err:
            return err
        return Ok(list(self.delivery_options))

    async def get_same_day_rules(self) -> Result[list[SameDayRule]]:
        err = self._fail("get_same_day_rules")
        if err:
            return err
        return Ok(list(self.same_day_rules))

    async def get_turnaround_definitions(self) -> Result[list[TurnaroundDefinition]]:
        err = self._fail("get_turnaround_definitions")
        if err:
            return err
        return Ok(list(self.turnaround_definitions))

    async def get_thresholds(self) -> Result[dict[str, float]]:
        err = self._fail("get_thresholds")
        if err:
            return err
        return Ok(dict(self.thresholds))
