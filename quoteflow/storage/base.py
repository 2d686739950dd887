"""
Abstract persistence port for the quoting core.

Every method returns a tagged Result instead of raising, so transport
and database errors never leak into the services. Two operations are
atomic: compare_and_set_claim and append_audit. Everything else is a
plain get/put with last-write-wins semantics.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Optional

from quoteflow.models.enums import ReviewStatus
from quoteflow.result import Result
from quoteflow.schemas.grouping import LedgerState
from quoteflow.schemas.pricing import DeliveryOption
from quoteflow.schemas.quotes import Quote, QuoteDocument, QuoteVersion
from quoteflow.schemas.reviews import AuditEntry, Review, StaffUser
from quoteflow.schemas.turnaround import SameDayRule, TurnaroundDefinition


class QuoteStore(ABC):
    """
    Persistence for quotes, documents, reviews and reference data.

    Implementations:
    1. Return Ok(value) on success
    2. Return Err(NOT_FOUND) for missing rows
    3. Return Err(TRANSPORT) for connection or database failures
    4. Never raise for expected failures
    """

    @property
    @abstractmethod
    def store_name(self) -> str:
        ...

    # ── Quotes ───────────────────────────────────────────────
    @abstractmethod
    async def get_quote(self, quote_id: str) -> Result[Quote]:
        ...

    @abstractmethod
    async def save_quote(self, quote: Quote) -> Result[Quote]:
        ...

    @abstractmethod
    async def save_quote_version(self, version: QuoteVersion) -> Result[QuoteVersion]:
        ...

    # ── Documents ────────────────────────────────────────────
    @abstractmethod
    async def list_documents(self, quote_id: str) -> Result[list[QuoteDocument]]:
        ...

    @abstractmethod
    async def save_document(self, document: QuoteDocument) -> Result[QuoteDocument]:
        ...

    @abstractmethod
    async def mark_analysis_failed(self, file_id: str, reason: str) -> Result[None]:
        ...

    # ── Reviews ──────────────────────────────────────────────
    @abstractmethod
    async def get_review(self, review_id: str) -> Result[Review]:
        ...

    @abstractmethod
    async def find_active_review(self, quote_id: str) -> Result[Optional[Review]]:
        """The pending or in_review review for a quote, if any."""
        ...

    @abstractmethod
    async def insert_review(self, review: Review) -> Result[Review]:
        ...

    @abstractmethod
    async def save_review(self, review: Review) -> Result[Review]:
        ...

    @abstractmethod
    async def list_reviews(
        self,
        statuses: Optional[list[ReviewStatus]] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Result[list[Review]]:
        """Reviews ordered by priority, then creation time."""
        ...

    @abstractmethod
    async def review_counts(self) -> Result[dict[str, int]]:
        ...

    @abstractmethod
    async def compare_and_set_claim(
        self,
        review_id: str,
        expected_assignee: Optional[str],
        new_assignee: str,
        at: datetime,
        override_by: Optional[str] = None,
    ) -> Result[Review]:
        """
        Assign the review to new_assignee only if it is currently assigned
        to expected_assignee (None = unassigned) and still active.

        On mismatch returns Err(CONFLICT) when expected_assignee is None,
        Err(STALE) otherwise, with data={"assigned_to": current}.
        """
        ...

    # ── Staff and audit ──────────────────────────────────────
    @abstractmethod
    async def get_staff(self, staff_id: str) -> Result[StaffUser]:
        ...

    @abstractmethod
    async def append_audit(self, entry: AuditEntry) -> Result[None]:
        ...

    @abstractmethod
    async def list_audit(self, entity_id: str) -> Result[list[AuditEntry]]:
        ...

    # ── Grouping ledger ──────────────────────────────────────
    @abstractmethod
    async def load_ledger(self, quote_id: str) -> Result[LedgerState]:
        ...

    @abstractmethod
    async def save_ledger(self, state: LedgerState) -> Result[LedgerState]:
        ...

    # ── Reference data ───────────────────────────────────────
    @abstractmethod
    async def get_settings(self) -> Result[dict[str, str]]:
        ...

    @abstractmethod
    async def get_holidays(self) -> Result[list[date]]:
        ...

    @abstractmethod
    async def get_delivery_options(self) -> Result[list[DeliveryOption]]:
        ...

    @abstractmethod
    async def get_same_day_rules(self) -> Result[list[SameDayRule]]:
        ...

    @abstractmethod
    async def get_turnaround_definitions(self) -> Result[list[TurnaroundDefinition]]:
        ...

    @abstractmethod
    async def get_thresholds(self) -> Result[dict[str, float]]:
        ...
