"""
SQLAlchemy-backed QuoteStore.

Each call opens its own session from the async session factory and
commits before returning. Database and connection errors are logged and
returned as Err(TRANSPORT); a constraint violation is Err(CONFLICT).

The claim compare-and-set is a single conditional UPDATE; a zero row
count means another writer got there first.
"""

from datetime import date, datetime
from typing import Any, Awaitable, Callable, Optional

import structlog
from pydantic import TypeAdapter
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from quoteflow.grouping.ledger import items_from_documents
from quoteflow.models.database import async_session_factory
from quoteflow.models.enums import ACTIVE_REVIEW_STATUSES, ProcessingStatus, ReviewStatus
from quoteflow.models.tables import (
    AppSettingRow,
    DeliveryOptionRow,
    DocumentGroupRow,
    GroupAssignmentRow,
    HitlThresholdRow,
    HolidayRow,
    QuoteFileRow,
    QuotePageRow,
    QuoteRow,
    QuoteVersionRow,
    ReviewRow,
    SameDayEligibilityRow,
    StaffActivityRow,
    StaffUserRow,
    TurnaroundDefinitionRow,
)
from quoteflow.result import CONFLICT, NOT_FOUND, STALE, TRANSPORT, Err, Ok, Result
from quoteflow.schemas.grouping import DocumentGroup, GroupAssignment, LedgerState
from quoteflow.schemas.pricing import Adjustment, CertificationLine, DeliveryOption
from quoteflow.schemas.quotes import Quote, QuoteDocument, QuotePage, QuoteVersion
from quoteflow.schemas.reviews import AuditEntry, Review, StaffUser
from quoteflow.schemas.turnaround import SameDayRule, TurnaroundDefinition
from quoteflow.storage.base import QuoteStore

logger = structlog.get_logger(__name__)

_adjustment = TypeAdapter(Adjustment)

_ACTIVE = [s.value for s in ACTIVE_REVIEW_STATUSES]

# Columns copied one-to-one between the models and the rows
_QUOTE_COLUMNS = (
    "quote_number", "customer_id", "customer_email", "customer_name",
    "source_language", "target_language", "language_multiplier",
    "document_type", "intended_use",
    "subtotal", "certification_total", "surcharge_total", "discount_total",
    "rush_fee", "delivery_fee", "tax_rate", "tax_amount", "total",
    "amount_paid", "balance_due", "delivery_option", "version",
    "billing_address", "shipping_address",
)
_FILE_COLUMNS = (
    "quote_id", "filename", "storage_path", "page_count", "word_count",
    "detected_language", "detected_document_type", "assessed_complexity",
    "billable_pages", "billable_pages_override", "line_total",
    "certification_code", "certification_price", "failure_reason",
)
_CONFIDENCE_COLUMNS = (
    "ocr_confidence", "language_confidence",
    "classification_confidence", "complexity_confidence",
)
_REVIEW_COLUMNS = (
    "assigned_to", "assigned_at", "priority", "sla_deadline",
    "previous_assigned_to", "claim_override_at", "claim_override_by",
    "completed_by", "completed_at", "resolution_notes",
)


# ── Row conversion ───────────────────────────────────────────
def _quote_from_row(row: QuoteRow) -> Quote:
    return Quote(
        quote_id=row.quote_id,
        turnaround_type=row.turnaround_type,
        status=row.status,
        surcharge=_adjustment.validate_python(row.surcharge_json) if row.surcharge_json else None,
        discount=_adjustment.validate_python(row.discount_json) if row.discount_json else None,
        certifications=[CertificationLine.model_validate(c) for c in row.certifications_json or []],
        created_at=row.created_at,
        updated_at=row.updated_at,
        **{c: getattr(row, c) for c in _QUOTE_COLUMNS},
    )


def _quote_values(quote: Quote) -> dict[str, Any]:
    values = {c: getattr(quote, c) for c in _QUOTE_COLUMNS}
    values.update(
        turnaround_type=quote.turnaround_type.value,
        status=quote.status.value,
        surcharge_json=quote.surcharge.model_dump(mode="json") if quote.surcharge else None,
        discount_json=quote.discount.model_dump(mode="json") if quote.discount else None,
        certifications_json=[c.model_dump(mode="json") for c in quote.certifications],
    )
    return values


def _document_from_row(row: QuoteFileRow) -> QuoteDocument:
    confidences = {
        c: float(getattr(row, c)) if getattr(row, c) is not None else None
        for c in _CONFIDENCE_COLUMNS
    }
    return QuoteDocument(
        file_id=row.file_id,
        processing_status=row.processing_status,
        pages=[
            QuotePage(page_id=p.page_id, file_id=p.file_id, page_number=p.page_number, word_count=p.word_count)
            for p in row.pages
        ],
        **{c: getattr(row, c) for c in _FILE_COLUMNS},
        **confidences,
    )


def _review_from_row(row: ReviewRow) -> Review:
    return Review(
        review_id=row.review_id,
        quote_id=row.quote_id,
        status=row.status,
        trigger_reasons=row.trigger_reasons or [],
        internal_notes=row.internal_notes or [],
        created_at=row.created_at,
        updated_at=row.updated_at,
        **{c: getattr(row, c) for c in _REVIEW_COLUMNS},
    )


def _review_values(review: Review) -> dict[str, Any]:
    values = {c: getattr(review, c) for c in _REVIEW_COLUMNS}
    values.update(
        status=review.status.value,
        trigger_reasons=[t.value for t in review.trigger_reasons],
        internal_notes=[n.model_dump(mode="json") for n in review.internal_notes],
    )
    return values


def _apply(row: Any, values: dict[str, Any]) -> None:
    for key, value in values.items():
        setattr(row, key, value)


class SqlQuoteStore(QuoteStore):
    """QuoteStore over the async SQLAlchemy session factory."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self.session_factory = session_factory or async_session_factory

    @property
    def store_name(self) -> str:
        return "sql"

    async def _run(self, operation: str, work: Callable[[AsyncSession], Awaitable[Result]]) -> Result:
        try:
            async with self.session_factory() as session:
                return await work(session)
        except IntegrityError as e:
            logger.warning("store_constraint_violation", operation=operation, error=str(e.orig))
            return Err(CONFLICT, f"{operation} violated a constraint")
        except (SQLAlchemyError, OSError) as e:
            logger.error("store_error", operation=operation, error=str(e))
            return Err(TRANSPORT, f"{operation} failed")

    # ── Quotes ───────────────────────────────────────────────
    async def get_quote(self, quote_id: str) -> Result[Quote]:
        async def work(session: AsyncSession) -> Result:
            row = await session.get(QuoteRow, quote_id)
            if row is None:
                return Err(NOT_FOUND, f"quote {quote_id} not found")
            return Ok(_quote_from_row(row))

        return await self._run("get_quote", work)

    async def save_quote(self, quote: Quote) -> Result[Quote]:
        async def work(session: AsyncSession) -> Result:
            row = await session.get(QuoteRow, quote.quote_id)
            if row is None:
                row = QuoteRow(quote_id=quote.quote_id)
                if quote.created_at is not None:
                    row.created_at = quote.created_at
                session.add(row)
            _apply(row, _quote_values(quote))
            row.updated_at = quote.updated_at or func.now()
            await session.commit()
            return Ok(quote)

        return await self._run("save_quote", work)

    async def save_quote_version(self, version: QuoteVersion) -> Result[QuoteVersion]:
        async def work(session: AsyncSession) -> Result:
            row = QuoteVersionRow(
                quote_id=version.quote_id,
                version=version.version,
                snapshot=version.snapshot,
                created_by=version.created_by,
            )
            if version.created_at is not None:
                row.created_at = version.created_at
            session.add(row)
            await session.commit()
            return Ok(version)

        return await self._run("save_quote_version", work)

    # ── Documents ────────────────────────────────────────────
    async def list_documents(self, quote_id: str) -> Result[list[QuoteDocument]]:
        async def work(session: AsyncSession) -> Result:
            result = await session.execute(
                select(QuoteFileRow)
                .where(QuoteFileRow.quote_id == quote_id)
                .options(selectinload(QuoteFileRow.pages))
                .order_by(QuoteFileRow.file_id)
            )
            return Ok([_document_from_row(r) for r in result.scalars().all()])

        return await self._run("list_documents", work)

    async def save_document(self, document: QuoteDocument) -> Result[QuoteDocument]:
        async def work(session: AsyncSession) -> Result:
            result = await session.execute(
                select(QuoteFileRow)
                .where(QuoteFileRow.file_id == document.file_id)
                .options(selectinload(QuoteFileRow.pages))
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = QuoteFileRow(file_id=document.file_id, pages=[])
                session.add(row)
            _apply(row, {c: getattr(document, c) for c in _FILE_COLUMNS + _CONFIDENCE_COLUMNS})
            row.processing_status = document.processing_status.value

            known = {p.page_id: p for p in row.pages}
            for page in document.pages:
                existing = known.get(page.page_id)
                if existing is None:
                    row.pages.append(QuotePageRow(
                        page_id=page.page_id, page_number=page.page_number, word_count=page.word_count,
                    ))
                else:
                    existing.word_count = page.word_count
            await session.commit()
            return Ok(document)

        return await self._run("save_document", work)

    async def mark_analysis_failed(self, file_id: str, reason: str) -> Result[None]:
        async def work(session: AsyncSession) -> Result:
            result = await session.execute(
                update(QuoteFileRow)
                .where(QuoteFileRow.file_id == file_id)
                .values(processing_status=ProcessingStatus.FAILED.value, failure_reason=reason)
            )
            if result.rowcount == 0:
                await session.rollback()
                return Err(NOT_FOUND, f"document {file_id} not found")
            await session.commit()
            return Ok(None)

        return await self._run("mark_analysis_failed", work)

    # ── Reviews ──────────────────────────────────────────────
    async def get_review(self, review_id: str) -> Result[Review]:
        async def work(session: AsyncSession) -> Result:
            row = await session.get(ReviewRow, review_id)
            if row is None:
                return Err(NOT_FOUND, f"review {review_id} not found")
            return Ok(_review_from_row(row))

        return await self._run("get_review", work)

    async def find_active_review(self, quote_id: str) -> Result[Optional[Review]]:
        async def work(session: AsyncSession) -> Result:
            result = await session.execute(
                select(ReviewRow)
                .where(ReviewRow.quote_id == quote_id, ReviewRow.status.in_(_ACTIVE))
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return Ok(_review_from_row(row) if row is not None else None)

        return await self._run("find_active_review", work)

    async def insert_review(self, review: Review) -> Result[Review]:
        async def work(session: AsyncSession) -> Result:
            row = ReviewRow(review_id=review.review_id, quote_id=review.quote_id)
            _apply(row, _review_values(review))
            if review.created_at is not None:
                row.created_at = review.created_at
                row.updated_at = review.updated_at or review.created_at
            session.add(row)
            await session.commit()
            return Ok(review)

        return await self._run("insert_review", work)

    async def save_review(self, review: Review) -> Result[Review]:
        async def work(session: AsyncSession) -> Result:
            row = await session.get(ReviewRow, review.review_id)
            if row is None:
                return Err(NOT_FOUND, f"review {review.review_id} not found")
            _apply(row, _review_values(review))
            row.updated_at = review.updated_at or func.now()
            await session.commit()
            return Ok(review)

        return await self._run("save_review", work)

    async def list_reviews(
        self,
        statuses: Optional[list[ReviewStatus]] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Result[list[Review]]:
        async def work(session: AsyncSession) -> Result:
            query = select(ReviewRow)
            if statuses is not None:
                query = query.where(ReviewRow.status.in_([s.value for s in statuses]))
            result = await session.execute(
                query.order_by(ReviewRow.priority, ReviewRow.created_at).offset(offset).limit(limit)
            )
            return Ok([_review_from_row(r) for r in result.scalars().all()])

        return await self._run("list_reviews", work)

    async def review_counts(self) -> Result[dict[str, int]]:
        async def work(session: AsyncSession) -> Result:
            result = await session.execute(
                select(ReviewRow.status, func.count(ReviewRow.review_id)).group_by(ReviewRow.status)
            )
            return Ok({row[0]: row[1] for row in result.all()})

        return await self._run("review_counts", work)

    async def compare_and_set_claim(
        self,
        review_id: str,
        expected_assignee: Optional[str],
        new_assignee: str,
        at: datetime,
        override_by: Optional[str] = None,
    ) -> Result[Review]:
        async def work(session: AsyncSession) -> Result:
            stmt = update(ReviewRow).where(
                ReviewRow.review_id == review_id,
                ReviewRow.status.in_(_ACTIVE),
            )
            if expected_assignee is None:
                stmt = stmt.where(ReviewRow.assigned_to.is_(None))
            else:
                stmt = stmt.where(ReviewRow.assigned_to == expected_assignee)
            values = {
                "assigned_to": new_assignee,
                "assigned_at": at,
                "status": ReviewStatus.IN_REVIEW.value,
                "updated_at": at,
            }
            if override_by is not None:
                values.update(
                    previous_assigned_to=expected_assignee,
                    claim_override_at=at,
                    claim_override_by=override_by,
                )
            result = await session.execute(
                stmt.values(**values).execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await session.rollback()
                row = await session.get(ReviewRow, review_id)
                if row is None:
                    return Err(NOT_FOUND, f"review {review_id} not found")
                kind = CONFLICT if expected_assignee is None else STALE
                return Err(kind, "claim changed", {"assigned_to": row.assigned_to})
            await session.commit()
            row = await session.get(ReviewRow, review_id, populate_existing=True)
            return Ok(_review_from_row(row))

        return await self._run("compare_and_set_claim", work)

    # ── Staff and audit ──────────────────────────────────────
    async def get_staff(self, staff_id: str) -> Result[StaffUser]:
        async def work(session: AsyncSession) -> Result:
            row = await session.get(StaffUserRow, staff_id)
            if row is None or not row.is_active:
                return Err(NOT_FOUND, f"staff {staff_id} not found")
            return Ok(StaffUser(
                staff_id=row.staff_id, role=row.role, name=row.name,
                email=row.email, is_active=row.is_active,
            ))

        return await self._run("get_staff", work)

    async def append_audit(self, entry: AuditEntry) -> Result[None]:
        async def work(session: AsyncSession) -> Result:
            row = StaffActivityRow(
                staff_id=entry.staff_id,
                action_type=entry.action_type,
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                details=entry.model_dump(mode="json")["details"],
            )
            if entry.created_at is not None:
                row.created_at = entry.created_at
            session.add(row)
            await session.commit()
            return Ok(None)

        return await self._run("append_audit", work)

    async def list_audit(self, entity_id: str) -> Result[list[AuditEntry]]:
        async def work(session: AsyncSession) -> Result:
            result = await session.execute(
                select(StaffActivityRow)
                .where(StaffActivityRow.entity_id == entity_id)
                .order_by(StaffActivityRow.created_at)
            )
            return Ok([
                AuditEntry(
                    action_type=r.action_type,
                    staff_id=r.staff_id,
                    entity_type=r.entity_type,
                    entity_id=r.entity_id,
                    details=r.details or {},
                    created_at=r.created_at,
                )
                for r in result.scalars().all()
            ])

        return await self._run("list_audit", work)

    # ── Grouping ledger ──────────────────────────────────────
    async def load_ledger(self, quote_id: str) -> Result[LedgerState]:
        async def work(session: AsyncSession) -> Result:
            files = await session.execute(
                select(QuoteFileRow)
                .where(QuoteFileRow.quote_id == quote_id)
                .options(selectinload(QuoteFileRow.pages))
                .order_by(QuoteFileRow.file_id)
            )
            documents = [_document_from_row(r) for r in files.scalars().all()]
            groups = await session.execute(
                select(DocumentGroupRow)
                .where(DocumentGroupRow.quote_id == quote_id)
                .order_by(DocumentGroupRow.sort_order)
            )
            group_rows = list(groups.scalars().all())
            group_ids = [g.group_id for g in group_rows]
            assignment_rows = []
            if group_ids:
                assignments = await session.execute(
                    select(GroupAssignmentRow)
                    .where(GroupAssignmentRow.group_id.in_(group_ids))
                    .order_by(GroupAssignmentRow.sequence)
                )
                assignment_rows = list(assignments.scalars().all())
            return Ok(LedgerState(
                quote_id=quote_id,
                items=items_from_documents(documents),
                groups=[
                    DocumentGroup(
                        group_id=g.group_id, quote_id=g.quote_id, label=g.label,
                        document_type=g.document_type, complexity=g.complexity,
                        certification_code=g.certification_code,
                        certification_price=g.certification_price,
                        sort_order=g.sort_order, is_deleted=g.is_deleted, persisted=True,
                    )
                    for g in group_rows
                ],
                assignments=[
                    GroupAssignment(
                        assignment_id=a.assignment_id, group_id=a.group_id, item_id=a.item_id,
                        sequence=a.sequence, is_deleted=a.is_deleted, persisted=True,
                    )
                    for a in assignment_rows
                ],
            ))

        return await self._run("load_ledger", work)

    async def save_ledger(self, state: LedgerState) -> Result[LedgerState]:
        async def work(session: AsyncSession) -> Result:
            for group in state.groups:
                row = await session.get(DocumentGroupRow, group.group_id)
                if row is None:
                    row = DocumentGroupRow(group_id=group.group_id, quote_id=state.quote_id)
                    session.add(row)
                _apply(row, group.model_dump(include={
                    "label", "document_type", "complexity", "certification_code",
                    "certification_price", "sort_order", "is_deleted",
                }))
            await session.flush()
            for assignment in state.assignments:
                row = await session.get(GroupAssignmentRow, assignment.assignment_id)
                if row is None:
                    row = GroupAssignmentRow(assignment_id=assignment.assignment_id)
                    session.add(row)
                _apply(row, assignment.model_dump(include={"group_id", "item_id", "sequence", "is_deleted"}))
            await session.commit()
            return Ok(LedgerState(
                quote_id=state.quote_id,
                items=list(state.items),
                groups=[g.model_copy(update={"persisted": True}) for g in state.groups],
                assignments=[a.model_copy(update={"persisted": True}) for a in state.assignments],
            ))

        return await self._run("save_ledger", work)

    # ── Reference data ───────────────────────────────────────
    async def get_settings(self) -> Result[dict[str, str]]:
        async def work(session: AsyncSession) -> Result:
            result = await session.execute(select(AppSettingRow))
            return Ok({r.setting_key: r.setting_value for r in result.scalars().all()})

        return await self._run("get_settings", work)

    async def get_holidays(self) -> Result[list[date]]:
        async def work(session: AsyncSession) -> Result:
            result = await session.execute(
                select(HolidayRow.holiday_date).where(HolidayRow.is_active.is_(True))
            )
            return Ok(list(result.scalars().all()))

        return await self._run("get_holidays", work)

    async def get_delivery_options(self) -> Result[list[DeliveryOption]]:
        async def work(session: AsyncSession) -> Result:
            result = await session.execute(
                select(DeliveryOptionRow)
                .where(DeliveryOptionRow.is_active.is_(True))
                .order_by(DeliveryOptionRow.sort_order)
            )
            return Ok([
                DeliveryOption(
                    code=r.code, name=r.name, price=r.price,
                    is_physical=r.is_physical, estimated_days=r.estimated_days,
                )
                for r in result.scalars().all()
            ])

        return await self._run("get_delivery_options", work)

    async def get_same_day_rules(self) -> Result[list[SameDayRule]]:
        async def work(session: AsyncSession) -> Result:
            result = await session.execute(
                select(SameDayEligibilityRow).where(SameDayEligibilityRow.is_active.is_(True))
            )
            return Ok([
                SameDayRule(
                    source_language=r.source_language, target_language=r.target_language,
                    document_type=r.document_type, intended_use=r.intended_use,
                )
                for r in result.scalars().all()
            ])

        return await self._run("get_same_day_rules", work)

    async def get_turnaround_definitions(self) -> Result[list[TurnaroundDefinition]]:
        async def work(session: AsyncSession) -> Result:
            result = await session.execute(select(TurnaroundDefinitionRow))
            return Ok([
                TurnaroundDefinition(
                    turnaround_type=r.turnaround_type, label=r.label,
                    multiplier=r.multiplier, is_active=r.is_active,
                )
                for r in result.scalars().all()
            ])

        return await self._run("get_turnaround_definitions", work)

    async def get_thresholds(self) -> Result[dict[str, float]]:
        async def work(session: AsyncSession) -> Result:
            result = await session.execute(
                select(HitlThresholdRow).where(HitlThresholdRow.is_active.is_(True))
            )
            return Ok({r.threshold_key: float(r.threshold_value) for r in result.scalars().all()})

        return await self._run("get_thresholds", work)
