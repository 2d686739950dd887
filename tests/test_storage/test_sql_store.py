"""
SqlQuoteStore against an in-memory SQLite database.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from quoteflow.models import tables
from quoteflow.models.database import Base
from quoteflow.models.enums import ProcessingStatus, QuoteStatus, ReviewStatus, TriggerReason
from quoteflow.pricing.service import RepricingService
from quoteflow.result import CONFLICT, NOT_FOUND, STALE
from quoteflow.schemas.grouping import DocumentGroup, GroupAssignment, LedgerState
from quoteflow.schemas.pricing import CertificationLine, Flat, Percent
from quoteflow.schemas.quotes import Quote, QuoteDocument, QuotePage
from quoteflow.schemas.reviews import AuditEntry, Review
from quoteflow.storage.sql_store import SqlQuoteStore

AT = datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def sql_store():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield SqlQuoteStore(async_sessionmaker(engine, expire_on_commit=False))
    await engine.dispose()


async def _seed(store: SqlQuoteStore, quote_id: str = "q1", with_pages: bool = False) -> None:
    await store.save_quote(Quote(quote_id=quote_id, quote_number=f"QT-{quote_id}"))
    pages = [QuotePage(page_id=f"{quote_id}-p1", file_id=f"{quote_id}-f1", page_number=1, word_count=500)]
    await store.save_document(QuoteDocument(
        file_id=f"{quote_id}-f1",
        quote_id=quote_id,
        filename="birth.pdf",
        word_count=500,
        processing_status=ProcessingStatus.COMPLETED,
        assessed_complexity="medium",
        pages=pages if with_pages else [],
    ))


class TestQuotes:

    @pytest.mark.asyncio
    async def test_round_trip(self, sql_store):
        quote = Quote(
            quote_id="q1",
            quote_number="QT-1",
            surcharge=Flat(amount=Decimal("10.00")),
            discount=Percent(rate=Decimal("5")),
            certifications=[CertificationLine(certification_code="notary", unit_price=Decimal("30.00"))],
            status=QuoteStatus.HITL_PENDING,
            total=Decimal("178.50"),
        )
        assert (await sql_store.save_quote(quote)).ok

        loaded = (await sql_store.get_quote("q1")).value
        assert loaded.status == QuoteStatus.HITL_PENDING
        assert loaded.total == Decimal("178.50")
        assert loaded.surcharge == Flat(amount=Decimal("10.00"))
        assert loaded.discount.rate == Decimal("5")
        assert loaded.certifications[0].unit_price == Decimal("30.00")

    @pytest.mark.asyncio
    async def test_missing_quote(self, sql_store):
        result = await sql_store.get_quote("nope")
        assert not result.ok
        assert result.kind == NOT_FOUND

    @pytest.mark.asyncio
    async def test_update_keeps_one_row(self, sql_store):
        await _seed(sql_store)
        quote = (await sql_store.get_quote("q1")).value
        await sql_store.save_quote(quote.model_copy(update={"version": 2}))
        assert (await sql_store.get_quote("q1")).value.version == 2


class TestDocuments:

    @pytest.mark.asyncio
    async def test_pages_are_stored(self, sql_store):
        await _seed(sql_store, with_pages=True)
        documents = (await sql_store.list_documents("q1")).value
        assert len(documents) == 1
        assert documents[0].processing_status == ProcessingStatus.COMPLETED
        assert [p.page_id for p in documents[0].pages] == ["q1-p1"]

    @pytest.mark.asyncio
    async def test_page_word_counts_update(self, sql_store):
        await _seed(sql_store, with_pages=True)
        document = (await sql_store.list_documents("q1")).value[0]
        page = document.pages[0].model_copy(update={"word_count": 700})
        await sql_store.save_document(document.model_copy(update={"pages": [page]}))
        reloaded = (await sql_store.list_documents("q1")).value[0]
        assert reloaded.pages[0].word_count == 700

    @pytest.mark.asyncio
    async def test_mark_analysis_failed(self, sql_store):
        await _seed(sql_store)
        assert (await sql_store.mark_analysis_failed("q1-f1", "analysis_timeout")).ok
        document = (await sql_store.list_documents("q1")).value[0]
        assert document.processing_status == ProcessingStatus.FAILED
        assert document.failure_reason == "analysis_timeout"

        missing = await sql_store.mark_analysis_failed("nope", "analysis_timeout")
        assert missing.kind == NOT_FOUND


class TestReviews:

    @pytest.mark.asyncio
    async def test_claim_compare_and_set(self, sql_store):
        await _seed(sql_store)
        await sql_store.insert_review(Review(
            review_id="rv1", quote_id="q1", trigger_reasons=[TriggerReason.TIMEOUT], created_at=AT,
        ))

        claimed = await sql_store.compare_and_set_claim("rv1", None, "r1", AT)
        assert claimed.ok
        assert claimed.value.assigned_to == "r1"
        assert claimed.value.status == ReviewStatus.IN_REVIEW
        assert claimed.value.trigger_reasons == [TriggerReason.TIMEOUT]

        again = await sql_store.compare_and_set_claim("rv1", None, "r2", AT)
        assert again.kind == CONFLICT
        assert again.data == {"assigned_to": "r1"}

        stale = await sql_store.compare_and_set_claim("rv1", "r2", "s1", AT, override_by="s1")
        assert stale.kind == STALE

    @pytest.mark.asyncio
    async def test_override_records_previous_holder(self, sql_store):
        await _seed(sql_store)
        await sql_store.insert_review(Review(review_id="rv1", quote_id="q1", created_at=AT))
        await sql_store.compare_and_set_claim("rv1", None, "r1", AT)

        taken = (await sql_store.compare_and_set_claim("rv1", "r1", "s1", AT, override_by="s1")).value
        assert taken.assigned_to == "s1"
        assert taken.previous_assigned_to == "r1"
        assert taken.claim_override_by == "s1"

    @pytest.mark.asyncio
    async def test_one_active_review_per_quote(self, sql_store):
        await _seed(sql_store)
        assert (await sql_store.insert_review(Review(review_id="rv1", quote_id="q1"))).ok
        duplicate = await sql_store.insert_review(Review(review_id="rv2", quote_id="q1"))
        assert duplicate.kind == CONFLICT

        active = (await sql_store.find_active_review("q1")).value
        assert active.review_id == "rv1"

    @pytest.mark.asyncio
    async def test_closed_review_allows_a_new_one(self, sql_store):
        await _seed(sql_store)
        await sql_store.insert_review(Review(review_id="rv1", quote_id="q1"))
        closed = (await sql_store.get_review("rv1")).value.model_copy(update={"status": ReviewStatus.APPROVED})
        await sql_store.save_review(closed)

        assert (await sql_store.find_active_review("q1")).value is None
        assert (await sql_store.insert_review(Review(review_id="rv2", quote_id="q1"))).ok

    @pytest.mark.asyncio
    async def test_queue_order_and_counts(self, sql_store):
        for quote_id, priority in (("q1", 5), ("q2", 1), ("q3", 3)):
            await _seed(sql_store, quote_id)
            await sql_store.insert_review(Review(
                review_id=f"rv-{quote_id}", quote_id=quote_id, priority=priority, created_at=AT,
            ))

        queue = (await sql_store.list_reviews([ReviewStatus.PENDING])).value
        assert [r.review_id for r in queue] == ["rv-q2", "rv-q3", "rv-q1"]
        assert (await sql_store.review_counts()).value == {"pending": 3}


class TestAuditAndLedger:

    @pytest.mark.asyncio
    async def test_audit_entries(self, sql_store):
        await sql_store.append_audit(AuditEntry(
            action_type="review_claimed",
            staff_id="r1",
            entity_type="review",
            entity_id="rv1",
            details={"previous": None},
            created_at=AT,
        ))
        entries = (await sql_store.list_audit("rv1")).value
        assert [e.action_type for e in entries] == ["review_claimed"]
        assert entries[0].details == {"previous": None}

    @pytest.mark.asyncio
    async def test_ledger_round_trip(self, sql_store):
        await _seed(sql_store, with_pages=True)
        state = LedgerState(
            quote_id="q1",
            groups=[DocumentGroup(
                group_id="g1", quote_id="q1", label="Birth certificate",
                certification_price=Decimal("30.00"),
            )],
            assignments=[GroupAssignment(assignment_id="a1", group_id="g1", item_id="q1-p1")],
        )
        saved = (await sql_store.save_ledger(state)).value
        assert saved.groups[0].persisted

        loaded = (await sql_store.load_ledger("q1")).value
        assert [i.item_id for i in loaded.items] == ["q1-p1"]
        assert loaded.groups[0].label == "Birth certificate"
        assert loaded.groups[0].certification_price == Decimal("30.00")
        assert loaded.assignments[0].item_id == "q1-p1"
        assert loaded.assignments[0].persisted

    @pytest.mark.asyncio
    async def test_empty_ledger(self, sql_store):
        await _seed(sql_store)
        loaded = (await sql_store.load_ledger("q1")).value
        assert loaded.groups == []
        assert [i.item_id for i in loaded.items] == ["q1-f1"]


class TestReferenceData:

    @pytest.mark.asyncio
    async def test_reference_tables(self, sql_store):
        async with sql_store.session_factory() as session:
            session.add_all([
                tables.AppSettingRow(setting_key="base_rate", setting_value="65.00"),
                tables.HolidayRow(holiday_date=date(2026, 7, 1), name="Canada Day"),
                tables.HolidayRow(holiday_date=date(2026, 12, 25), name="Christmas", is_active=False),
                tables.DeliveryOptionRow(code="courier", name="Courier", price=Decimal("25.00"), is_physical=True),
                tables.HitlThresholdRow(threshold_key="max_auto_approve_value", threshold_value=Decimal("1000")),
            ])
            await session.commit()

        assert (await sql_store.get_settings()).value == {"base_rate": "65.00"}
        assert (await sql_store.get_holidays()).value == [date(2026, 7, 1)]
        options = (await sql_store.get_delivery_options()).value
        assert [o.code for o in options] == ["courier"]
        assert options[0].price == Decimal("25.00")
        assert (await sql_store.get_thresholds()).value == {"max_auto_approve_value": 1000.0}


class TestRepricingOverSql:

    @pytest.mark.asyncio
    async def test_recalculate(self, sql_store):
        await _seed(sql_store)
        result = await RepricingService(sql_store).recalculate("q1")

        assert result.breakdown.total == Decimal("178.50")
        assert (await sql_store.get_quote("q1")).value.total == Decimal("178.50")
        document = (await sql_store.list_documents("q1")).value[0]
        assert document.billable_pages == Decimal("2.6")
        assert document.line_total == Decimal("170.00")
