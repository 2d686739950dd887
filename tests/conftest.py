"""
Shared test fixtures.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from quoteflow.integrations.stub import RecordingNotificationService, StubPaymentGateway
from quoteflow.models.enums import Complexity, ProcessingStatus, QuoteStatus, StaffRole
from quoteflow.pricing.service import RepricingService
from quoteflow.schemas.quotes import Quote, QuoteDocument, QuotePage
from quoteflow.schemas.reviews import StaffContext, StaffUser
from quoteflow.storage.memory import InMemoryQuoteStore
from quoteflow.workflow.reviews import ReviewService

FIXED_NOW = datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)


def add_quote(
    store: InMemoryQuoteStore,
    quote_id: str = "q1",
    word_counts: tuple = (500,),
    complexity: str = Complexity.MEDIUM.value,
    processing_status: ProcessingStatus = ProcessingStatus.COMPLETED,
    with_pages: bool = False,
    **fields,
) -> Quote:
    """Seed a quote with one document per word count."""
    quote = Quote(
        quote_id=quote_id,
        quote_number=f"QT-{quote_id}",
        customer_email="ana@example.test",
        customer_name="Ana Souza",
        source_language="pt",
        target_language="en",
        **fields,
    )
    store.quotes[quote_id] = quote
    for n, words in enumerate(word_counts, start=1):
        file_id = f"{quote_id}-f{n}"
        pages = []
        if with_pages:
            pages = [
                QuotePage(page_id=f"{file_id}-p1", file_id=file_id, page_number=1, word_count=words),
            ]
        store.documents[file_id] = QuoteDocument(
            file_id=file_id,
            quote_id=quote_id,
            filename=f"document-{n}.pdf",
            word_count=words,
            processing_status=processing_status,
            assessed_complexity=complexity,
            pages=pages,
        )
    return quote


@pytest.fixture
def store():
    """In-memory store with a reviewer, a second reviewer, a senior and an admin."""
    store = InMemoryQuoteStore()
    for staff_id, role in [
        ("r1", StaffRole.REVIEWER),
        ("r2", StaffRole.REVIEWER),
        ("s1", StaffRole.SENIOR_REVIEWER),
        ("a1", StaffRole.ADMIN),
    ]:
        store.staff[staff_id] = StaffUser(staff_id=staff_id, role=role, name=staff_id.upper())
    store.staff["gone"] = StaffUser(staff_id="gone", role=StaffRole.ADMIN, is_active=False)
    return store


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def reviewer():
    return StaffContext(staff_id="r1", role=StaffRole.REVIEWER)


@pytest.fixture
def other_reviewer():
    return StaffContext(staff_id="r2", role=StaffRole.REVIEWER)


@pytest.fixture
def senior():
    return StaffContext(staff_id="s1", role=StaffRole.SENIOR_REVIEWER)


@pytest.fixture
def admin():
    return StaffContext(staff_id="a1", role=StaffRole.ADMIN)


@pytest.fixture
def notifier():
    return RecordingNotificationService()


@pytest.fixture
def payments():
    return StubPaymentGateway()


@pytest.fixture
def repricer(store):
    return RepricingService(store)


@pytest.fixture
def review_service(store, repricer, notifier, payments, clock):
    return ReviewService(store, repricer, notifier, payments, clock)


@pytest.fixture
def quote(store):
    """One medium-complexity 500-word document: 2.6 billable pages, $170.00 translation."""
    return add_quote(store)


@pytest.fixture
def zero_tax_quote(store):
    return add_quote(store, quote_id="q0", tax_rate=Decimal("0"))
