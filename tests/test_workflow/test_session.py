"""
Tests for the per-staff review session.
"""

import asyncio

import pytest
import pytest_asyncio

from quoteflow.errors import AlreadyClaimed, InsufficientRole, QuoteflowError
from quoteflow.models.enums import TriggerReason
from quoteflow.workflow.session import ReviewSession


@pytest_asyncio.fixture
async def review(review_service, quote):
    return await review_service.open_review(quote.quote_id, [TriggerReason.MANUAL_TRIGGER])


class TestReviewSession:

    @pytest.mark.asyncio
    async def test_claim_updates_from_confirmed_row(self, review_service, store, review, reviewer):
        session = ReviewSession(review_service, store, review.review_id, reviewer)
        await session.refresh()
        assert not session.is_claimed_by_me

        await session.claim()
        assert session.is_claimed_by_me
        assert not session.is_pending

    @pytest.mark.asyncio
    async def test_failed_claim_leaves_state_untouched(self, review_service, store, review, reviewer, other_reviewer):
        await review_service.claim(review.review_id, other_reviewer)
        session = ReviewSession(review_service, store, review.review_id, reviewer)
        before = await session.refresh()

        with pytest.raises(AlreadyClaimed):
            await session.claim()
        assert session.review == before
        assert not session.is_pending
        assert isinstance(session.last_error, AlreadyClaimed)

    @pytest.mark.asyncio
    async def test_denied_override_clears_pending(self, review_service, store, review, reviewer, senior):
        await review_service.claim(review.review_id, senior)
        session = ReviewSession(review_service, store, review.review_id, reviewer)
        with pytest.raises(InsufficientRole):
            await session.override()
        assert not session.is_pending
        assert session.review is None

    @pytest.mark.asyncio
    async def test_overlapping_actions_rejected(self, review_service, store, review, reviewer):
        session = ReviewSession(review_service, store, review.review_id, reviewer)
        release = asyncio.Event()
        original = review_service.claim

        async def slow_claim(review_id, staff):
            await release.wait()
            return await original(review_id, staff)

        review_service.claim = slow_claim
        first = asyncio.ensure_future(session.claim())
        await asyncio.sleep(0)
        assert session.is_pending
        with pytest.raises(QuoteflowError) as exc:
            await session.claim()
        assert exc.value.error_code == "ERR_ACTION_IN_FLIGHT"

        release.set()
        await first
        assert session.is_claimed_by_me

    @pytest.mark.asyncio
    async def test_concurrent_refreshes_share_one_fetch(self, review_service, store, review, reviewer):
        session = ReviewSession(review_service, store, review.review_id, reviewer)
        before = store.calls.count("get_review")
        first, second = await asyncio.gather(session.refresh(), session.refresh())
        assert first == second
        assert store.calls.count("get_review") == before + 1
