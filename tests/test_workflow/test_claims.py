"""
Tests for HITL claim and override.
"""

import asyncio

import pytest
import pytest_asyncio

from quoteflow.errors import (
    AlreadyClaimed,
    InsufficientRole,
    InvalidTransition,
    NotFound,
    StaleClaim,
    TerminalStateViolation,
    TransportFailure,
)
from quoteflow.models.enums import QuoteStatus, ReviewStatus, TriggerReason
from quoteflow.workflow.claims import ClaimService


@pytest_asyncio.fixture
async def review(review_service, quote):
    return await review_service.open_review(quote.quote_id, [TriggerReason.LOW_OCR_CONFIDENCE])


@pytest.fixture
def claims(store, clock):
    return ClaimService(store, clock)


class TestClaim:

    @pytest.mark.asyncio
    async def test_claim_unassigned(self, claims, store, review, reviewer):
        claimed = await claims.claim(review.review_id, reviewer)
        assert claimed.assigned_to == "r1"
        assert claimed.status == ReviewStatus.IN_REVIEW
        assert store.reviews[review.review_id].assigned_to == "r1"

    @pytest.mark.asyncio
    async def test_claim_mirrors_quote_status(self, claims, store, review, reviewer):
        assert store.quotes["q1"].status == QuoteStatus.HITL_PENDING
        await claims.claim(review.review_id, reviewer)
        assert store.quotes["q1"].status == QuoteStatus.IN_REVIEW

    @pytest.mark.asyncio
    async def test_claim_is_audited(self, claims, store, review, reviewer):
        await claims.claim(review.review_id, reviewer)
        assert [e.action_type for e in store.audit][-1] == "hitl_claim"

    @pytest.mark.asyncio
    async def test_reclaim_own_review_is_noop(self, claims, store, review, reviewer):
        await claims.claim(review.review_id, reviewer)
        writes = store.calls.count("compare_and_set_claim")
        again = await claims.claim(review.review_id, reviewer)
        assert again.assigned_to == "r1"
        assert store.calls.count("compare_and_set_claim") == writes

    @pytest.mark.asyncio
    async def test_second_claimant_rejected(self, claims, review, reviewer, other_reviewer):
        await claims.claim(review.review_id, reviewer)
        with pytest.raises(AlreadyClaimed) as exc:
            await claims.claim(review.review_id, other_reviewer)
        assert exc.value.context["assigned_to"] == "r1"

    @pytest.mark.asyncio
    async def test_concurrent_claims_have_one_winner(self, claims, store, review, reviewer, other_reviewer):
        results = await asyncio.gather(
            claims.claim(review.review_id, reviewer),
            claims.claim(review.review_id, other_reviewer),
            return_exceptions=True,
        )
        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, AlreadyClaimed)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert store.reviews[review.review_id].assigned_to == winners[0].assigned_to

    @pytest.mark.asyncio
    async def test_unknown_review(self, claims, reviewer):
        with pytest.raises(NotFound):
            await claims.claim("missing", reviewer)

    @pytest.mark.asyncio
    async def test_store_failure_leaves_review_unclaimed(self, claims, store, review, reviewer):
        store.failing.add("compare_and_set_claim")
        with pytest.raises(TransportFailure):
            await claims.claim(review.review_id, reviewer)
        assert store.reviews[review.review_id].assigned_to is None

    @pytest.mark.asyncio
    async def test_quote_mirror_failure_does_not_undo_claim(self, claims, store, review, reviewer):
        store.failing.add("save_quote")
        claimed = await claims.claim(review.review_id, reviewer)
        assert claimed.assigned_to == "r1"
        assert store.quotes["q1"].status == QuoteStatus.HITL_PENDING

    @pytest.mark.asyncio
    async def test_escalated_review_cannot_be_claimed(self, claims, store, review, reviewer):
        store.reviews[review.review_id] = review.model_copy(update={"status": ReviewStatus.ESCALATED})
        with pytest.raises(TerminalStateViolation):
            await claims.claim(review.review_id, reviewer)

    @pytest.mark.asyncio
    async def test_approved_review_cannot_be_claimed(self, claims, store, review, reviewer):
        store.reviews[review.review_id] = review.model_copy(update={"status": ReviewStatus.APPROVED})
        with pytest.raises(InvalidTransition):
            await claims.claim(review.review_id, reviewer)


class TestOverride:

    @pytest.mark.asyncio
    async def test_same_role_cannot_override(self, claims, review, reviewer, other_reviewer):
        await claims.claim(review.review_id, reviewer)
        with pytest.raises(InsufficientRole):
            await claims.override(review.review_id, other_reviewer)

    @pytest.mark.asyncio
    async def test_senior_overrides_reviewer(self, claims, store, review, reviewer, senior):
        await claims.claim(review.review_id, reviewer)
        overridden = await claims.override(review.review_id, senior)
        assert overridden.assigned_to == "s1"
        assert overridden.previous_assigned_to == "r1"
        assert overridden.claim_override_by == "s1"
        entry = store.audit[-1]
        assert entry.action_type == "hitl_claim_override"
        assert entry.details["previous_staff_id"] == "r1"
        assert entry.details["new_rank"] == 2

    @pytest.mark.asyncio
    async def test_admin_overrides_either(self, claims, review, reviewer, senior, admin):
        await claims.claim(review.review_id, reviewer)
        await claims.override(review.review_id, senior)
        overridden = await claims.override(review.review_id, admin)
        assert overridden.assigned_to == "a1"
        assert overridden.previous_assigned_to == "s1"

    @pytest.mark.asyncio
    async def test_reviewer_cannot_override_senior(self, claims, review, reviewer, senior):
        await claims.claim(review.review_id, senior)
        with pytest.raises(InsufficientRole):
            await claims.override(review.review_id, reviewer)

    @pytest.mark.asyncio
    async def test_override_unclaimed_is_a_claim(self, claims, review, senior):
        overridden = await claims.override(review.review_id, senior)
        assert overridden.assigned_to == "s1"
        assert overridden.claim_override_by is None

    @pytest.mark.asyncio
    async def test_override_loses_race_with_release(self, claims, store, review, reviewer, senior):
        await claims.claim(review.review_id, reviewer)
        original = store.compare_and_set_claim

        async def racing_cas(review_id, expected, new, at, override_by=None):
            store.reviews[review_id] = store.reviews[review_id].model_copy(update={"assigned_to": "r2"})
            return await original(review_id, expected, new, at, override_by)

        store.compare_and_set_claim = racing_cas
        with pytest.raises(StaleClaim):
            await claims.override(review.review_id, senior)
        assert store.reviews[review.review_id].assigned_to == "r2"


class TestRequireClaim:

    @pytest.mark.asyncio
    async def test_unclaimed_review_cannot_be_edited(self, claims, review, reviewer):
        with pytest.raises(InvalidTransition):
            claims.require_claim(review, reviewer, "save_corrections")

    @pytest.mark.asyncio
    async def test_other_claimant_cannot_edit(self, claims, review, reviewer, other_reviewer):
        claimed = await claims.claim(review.review_id, reviewer)
        with pytest.raises(StaleClaim):
            claims.require_claim(claimed, other_reviewer, "save_corrections")

    @pytest.mark.asyncio
    async def test_claimant_can_edit(self, claims, review, reviewer):
        claimed = await claims.claim(review.review_id, reviewer)
        claims.require_claim(claimed, reviewer, "save_corrections")
