"""
HITL claim and override.

A claim is an atomic compare-and-set in the store: assign only if the
review is unassigned. An override reassigns a held claim and is only
allowed for a strictly higher role. Local state is never updated before
the store confirms; the returned Review is the confirmed row.
"""

from datetime import datetime, timezone
from typing import Callable, Optional

import structlog

from quoteflow.errors import AlreadyClaimed, InsufficientRole, InvalidTransition, StaleClaim
from quoteflow.models.enums import ACTIVE_REVIEW_STATUSES, QuoteStatus
from quoteflow.observability.metrics import hitl_claims_total
from quoteflow.result import CONFLICT, unwrap
from quoteflow.schemas.reviews import AuditEntry, Review, StaffContext
from quoteflow.storage.base import QuoteStore
from quoteflow.workflow.roles import can_override, role_rank
from quoteflow.workflow.state_machine import ensure_review_mutable

logger = structlog.get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ClaimService:

    def __init__(self, store: QuoteStore, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.clock = clock or utcnow

    async def _load_claimable(self, review_id: str, attempted: str) -> Review:
        review = unwrap(await self.store.get_review(review_id), review_id=review_id)
        ensure_review_mutable(review, attempted)
        if review.status not in ACTIVE_REVIEW_STATUSES:
            raise InvalidTransition(
                f"review is {review.status.value} and cannot be claimed",
                review_id=review_id,
                current_state=review.status.value,
                attempted=attempted,
            )
        return review

    async def claim(self, review_id: str, staff: StaffContext) -> Review:
        """
        Claim an unassigned review.
        Re-claiming your own review succeeds without a write.
        """
        review = await self._load_claimable(review_id, "claim")
        if review.assigned_to == staff.staff_id:
            hitl_claims_total.labels(outcome="noop").inc()
            return review
        if review.assigned_to is not None:
            hitl_claims_total.labels(outcome="conflict").inc()
            raise AlreadyClaimed(
                "review is already claimed",
                review_id=review_id,
                assigned_to=review.assigned_to,
            )

        now = self.clock()
        result = await self.store.compare_and_set_claim(review_id, None, staff.staff_id, now)
        if not result.ok and result.kind == CONFLICT:
            current = (result.data or {}).get("assigned_to")
            if current == staff.staff_id:
                hitl_claims_total.labels(outcome="noop").inc()
                return unwrap(await self.store.get_review(review_id), review_id=review_id)
            hitl_claims_total.labels(outcome="conflict").inc()
        claimed = unwrap(result, review_id=review_id)

        hitl_claims_total.labels(outcome="claimed").inc()
        logger.info("hitl_claimed", review_id=review_id, quote_id=claimed.quote_id, staff_id=staff.staff_id)
        await self._mirror_quote(claimed.quote_id)
        await self._audit(claimed, staff, "hitl_claim", {"review_id": review_id})
        return claimed

    async def override(self, review_id: str, staff: StaffContext) -> Review:
        """Take over a review claimed by a lower-ranked staff member."""
        review = await self._load_claimable(review_id, "override")
        current = review.assigned_to
        if current is None:
            return await self.claim(review_id, staff)
        if current == staff.staff_id:
            hitl_claims_total.labels(outcome="noop").inc()
            return review

        claimant = unwrap(await self.store.get_staff(current), staff_id=current)
        if not can_override(staff.role, claimant.role):
            hitl_claims_total.labels(outcome="override_denied").inc()
            raise InsufficientRole(
                "override requires a higher role than the current claimant",
                review_id=review_id,
                assigned_to=current,
                current_role=claimant.role.value,
                requesting_role=staff.role.value,
            )

        now = self.clock()
        result = await self.store.compare_and_set_claim(
            review_id, current, staff.staff_id, now, override_by=staff.staff_id,
        )
        if not result.ok:
            hitl_claims_total.labels(outcome="stale").inc()
        overridden = unwrap(result, review_id=review_id, expected_assignee=current)

        hitl_claims_total.labels(outcome="overridden").inc()
        logger.info(
            "hitl_claim_overridden",
            review_id=review_id,
            quote_id=overridden.quote_id,
            previous_staff_id=current,
            staff_id=staff.staff_id,
        )
        await self._mirror_quote(overridden.quote_id)
        await self._audit(overridden, staff, "hitl_claim_override", {
            "review_id": review_id,
            "previous_staff_id": current,
            "previous_role": claimant.role.value,
            "previous_rank": role_rank(claimant.role),
            "new_staff_id": staff.staff_id,
            "new_role": staff.role.value,
            "new_rank": role_rank(staff.role),
        })
        return overridden

    def require_claim(self, review: Review, staff: StaffContext, attempted: str) -> None:
        """Edits are only accepted from the staff member holding the claim."""
        ensure_review_mutable(review, attempted)
        if review.assigned_to is None:
            raise InvalidTransition(
                "claim the review before editing it",
                review_id=review.review_id,
                current_state=review.status.value,
                attempted=attempted,
            )
        if review.assigned_to != staff.staff_id:
            raise StaleClaim(
                "review is claimed by another staff member",
                review_id=review.review_id,
                assigned_to=review.assigned_to,
                attempted=attempted,
            )

    async def _mirror_quote(self, quote_id: str) -> None:
        """A claimed review puts a hitl_pending quote in_review."""
        result = await self.store.get_quote(quote_id)
        if not result.ok:
            logger.error("quote_mirror_failed", quote_id=quote_id, detail=result.detail)
            return
        quote = result.value
        if quote.status != QuoteStatus.HITL_PENDING:
            return
        saved = await self.store.save_quote(quote.model_copy(update={"status": QuoteStatus.IN_REVIEW}))
        if not saved.ok:
            logger.error("quote_mirror_failed", quote_id=quote_id, detail=saved.detail)

    async def _audit(self, review: Review, staff: StaffContext, action: str, details: dict) -> None:
        result = await self.store.append_audit(AuditEntry(
            action_type=action,
            staff_id=staff.staff_id,
            entity_type="hitl_review",
            entity_id=review.quote_id,
            details=details,
            created_at=self.clock(),
        ))
        if not result.ok:
            logger.warning("audit_append_failed", review_id=review.review_id, action=action)
