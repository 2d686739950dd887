"""
Per-staff review session state.

Local state only changes from confirmed responses. While a claim or
override is in flight the session reports it as pending; if the call
fails the pending marker is cleared and the confirmed review is left as
it was. Overlapping refreshes for the same review share one fetch.

This is a client-side helper for code that drives a review screen over
the service layer. The HTTP API is stateless and does not use it.
"""

import asyncio
from typing import Optional

import structlog

from quoteflow.errors import QuoteflowError
from quoteflow.result import unwrap
from quoteflow.schemas.reviews import Review, StaffContext
from quoteflow.storage.base import QuoteStore
from quoteflow.workflow.reviews import ReviewService

logger = structlog.get_logger(__name__)


class ReviewSession:

    def __init__(self, service: ReviewService, store: QuoteStore, review_id: str, staff: StaffContext):
        self.service = service
        self.store = store
        self.review_id = review_id
        self.staff = staff
        self.review: Optional[Review] = None
        self.pending_action: Optional[str] = None
        self.last_error: Optional[QuoteflowError] = None
        self._fetch: Optional[asyncio.Task] = None

    @property
    def is_claimed_by_me(self) -> bool:
        return self.review is not None and self.review.assigned_to == self.staff.staff_id

    @property
    def is_pending(self) -> bool:
        return self.pending_action is not None

    async def refresh(self) -> Review:
        """Reload the confirmed review. Concurrent callers await the same fetch."""
        if self._fetch is None or self._fetch.done():
            self._fetch = asyncio.ensure_future(self._load())
        return await asyncio.shield(self._fetch)

    async def _load(self) -> Review:
        review = unwrap(await self.store.get_review(self.review_id), review_id=self.review_id)
        self.review = review
        return review

    async def _confirmed(self, action: str, call) -> Review:
        if self.pending_action is not None:
            raise QuoteflowError(
                f"{self.pending_action} is still in progress",
                error_code="ERR_ACTION_IN_FLIGHT",
                review_id=self.review_id,
                attempted=action,
            )
        self.pending_action = action
        self.last_error = None
        try:
            confirmed = await call()
        except QuoteflowError as e:
            self.last_error = e
            logger.info("review_action_failed", review_id=self.review_id, action=action, error_code=e.error_code)
            raise
        finally:
            self.pending_action = None
        self.review = confirmed
        return confirmed

    async def claim(self) -> Review:
        return await self._confirmed("claim", lambda: self.service.claim(self.review_id, self.staff))

    async def override(self) -> Review:
        return await self._confirmed("override", lambda: self.service.override_claim(self.review_id, self.staff))
