"""
Allowed review and quote status transitions.

Quote and review statuses are not synchronised automatically; services
call both guards and persist both records explicitly.

Review:  pending -> in_review -> approved | rejected | escalated
Quote:   draft -> hitl_pending -> in_review -> approved | escalated | rejected
         approved -> awaiting_payment -> paid -> converted
"""

from quoteflow.errors import InvalidTransition, TerminalStateViolation
from quoteflow.models.enums import (
    TERMINAL_QUOTE_STATUSES,
    TERMINAL_REVIEW_STATUSES,
    QuoteStatus,
    ReviewStatus,
)
from quoteflow.schemas.reviews import Review

REVIEW_TRANSITIONS: dict[ReviewStatus, frozenset[ReviewStatus]] = {
    ReviewStatus.PENDING: frozenset({ReviewStatus.IN_REVIEW}),
    ReviewStatus.IN_REVIEW: frozenset({
        ReviewStatus.APPROVED,
        ReviewStatus.REJECTED,
        ReviewStatus.ESCALATED,
    }),
    ReviewStatus.APPROVED: frozenset(),
    ReviewStatus.REJECTED: frozenset(),
    ReviewStatus.ESCALATED: frozenset(),
}

QUOTE_TRANSITIONS: dict[QuoteStatus, frozenset[QuoteStatus]] = {
    QuoteStatus.DRAFT: frozenset({
        QuoteStatus.HITL_PENDING,
        QuoteStatus.AWAITING_PAYMENT,
    }),
    QuoteStatus.HITL_PENDING: frozenset({
        QuoteStatus.IN_REVIEW,
        QuoteStatus.DRAFT,
    }),
    QuoteStatus.IN_REVIEW: frozenset({
        QuoteStatus.APPROVED,
        QuoteStatus.ESCALATED,
        QuoteStatus.REJECTED,
        QuoteStatus.DRAFT,
    }),
    QuoteStatus.APPROVED: frozenset({
        QuoteStatus.AWAITING_PAYMENT,
        QuoteStatus.HITL_PENDING,
    }),
    QuoteStatus.AWAITING_PAYMENT: frozenset({
        QuoteStatus.PAID,
        QuoteStatus.HITL_PENDING,
    }),
    QuoteStatus.PAID: frozenset({QuoteStatus.CONVERTED}),
    QuoteStatus.CONVERTED: frozenset(),
    QuoteStatus.REJECTED: frozenset(),
    QuoteStatus.ESCALATED: frozenset(),
}


def ensure_review_mutable(review: Review, attempted: str) -> None:
    """Rejected and escalated reviews are read-only."""
    if review.status in TERMINAL_REVIEW_STATUSES:
        raise TerminalStateViolation(
            f"review is {review.status.value} and can no longer be changed",
            review_id=review.review_id,
            current_state=review.status.value,
            attempted=attempted,
        )


def ensure_review_transition(review: Review, target: ReviewStatus) -> None:
    ensure_review_mutable(review, target.value)
    if target not in REVIEW_TRANSITIONS[review.status]:
        raise InvalidTransition(
            f"review cannot move from {review.status.value} to {target.value}",
            review_id=review.review_id,
            current_state=review.status.value,
            attempted=target.value,
        )


def ensure_quote_transition(quote_id: str, current: QuoteStatus, target: QuoteStatus) -> None:
    if current in TERMINAL_QUOTE_STATUSES and current not in (QuoteStatus.PAID,):
        raise TerminalStateViolation(
            f"quote is {current.value} and can no longer be changed",
            quote_id=quote_id,
            current_state=current.value,
            attempted=target.value,
        )
    if target not in QUOTE_TRANSITIONS[current]:
        raise InvalidTransition(
            f"quote cannot move from {current.value} to {target.value}",
            quote_id=quote_id,
            current_state=current.value,
            attempted=target.value,
        )


def ensure_quote_repriceable(quote_id: str, current: QuoteStatus) -> None:
    """Pricing may not change once a quote is paid, converted, rejected or escalated."""
    if current in TERMINAL_QUOTE_STATUSES:
        raise TerminalStateViolation(
            f"quote is {current.value}; pricing is locked",
            quote_id=quote_id,
            current_state=current.value,
            attempted="recalculate",
        )
