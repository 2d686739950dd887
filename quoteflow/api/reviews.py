"""
/api/v1/reviews endpoints.
HITL queue, claims and staff decisions. The acting staff member comes
from the X-Staff-Id header and is passed into every workflow call.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from quoteflow.dependencies import get_review_service, get_staff, get_store, verify_api_key
from quoteflow.result import unwrap
from quoteflow.schemas.api import (
    BetterScanRequest,
    CorrectionsRequest,
    DecisionRequest,
    NoteRequest,
    QueueStats,
    ReasonRequest,
    SendResponse,
)
from quoteflow.schemas.reviews import CorrectionReport, Review, StaffContext
from quoteflow.storage.base import QuoteStore
from quoteflow.workflow.reviews import ReviewService

router = APIRouter(prefix="/api/v1/reviews", tags=["reviews"], dependencies=[Depends(verify_api_key)])


# ── Queue ────────────────────────────────────────────────────
@router.get("", response_model=list[Review])
async def review_queue(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    service: ReviewService = Depends(get_review_service),
):
    """Open reviews, most urgent first."""
    return await service.queue(limit=limit, offset=offset)


@router.get("/stats", response_model=QueueStats)
async def review_stats(service: ReviewService = Depends(get_review_service)):
    return QueueStats(**await service.queue_stats())


@router.get("/{review_id}", response_model=Review)
async def get_review(review_id: str, store: QuoteStore = Depends(get_store)):
    return unwrap(await store.get_review(review_id), review_id=review_id)


# ── Claims ───────────────────────────────────────────────────
@router.post("/{review_id}/claim", response_model=Review)
async def claim(
    review_id: str,
    staff: StaffContext = Depends(get_staff),
    service: ReviewService = Depends(get_review_service),
):
    return await service.claim(review_id, staff)


@router.post("/{review_id}/override", response_model=Review)
async def override(
    review_id: str,
    staff: StaffContext = Depends(get_staff),
    service: ReviewService = Depends(get_review_service),
):
    return await service.override_claim(review_id, staff)


# ── Decisions ────────────────────────────────────────────────
@router.post("/{review_id}/approve", response_model=Review)
async def approve(
    review_id: str,
    body: Optional[DecisionRequest] = None,
    staff: StaffContext = Depends(get_staff),
    service: ReviewService = Depends(get_review_service),
):
    return await service.approve(review_id, staff, body.notes if body else None)


@router.post("/{review_id}/reject", response_model=Review)
async def reject(
    review_id: str,
    body: ReasonRequest,
    staff: StaffContext = Depends(get_staff),
    service: ReviewService = Depends(get_review_service),
):
    """Close the review; the quote returns to draft."""
    return await service.reject_review(review_id, staff, body.reason)


@router.post("/{review_id}/reject-quote", response_model=Review)
async def reject_quote(
    review_id: str,
    body: ReasonRequest,
    staff: StaffContext = Depends(get_staff),
    service: ReviewService = Depends(get_review_service),
):
    """Permanently reject the quote."""
    return await service.reject_quote(review_id, staff, body.reason)


@router.post("/{review_id}/escalate", response_model=Review)
async def escalate(
    review_id: str,
    body: ReasonRequest,
    staff: StaffContext = Depends(get_staff),
    service: ReviewService = Depends(get_review_service),
):
    return await service.escalate(review_id, staff, body.reason)


# ── Non-terminal actions ─────────────────────────────────────
@router.post("/{review_id}/request-better-scan", response_model=Review)
async def request_better_scan(
    review_id: str,
    body: BetterScanRequest,
    staff: StaffContext = Depends(get_staff),
    service: ReviewService = Depends(get_review_service),
):
    return await service.request_better_scan(review_id, staff, body.reason, body.file_ids)


@router.post("/{review_id}/notes", response_model=Review)
async def add_note(
    review_id: str,
    body: NoteRequest,
    staff: StaffContext = Depends(get_staff),
    service: ReviewService = Depends(get_review_service),
):
    return await service.add_note(review_id, staff, body.text)


@router.post("/{review_id}/corrections", response_model=CorrectionReport)
async def save_corrections(
    review_id: str,
    body: CorrectionsRequest,
    staff: StaffContext = Depends(get_staff),
    service: ReviewService = Depends(get_review_service),
):
    """Apply corrections best-effort; the report lists each outcome."""
    return await service.save_corrections(review_id, staff, body.corrections)


@router.post("/{review_id}/send", response_model=SendResponse)
async def send(
    review_id: str,
    staff: StaffContext = Depends(get_staff),
    service: ReviewService = Depends(get_review_service),
):
    """Reprice, version and send the quote to the customer for payment."""
    return SendResponse(**await service.send_review_quote(review_id, staff))
