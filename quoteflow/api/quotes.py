"""
/api/v1/quotes endpoints.
Repricing from persisted state, turnaround options, staff pricing edits
and watchdog scheduling.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from redis.exceptions import RedisError

import structlog

from quoteflow.dependencies import get_repricer, get_review_service, get_staff, get_store, verify_api_key
from quoteflow.pricing.service import RepricingService
from quoteflow.result import unwrap
from quoteflow.schemas.api import (
    BalancePaymentResponse,
    PricingInputsRequest,
    RecalculateRequest,
    RecalculationResponse,
    SendResponse,
    WatchResponse,
)
from quoteflow.schemas.pricing import PricingSnapshot
from quoteflow.schemas.quotes import Quote, RecalculationResult
from quoteflow.schemas.reviews import AuditEntry, StaffContext
from quoteflow.schemas.turnaround import TurnaroundOption
from quoteflow.storage.base import QuoteStore
from quoteflow.workflow.reviews import ReviewService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/quotes", tags=["quotes"], dependencies=[Depends(verify_api_key)])


def recalculation_response(quote_id: str, result: RecalculationResult) -> RecalculationResponse:
    return RecalculationResponse(
        quote_id=quote_id,
        breakdown=result.breakdown,
        changes=result.changes,
        has_changes=result.has_changes,
        warnings=result.warnings,
    )


@router.get("/{quote_id}", response_model=Quote)
async def get_quote(quote_id: str, store: QuoteStore = Depends(get_store)):
    return unwrap(await store.get_quote(quote_id), quote_id=quote_id)


@router.post("/{quote_id}/recalculate", response_model=RecalculationResponse)
async def recalculate(
    quote_id: str,
    body: Optional[RecalculateRequest] = None,
    staff: StaffContext = Depends(get_staff),
    repricer: RepricingService = Depends(get_repricer),
):
    """Recompute pricing from the persisted quote and save the breakdown."""
    result = await repricer.recalculate(quote_id, reason=body.reason if body else "manual", staff=staff)
    return recalculation_response(quote_id, result)


@router.post("/{quote_id}/pricing-inputs", response_model=RecalculationResponse)
async def update_pricing_inputs(
    quote_id: str,
    body: PricingInputsRequest,
    staff: StaffContext = Depends(get_staff),
    repricer: RepricingService = Depends(get_repricer),
):
    """Staff edit of turnaround, delivery, certifications, surcharge and discount."""
    snapshot = PricingSnapshot.model_validate(body.model_dump(exclude={"reason"}))
    result = await repricer.update_inputs(quote_id, snapshot, staff, body.reason)
    return recalculation_response(quote_id, result)


@router.get("/{quote_id}/turnaround", response_model=list[TurnaroundOption])
async def turnaround(quote_id: str, repricer: RepricingService = Depends(get_repricer)):
    """Standard, rush and same-day options with delivery dates and availability."""
    return await repricer.turnaround(quote_id)


@router.post("/{quote_id}/send", response_model=SendResponse)
async def send(
    quote_id: str,
    staff: StaffContext = Depends(get_staff),
    service: ReviewService = Depends(get_review_service),
):
    """Send a draft or approved quote to the customer for payment."""
    return SendResponse(**await service.send_quote(quote_id, staff))


@router.post("/{quote_id}/balance-payment", response_model=BalancePaymentResponse)
async def balance_payment(
    quote_id: str,
    staff: StaffContext = Depends(get_staff),
    service: ReviewService = Depends(get_review_service),
):
    """Payment link for the outstanding balance after a post-payment change."""
    url = await service.request_balance_payment(quote_id, staff)
    return BalancePaymentResponse(quote_id=quote_id, payment_url=url)


@router.get("/{quote_id}/audit", response_model=list[AuditEntry])
async def audit_log(quote_id: str, store: QuoteStore = Depends(get_store)):
    return unwrap(await store.list_audit(quote_id), quote_id=quote_id)


@router.post("/{quote_id}/watch", response_model=WatchResponse, status_code=202)
async def watch(quote_id: str, store: QuoteStore = Depends(get_store)):
    """Schedule an analysis watchdog run on the worker queue."""
    from quoteflow.worker.jobs import enqueue_watchdog

    unwrap(await store.get_quote(quote_id), quote_id=quote_id)
    try:
        job_id = enqueue_watchdog(quote_id)
    except RedisError as e:
        logger.error("watchdog_enqueue_failed", quote_id=quote_id, error=str(e))
        raise HTTPException(status_code=503, detail=f"Queue unavailable: {str(e)}")
    return WatchResponse(quote_id=quote_id, job_id=job_id)
