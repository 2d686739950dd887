"""
FastAPI dependency injection.
Provides the quote store, the services built on it, API key validation
and the acting staff member.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from quoteflow.config import settings
from quoteflow.grouping.service import GroupingService
from quoteflow.integrations.base import NotificationService, PaymentGateway
from quoteflow.pricing.service import RepricingService
from quoteflow.result import NOT_FOUND, unwrap
from quoteflow.schemas.reviews import StaffContext
from quoteflow.storage.base import QuoteStore
from quoteflow.workflow.reviews import ReviewService


# ── Singleton instances ──────────────────────────────────────
_store: Optional[QuoteStore] = None
_notifier: Optional[NotificationService] = None
_payments: Optional[PaymentGateway] = None


def get_store() -> QuoteStore:
    """Get or create the SQL quote store singleton."""
    global _store
    if _store is None:
        from quoteflow.storage.sql_store import SqlQuoteStore
        _store = SqlQuoteStore()
    return _store


def get_notifier() -> NotificationService:
    global _notifier
    if _notifier is None:
        from quoteflow.worker.jobs import QueuedNotificationService
        _notifier = QueuedNotificationService()
    return _notifier


def get_payments() -> PaymentGateway:
    global _payments
    if _payments is None:
        from quoteflow.integrations.http import HttpPaymentGateway
        _payments = HttpPaymentGateway()
    return _payments


def get_repricer(store: QuoteStore = Depends(get_store)) -> RepricingService:
    return RepricingService(store)


def get_review_service(
    store: QuoteStore = Depends(get_store),
    notifier: NotificationService = Depends(get_notifier),
    payments: PaymentGateway = Depends(get_payments),
) -> ReviewService:
    return ReviewService(store, notifier=notifier, payments=payments)


def get_grouping_service(store: QuoteStore = Depends(get_store)) -> GroupingService:
    return GroupingService(store)


async def verify_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> Optional[str]:
    """
    Verify API key if configured.
    If API_KEY is not set, all requests are allowed (dev mode).
    """
    if settings.API_KEY is None:
        return None

    if x_api_key is None or x_api_key != settings.API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
    return x_api_key


async def get_staff(
    x_staff_id: Optional[str] = Header(None, alias="X-Staff-Id"),
    store: QuoteStore = Depends(get_store),
) -> StaffContext:
    """Resolve the acting staff member from the X-Staff-Id header."""
    if not x_staff_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Staff-Id header",
        )
    result = await store.get_staff(x_staff_id)
    if not result.ok and result.kind == NOT_FOUND:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unknown or inactive staff member",
        )
    return unwrap(result, staff_id=x_staff_id).context()
