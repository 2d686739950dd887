"""
Fire-and-forget customer notifications.
Failures are logged and counted, never raised and never retried here.
"""

from typing import Any, Optional

import structlog

from quoteflow.integrations.base import NotificationService
from quoteflow.observability.metrics import notification_failures_total
from quoteflow.schemas.quotes import Quote

logger = structlog.get_logger(__name__)

# Templates
HITL_OPENED = "hitl_review_opened"
ANALYSIS_TIMEOUT = "analysis_timeout"
QUOTE_READY = "quote_ready_for_payment"
QUOTE_REJECTED = "quote_rejected"
BETTER_SCAN_REQUESTED = "better_scan_requested"
BALANCE_DUE = "balance_payment_requested"


async def notify_customer(
    notifier: Optional[NotificationService],
    quote: Quote,
    template: str,
    variables: Optional[dict[str, Any]] = None,
) -> bool:
    """Send a customer notification. Returns False if it could not be sent."""
    if notifier is None:
        return False
    if not quote.customer_email:
        logger.warning("notification_skipped_no_recipient", quote_id=quote.quote_id, template=template)
        return False

    payload = {
        "quote_id": quote.quote_id,
        "quote_number": quote.quote_number,
        "customer_name": quote.customer_name,
        **(variables or {}),
    }
    result = await notifier.send(template, quote.customer_email, payload)
    if not result.ok:
        notification_failures_total.labels(template=template).inc()
        logger.warning(
            "notification_failed",
            quote_id=quote.quote_id,
            template=template,
            detail=result.detail,
        )
        return False

    logger.info("notification_sent", quote_id=quote.quote_id, template=template)
    return True
