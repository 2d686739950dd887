"""
RQ job functions for analysis watchdog runs and notification delivery.
These are the entry points that the worker calls.
"""

import asyncio
from typing import Any, Optional

import structlog
from redis import Redis
from redis.exceptions import RedisError
from rq import Queue
from rq.job import JobStatus

from quoteflow.config import settings
from quoteflow.errors import TransportFailure
from quoteflow.integrations.base import NotificationService
from quoteflow.observability.logging import bind_quote_context, clear_quote_context
from quoteflow.result import TRANSPORT, Err, Ok, Result

logger = structlog.get_logger(__name__)


def get_queue() -> Queue:
    """Get the quoting job queue."""
    conn = Redis.from_url(settings.REDIS_URL)
    return Queue(settings.QUEUE_NAME, connection=conn)


# ── Watchdog ─────────────────────────────────────────────────
_PENDING_JOB_STATUSES = {
    JobStatus.QUEUED,
    JobStatus.STARTED,
    JobStatus.DEFERRED,
    JobStatus.SCHEDULED,
}


def watchdog_job_id(quote_id: str) -> str:
    return f"watchdog-{quote_id}"


def enqueue_watchdog(quote_id: str, queue: Optional[Queue] = None) -> str:
    """
    Schedule a watchdog run for a quote.
    Returns the job ID. A quote has at most one queued or running
    watchdog; asking again returns that job.
    """
    q = queue or get_queue()
    job_id = watchdog_job_id(quote_id)
    existing = q.fetch_job(job_id)
    if existing is not None and existing.get_status() in _PENDING_JOB_STATUSES:
        logger.info("watchdog_already_scheduled", quote_id=quote_id, job_id=job_id)
        return existing.id

    # Long enough for the whole polling window plus the escalation calls
    timeout = max(
        settings.JOB_TIMEOUT_SECONDS,
        int(settings.WATCHDOG_MAX_ATTEMPTS * settings.WATCHDOG_POLL_INTERVAL_SECONDS) + 60,
    )
    job = q.enqueue(
        watch_quote_analysis_job,
        quote_id,
        job_id=job_id,
        job_timeout=timeout,
        result_ttl=86400,  # Keep results for 24 hours
        failure_ttl=604800,  # Keep failures for 7 days
    )
    logger.info("watchdog_enqueued", quote_id=quote_id, job_id=job.id)
    return job.id


def watch_quote_analysis_job(quote_id: str) -> dict:
    """
    Run the analysis watchdog for one quote to completion.
    This runs inside the RQ worker process.
    """
    bind_quote_context(quote_id, job="watchdog")
    logger.info("job_started")
    try:
        result = asyncio.run(_watch_quote_async(quote_id))
    except Exception as e:
        logger.error("job_failed", error=str(e))
        raise
    finally:
        clear_quote_context()
    if result is None:
        return {"quote_id": quote_id, "outcome": "not_needed"}
    logger.info("job_completed", job="watchdog", quote_id=quote_id, outcome=result.outcome)
    return result.model_dump(mode="json")


async def _watch_quote_async(quote_id: str):
    from quoteflow.integrations.http import HttpAnalysisPipeline
    from quoteflow.models.database import close_db
    from quoteflow.storage.sql_store import SqlQuoteStore
    from quoteflow.watchdog.poller import watch_quote
    from quoteflow.workflow.reviews import ReviewService

    store = SqlQuoteStore()
    pipeline = HttpAnalysisPipeline()
    reviews = ReviewService(store, notifier=QueuedNotificationService())
    try:
        return await watch_quote(quote_id, pipeline, store, reviews)
    finally:
        await pipeline.close()
        # Each job runs its own event loop; pooled connections cannot cross loops
        await close_db()


# ── Notifications ────────────────────────────────────────────
class QueuedNotificationService(NotificationService):
    """Hands notifications to the worker so callers never wait on delivery."""

    def __init__(self, queue: Optional[Queue] = None):
        self._queue = queue

    async def send(self, template: str, recipient: str, variables: dict[str, Any]) -> Result[None]:
        try:
            q = self._queue or get_queue()
            job = q.enqueue(
                send_notification_job,
                template,
                recipient,
                variables,
                job_timeout=60,
                result_ttl=86400,
                failure_ttl=604800,
            )
        except RedisError as e:
            logger.warning("notification_enqueue_failed", template=template, error=str(e))
            return Err(TRANSPORT, "notification queue unavailable")
        logger.info("notification_enqueued", template=template, job_id=job.id)
        return Ok(None)


def send_notification_job(template: str, recipient: str, variables: dict) -> dict:
    """Deliver one notification through the notification service."""
    result = asyncio.run(_send_notification_async(template, recipient, variables))
    if not result.ok:
        logger.error("job_failed", job="notification", template=template, detail=result.detail)
        raise TransportFailure(result.detail or "notification delivery failed", template=template)
    logger.info("job_completed", job="notification", template=template)
    return {"template": template, "delivered": True}


async def _send_notification_async(template: str, recipient: str, variables: dict) -> Result[None]:
    from quoteflow.integrations.http import HttpNotificationService

    service = HttpNotificationService()
    try:
        return await service.send(template, recipient, variables)
    finally:
        await service.close()
