"""
Job scheduling and queued notifications, with a fake queue.
"""

import pytest
import structlog
from redis.exceptions import ConnectionError as RedisConnectionError
from rq.job import JobStatus

from quoteflow.config import settings
from quoteflow.result import TRANSPORT
from quoteflow.worker import jobs
from quoteflow.worker.jobs import (
    QueuedNotificationService,
    enqueue_watchdog,
    send_notification_job,
    watch_quote_analysis_job,
)


class FakeJob:

    def __init__(self, job_id, status=JobStatus.QUEUED):
        self.id = job_id
        self.status = status

    def get_status(self):
        return self.status


class FakeQueue:

    def __init__(self, fail=False):
        self.fail = fail
        self.jobs = []
        self.by_id = {}

    def fetch_job(self, job_id):
        return self.by_id.get(job_id)

    def enqueue(self, func, *args, **kwargs):
        if self.fail:
            raise RedisConnectionError("redis down")
        self.jobs.append((func, args, kwargs))
        job = FakeJob(kwargs.get("job_id") or f"job-{len(self.jobs)}")
        self.by_id[job.id] = job
        return job


class TestWatchdogScheduling:

    def test_enqueue(self):
        queue = FakeQueue()
        job_id = enqueue_watchdog("q1", queue=queue)

        assert job_id == "watchdog-q1"
        func, args, kwargs = queue.jobs[0]
        assert func is watch_quote_analysis_job
        assert args == ("q1",)
        window = int(settings.WATCHDOG_MAX_ATTEMPTS * settings.WATCHDOG_POLL_INTERVAL_SECONDS)
        assert kwargs["job_timeout"] >= window

    def test_second_request_reuses_pending_job(self):
        queue = FakeQueue()
        first = enqueue_watchdog("q1", queue=queue)
        second = enqueue_watchdog("q1", queue=queue)

        assert first == second
        assert len(queue.jobs) == 1

    def test_running_job_is_reused(self):
        queue = FakeQueue()
        enqueue_watchdog("q1", queue=queue)
        queue.by_id["watchdog-q1"].status = JobStatus.STARTED

        enqueue_watchdog("q1", queue=queue)
        assert len(queue.jobs) == 1

    def test_finished_job_allows_a_new_run(self):
        queue = FakeQueue()
        enqueue_watchdog("q1", queue=queue)
        queue.by_id["watchdog-q1"].status = JobStatus.FINISHED

        enqueue_watchdog("q1", queue=queue)
        assert len(queue.jobs) == 2

    def test_quotes_are_independent(self):
        queue = FakeQueue()
        assert enqueue_watchdog("q1", queue=queue) != enqueue_watchdog("q2", queue=queue)
        assert len(queue.jobs) == 2


class TestWatchdogJob:

    def test_log_context_is_bound_for_the_run(self, monkeypatch):
        seen = {}

        async def fake_watch(quote_id):
            seen.update(structlog.contextvars.get_contextvars())
            return None

        structlog.contextvars.clear_contextvars()
        monkeypatch.setattr(jobs, "_watch_quote_async", fake_watch)
        result = watch_quote_analysis_job("q1")

        assert result == {"quote_id": "q1", "outcome": "not_needed"}
        assert seen == {"quote_id": "q1", "job": "watchdog"}
        assert structlog.contextvars.get_contextvars() == {}


class TestQueuedNotifications:

    @pytest.mark.asyncio
    async def test_send_enqueues_delivery(self):
        queue = FakeQueue()
        service = QueuedNotificationService(queue)
        result = await service.send("analysis_timeout", "ana@example.test", {"quote_id": "q1"})

        assert result.ok
        func, args, _ = queue.jobs[0]
        assert func is send_notification_job
        assert args == ("analysis_timeout", "ana@example.test", {"quote_id": "q1"})

    @pytest.mark.asyncio
    async def test_queue_outage_is_transport_error(self):
        service = QueuedNotificationService(FakeQueue(fail=True))
        result = await service.send("analysis_timeout", "ana@example.test", {})
        assert not result.ok
        assert result.kind == TRANSPORT
