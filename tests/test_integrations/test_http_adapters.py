"""
httpx adapters against a mock transport.
"""

import json
from decimal import Decimal

import httpx
import pytest

from quoteflow.integrations.http import HttpAnalysisPipeline, HttpNotificationService, HttpPaymentGateway
from quoteflow.models.enums import ProcessingStatus
from quoteflow.result import INVALID, TRANSPORT


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url="http://collaborator.test", transport=httpx.MockTransport(handler))


class TestAnalysisPipeline:

    @pytest.mark.asyncio
    async def test_status_is_validated(self):
        def handler(request):
            assert request.url.path == "/quotes/q1/analyses"
            return httpx.Response(200, json={"documents": [
                {"documentId": "q1-f1", "status": "completed", "wordCount": 500, "ocrConfidence": 0.91},
            ]})

        pipeline = HttpAnalysisPipeline(client=_client(handler))
        result = await pipeline.get_status("q1")
        await pipeline.close()

        assert result.ok
        assert result.value[0].document_id == "q1-f1"
        assert result.value[0].status == ProcessingStatus.COMPLETED
        assert result.value[0].ocr_confidence == 0.91

    @pytest.mark.asyncio
    async def test_complete_is_read_as_completed(self):
        pipeline = HttpAnalysisPipeline(client=_client(
            lambda request: httpx.Response(200, json=[{"documentId": "q1-f1", "status": "complete", "wordCount": 320}])
        ))
        result = await pipeline.get_status("q1")

        assert result.ok
        assert result.value[0].status == ProcessingStatus.COMPLETED
        assert result.value[0].word_count == 320

    @pytest.mark.asyncio
    async def test_malformed_status_is_invalid(self):
        pipeline = HttpAnalysisPipeline(client=_client(
            lambda request: httpx.Response(200, json=[{"documentId": "q1-f1", "status": "exploded"}])
        ))
        result = await pipeline.get_status("q1")
        assert result.kind == INVALID

    @pytest.mark.asyncio
    async def test_server_error_is_transport(self):
        pipeline = HttpAnalysisPipeline(client=_client(lambda request: httpx.Response(503)))
        result = await pipeline.get_status("q1")
        assert result.kind == TRANSPORT

    @pytest.mark.asyncio
    async def test_connection_error_is_transport(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        pipeline = HttpAnalysisPipeline(client=_client(handler))
        result = await pipeline.get_status("q1")
        assert result.kind == TRANSPORT

    @pytest.mark.asyncio
    async def test_submit_needs_job_id(self):
        pipeline = HttpAnalysisPipeline(client=_client(lambda request: httpx.Response(200, json={})))
        result = await pipeline.submit("q1", "q1-f1")
        assert result.kind == INVALID


class TestNotificationService:

    @pytest.mark.asyncio
    async def test_send_posts_template(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(202)

        service = HttpNotificationService(client=_client(handler))
        result = await service.send("quote_ready_for_payment", "ana@example.test", {"total": "178.50"})

        assert result.ok
        assert seen == [{
            "template": "quote_ready_for_payment",
            "to": "ana@example.test",
            "variables": {"total": "178.50"},
        }]

    @pytest.mark.asyncio
    async def test_rejected_request_is_invalid(self):
        service = HttpNotificationService(client=_client(lambda request: httpx.Response(400)))
        result = await service.send("quote_ready_for_payment", "ana@example.test", {})
        assert result.kind == INVALID


class TestPaymentGateway:

    @pytest.mark.asyncio
    async def test_checkout_url(self):
        def handler(request):
            body = json.loads(request.content)
            assert body == {"quoteId": "q1", "amount": "178.50"}
            return httpx.Response(200, json={"url": "https://pay.example.test/c/1"})

        gateway = HttpPaymentGateway(client=_client(handler))
        result = await gateway.create_checkout_session("q1", Decimal("178.50"))
        assert result.value == "https://pay.example.test/c/1"

    @pytest.mark.asyncio
    async def test_missing_url(self):
        gateway = HttpPaymentGateway(client=_client(lambda request: httpx.Response(200, json={})))
        result = await gateway.create_payment_link(Decimal("20.00"), {"email": "ana@example.test"})
        assert result.kind == INVALID
