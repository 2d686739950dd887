"""
httpx adapters for the external collaborators.

Responses are validated with pydantic here, at the edge, so the services
only ever see typed records. httpx errors become Err(TRANSPORT); a
response that does not validate becomes Err(INVALID).
"""

import time
from decimal import Decimal
from typing import Any, Optional

import httpx
import structlog
from pydantic import TypeAdapter, ValidationError

from quoteflow.config import settings
from quoteflow.integrations.base import AnalysisPipeline, NotificationService, PaymentGateway
from quoteflow.observability.metrics import external_api_latency_seconds
from quoteflow.result import INVALID, TRANSPORT, Err, Ok, Result
from quoteflow.schemas.analysis import AnalysisHandle, DocumentAnalysis

logger = structlog.get_logger(__name__)

_analysis_list = TypeAdapter(list[DocumentAnalysis])


class _HttpAdapter:
    """Shared request handling: timing, error mapping, JSON decoding."""

    service_name = "http"

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=settings.HTTP_TIMEOUT_SECONDS,
                headers={"X-API-Key": settings.API_KEY} if settings.API_KEY else None,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, operation: str, **kwargs) -> Result[Any]:
        start = time.monotonic()
        try:
            response = await self._get_client().request(method, path, **kwargs)
            response.raise_for_status()
            body = response.json() if response.content else None
        except httpx.HTTPStatusError as e:
            logger.warning(
                "external_call_rejected",
                service=self.service_name,
                operation=operation,
                status_code=e.response.status_code,
            )
            kind = TRANSPORT if e.response.status_code >= 500 else INVALID
            return Err(kind, f"{self.service_name} returned {e.response.status_code}")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(
                "external_call_failed",
                service=self.service_name,
                operation=operation,
                error=str(e),
            )
            return Err(TRANSPORT, f"{self.service_name} unreachable: {e}")
        finally:
            external_api_latency_seconds.labels(
                service=self.service_name, operation=operation,
            ).observe(time.monotonic() - start)
        return Ok(body)


class HttpAnalysisPipeline(_HttpAdapter, AnalysisPipeline):
    service_name = "analysis"

    def __init__(self, base_url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        super().__init__(base_url or settings.ANALYSIS_API_URL, client)

    async def submit(self, quote_id: str, document_id: str) -> Result[AnalysisHandle]:
        result = await self._request(
            "POST", "/analyses", "submit", json={"quoteId": quote_id, "documentId": document_id},
        )
        if not result.ok:
            return result
        body = result.value if isinstance(result.value, dict) else {}
        job_id = body.get("jobId") or body.get("job_id")
        if not job_id:
            return Err(INVALID, "analysis submission returned no job id")
        return Ok(AnalysisHandle(document_id=document_id, job_id=str(job_id)))

    async def get_status(self, quote_id: str) -> Result[list[DocumentAnalysis]]:
        result = await self._request("GET", f"/quotes/{quote_id}/analyses", "get_status")
        if not result.ok:
            return result
        body = result.value
        if isinstance(body, dict):
            body = body.get("documents", [])
        try:
            return Ok(_analysis_list.validate_python(body or []))
        except ValidationError as e:
            logger.warning("analysis_status_invalid", quote_id=quote_id, errors=e.error_count())
            return Err(INVALID, "analysis status response did not validate")


class HttpNotificationService(_HttpAdapter, NotificationService):
    service_name = "notification"

    def __init__(self, base_url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        super().__init__(base_url or settings.NOTIFICATION_API_URL, client)

    async def send(self, template: str, recipient: str, variables: dict[str, Any]) -> Result[None]:
        result = await self._request(
            "POST",
            "/notifications",
            "send",
            json={"template": template, "to": recipient, "variables": variables},
        )
        if not result.ok:
            return result
        return Ok(None)


class HttpPaymentGateway(_HttpAdapter, PaymentGateway):
    service_name = "payment"

    def __init__(self, base_url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        super().__init__(base_url or settings.PAYMENT_API_URL, client)

    def _url_from(self, result: Result[Any], operation: str) -> Result[str]:
        if not result.ok:
            return result
        url = result.value.get("url") if isinstance(result.value, dict) else None
        if not url:
            return Err(INVALID, f"{operation} returned no url")
        return Ok(str(url))

    async def create_checkout_session(self, quote_id: str, amount: Decimal) -> Result[str]:
        result = await self._request(
            "POST",
            "/checkout-sessions",
            "create_checkout_session",
            json={"quoteId": quote_id, "amount": str(amount)},
        )
        return self._url_from(result, "create_checkout_session")

    async def create_payment_link(self, amount: Decimal, customer: dict[str, Any]) -> Result[str]:
        result = await self._request(
            "POST",
            "/payment-links",
            "create_payment_link",
            json={"amount": str(amount), "customer": customer},
        )
        return self._url_from(result, "create_payment_link")
