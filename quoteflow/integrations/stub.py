"""
Stub collaborators for tests and local development.
They record every call and can be scripted to fail.
"""

from decimal import Decimal
from typing import Any, Optional

from quoteflow.integrations.base import AnalysisPipeline, NotificationService, PaymentGateway
from quoteflow.result import TRANSPORT, Err, Ok, Result
from quoteflow.schemas.analysis import AnalysisHandle, DocumentAnalysis


class StubAnalysisPipeline(AnalysisPipeline):
    """
    Returns scripted status responses in order. Once the script runs out
    the last response repeats. A None entry in the script is a transport
    failure for that poll.
    """

    def __init__(self, responses: Optional[list[Optional[list[DocumentAnalysis]]]] = None):
        self.responses = list(responses or [])
        self.status_calls = 0
        self.submitted: list[tuple[str, str]] = []

    async def submit(self, quote_id: str, document_id: str) -> Result[AnalysisHandle]:
        self.submitted.append((quote_id, document_id))
        return Ok(AnalysisHandle(document_id=document_id, job_id=f"job-{len(self.submitted)}"))

    async def get_status(self, quote_id: str) -> Result[list[DocumentAnalysis]]:
        self.status_calls += 1
        if not self.responses:
            return Ok([])
        index = min(self.status_calls - 1, len(self.responses) - 1)
        response = self.responses[index]
        if response is None:
            return Err(TRANSPORT, "analysis pipeline unreachable")
        return Ok([a.model_copy() for a in response])


class RecordingNotificationService(NotificationService):

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[dict[str, Any]] = []

    async def send(self, template: str, recipient: str, variables: dict[str, Any]) -> Result[None]:
        if self.fail:
            return Err(TRANSPORT, "notification service unreachable")
        self.sent.append({"template": template, "recipient": recipient, "variables": variables})
        return Ok(None)


class StubPaymentGateway(PaymentGateway):

    def __init__(self, base_url: str = "https://pay.example.test", fail: bool = False):
        self.base_url = base_url
        self.fail = fail
        self.checkouts: list[tuple[str, Decimal]] = []
        self.links: list[tuple[Decimal, dict]] = []

    async def create_checkout_session(self, quote_id: str, amount: Decimal) -> Result[str]:
        if self.fail:
            return Err(TRANSPORT, "payment gateway unreachable")
        self.checkouts.append((quote_id, amount))
        return Ok(f"{self.base_url}/checkout/{quote_id}")

    async def create_payment_link(self, amount: Decimal, customer: dict[str, Any]) -> Result[str]:
        if self.fail:
            return Err(TRANSPORT, "payment gateway unreachable")
        self.links.append((amount, customer))
        return Ok(f"{self.base_url}/link/{len(self.links)}")
