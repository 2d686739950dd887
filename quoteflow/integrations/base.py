"""
Abstract interfaces for the external collaborators.

The core never blocks on analysis submission, treats notifications as
fire-and-forget, and only hands the computed total to the payment
gateway. All methods return a tagged Result.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any

from quoteflow.result import Result
from quoteflow.schemas.analysis import AnalysisHandle, DocumentAnalysis


class AnalysisPipeline(ABC):
    """Document AI analysis (language, type, complexity, word counts)."""

    @abstractmethod
    async def submit(self, quote_id: str, document_id: str) -> Result[AnalysisHandle]:
        ...

    @abstractmethod
    async def get_status(self, quote_id: str) -> Result[list[DocumentAnalysis]]:
        """Per-document status for every file on the quote."""
        ...


class NotificationService(ABC):

    @abstractmethod
    async def send(self, template: str, recipient: str, variables: dict[str, Any]) -> Result[None]:
        ...


class PaymentGateway(ABC):

    @abstractmethod
    async def create_checkout_session(self, quote_id: str, amount: Decimal) -> Result[str]:
        """Return the hosted checkout URL."""
        ...

    @abstractmethod
    async def create_payment_link(self, amount: Decimal, customer: dict[str, Any]) -> Result[str]:
        ...
