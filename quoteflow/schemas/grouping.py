"""
Document grouping ledger records.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from quoteflow.models.enums import ItemKind


class LedgerItem(BaseModel):
    """A page or whole file that can be billed inside a group."""
    item_id: str
    kind: ItemKind
    file_id: str
    page_number: Optional[int] = None
    word_count: int = 0


class DocumentGroup(BaseModel):
    group_id: str
    quote_id: str
    label: str
    document_type: Optional[str] = None
    complexity: Optional[str] = None
    certification_code: Optional[str] = None
    certification_price: Decimal = Decimal("0.00")
    sort_order: int = 0
    is_deleted: bool = False
    persisted: bool = False


class GroupAssignment(BaseModel):
    assignment_id: str
    group_id: str
    item_id: str
    sequence: int = 0
    is_deleted: bool = False
    persisted: bool = False


class LedgerState(BaseModel):
    """Everything the ledger needs to rebuild itself from storage."""
    quote_id: str
    items: list[LedgerItem] = []
    groups: list[DocumentGroup] = []
    assignments: list[GroupAssignment] = []


class GroupSummary(BaseModel):
    group_id: str
    label: str
    item_ids: list[str]
    billable_pages: Decimal
    certification_total: Decimal
    line_total: Decimal
