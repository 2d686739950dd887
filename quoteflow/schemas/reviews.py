"""
HITL review, staff and audit records.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from quoteflow.models.enums import ReviewStatus, StaffRole, TriggerReason


class StaffContext(BaseModel):
    """The acting staff member, passed explicitly into every workflow call."""
    model_config = ConfigDict(frozen=True)

    staff_id: str
    role: StaffRole
    name: Optional[str] = None


class StaffUser(BaseModel):
    staff_id: str
    role: StaffRole
    name: Optional[str] = None
    email: Optional[str] = None
    is_active: bool = True

    def context(self) -> StaffContext:
        return StaffContext(staff_id=self.staff_id, role=self.role, name=self.name)


class InternalNote(BaseModel):
    staff_id: str
    text: str
    created_at: datetime


class Review(BaseModel):
    review_id: str
    quote_id: str
    status: ReviewStatus = ReviewStatus.PENDING
    assigned_to: Optional[str] = None
    assigned_at: Optional[datetime] = None
    trigger_reasons: list[TriggerReason] = []
    priority: int = 5
    sla_deadline: Optional[datetime] = None
    internal_notes: list[InternalNote] = []
    previous_assigned_to: Optional[str] = None
    claim_override_at: Optional[datetime] = None
    claim_override_by: Optional[str] = None
    completed_by: Optional[str] = None
    completed_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AuditEntry(BaseModel):
    """One row of the staff activity log."""
    action_type: str
    staff_id: Optional[str] = None
    entity_type: str = "quote"
    entity_id: str
    details: dict[str, Any] = {}
    created_at: Optional[datetime] = None


class Correction(BaseModel):
    field: str
    new_value: Any = None
    reason: str
    file_id: Optional[str] = None


class CorrectionOutcome(BaseModel):
    field: str
    file_id: Optional[str] = None
    success: bool
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    error: Optional[str] = None


class CorrectionReport(BaseModel):
    review_id: str
    outcomes: list[CorrectionOutcome] = []

    @property
    def failed(self) -> list[CorrectionOutcome]:
        return [o for o in self.outcomes if not o.success]

    @property
    def all_succeeded(self) -> bool:
        return not self.failed


class ThresholdCheck(BaseModel):
    trigger: TriggerReason
    value: float
    threshold: float
    passed: bool


class ThresholdReport(BaseModel):
    checks: list[ThresholdCheck] = []

    @property
    def triggers(self) -> list[TriggerReason]:
        return [c.trigger for c in self.checks if not c.passed]

    @property
    def requires_review(self) -> bool:
        return bool(self.triggers)
