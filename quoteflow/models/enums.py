"""
Python enums for quote, review and document states.
Values are stored as plain strings in the database.
"""

from enum import Enum


class QuoteStatus(str, Enum):
    DRAFT = "draft"
    HITL_PENDING = "hitl_pending"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    ESCALATED = "escalated"
    REJECTED = "rejected"
    AWAITING_PAYMENT = "awaiting_payment"
    PAID = "paid"
    CONVERTED = "converted"


class ReviewStatus(str, Enum):
    PENDING = "pending"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    ESCALATED = "escalated"


class StaffRole(str, Enum):
    REVIEWER = "reviewer"
    SENIOR_REVIEWER = "senior_reviewer"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class Complexity(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class TurnaroundType(str, Enum):
    STANDARD = "standard"
    RUSH = "rush"
    SAME_DAY = "same_day"


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class TriggerReason(str, Enum):
    TIMEOUT = "timeout"
    PROCESSING_ERROR = "processing_error"
    LOW_OCR_CONFIDENCE = "low_ocr_confidence"
    LOW_LANGUAGE_CONFIDENCE = "low_language_confidence"
    LOW_CLASSIFICATION_CONFIDENCE = "low_classification_confidence"
    LOW_COMPLEXITY_CONFIDENCE = "low_complexity_confidence"
    HIGH_VALUE_ORDER = "high_value_order"
    HIGH_PAGE_COUNT = "high_page_count"
    CUSTOMER_REQUESTED = "customer_requested"
    QUALITY_CHECK = "quality_check"
    MANUAL_TRIGGER = "manual_trigger"


class ItemKind(str, Enum):
    PAGE = "page"
    FILE = "file"


# Statuses in which a quote may no longer be repriced or reviewed.
TERMINAL_QUOTE_STATUSES = frozenset({
    QuoteStatus.REJECTED,
    QuoteStatus.ESCALATED,
    QuoteStatus.PAID,
    QuoteStatus.CONVERTED,
})

# Reviews a claim or edit may act on.
ACTIVE_REVIEW_STATUSES = frozenset({ReviewStatus.PENDING, ReviewStatus.IN_REVIEW})

# Read-only review states.
TERMINAL_REVIEW_STATUSES = frozenset({ReviewStatus.REJECTED, ReviewStatus.ESCALATED})
