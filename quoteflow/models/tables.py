"""
SQLAlchemy ORM models.
Generic column types only, so the same schema runs on PostgreSQL and on
SQLite in tests. Status columns hold the enum string values.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quoteflow.models.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


# ────────────────────────────────────────────────────────────
# QUOTES
# ────────────────────────────────────────────────────────────
class QuoteRow(Base):
    __tablename__ = "quotes"

    quote_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    quote_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, unique=True)
    customer_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    customer_email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    customer_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source_language: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    target_language: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    language_multiplier: Mapped[Decimal] = mapped_column(
        Numeric(6, 3), nullable=False, default=Decimal("1.0"), server_default="1.0"
    )
    document_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    intended_use: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    certification_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    surcharge_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    discount_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    rush_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    delivery_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False, default=Decimal("0.05"))
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    balance_due: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    turnaround_type: Mapped[str] = mapped_column(
        String(16), nullable=False, default="standard", server_default="standard"
    )
    delivery_option: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    surcharge_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    discount_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    certifications_json: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="draft", server_default="draft")
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    billing_address: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    shipping_address: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    # Relationships
    files = relationship("QuoteFileRow", back_populates="quote", cascade="all, delete-orphan")
    versions = relationship("QuoteVersionRow", back_populates="quote", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_quotes_status", "status"),
        Index("idx_quotes_created", "created_at"),
    )


class QuoteVersionRow(Base):
    __tablename__ = "quote_versions"

    version_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    quote_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("quotes.quote_id", ondelete="CASCADE"), nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    snapshot: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    quote = relationship("QuoteRow", back_populates="versions")

    __table_args__ = (
        UniqueConstraint("quote_id", "version", name="uq_quote_version"),
    )


# ────────────────────────────────────────────────────────────
# FILES AND PAGES
# ────────────────────────────────────────────────────────────
class QuoteFileRow(Base):
    __tablename__ = "quote_files"

    file_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    quote_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("quotes.quote_id", ondelete="CASCADE"), nullable=False
    )
    filename: Mapped[str] = mapped_column(Text, nullable=False)
    storage_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    page_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    word_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    processing_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="pending", server_default="pending"
    )
    detected_language: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    detected_document_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    assessed_complexity: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    billable_pages: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 1), nullable=True)
    billable_pages_override: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 1), nullable=True)
    line_total: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    certification_code: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    certification_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    ocr_confidence: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 4), nullable=True)
    language_confidence: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 4), nullable=True)
    classification_confidence: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 4), nullable=True)
    complexity_confidence: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 4), nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    quote = relationship("QuoteRow", back_populates="files")
    pages = relationship(
        "QuotePageRow", back_populates="file", cascade="all, delete-orphan",
        order_by="QuotePageRow.page_number",
    )

    __table_args__ = (
        Index("idx_quote_files_quote", "quote_id"),
        Index("idx_quote_files_status", "processing_status"),
    )


class QuotePageRow(Base):
    __tablename__ = "quote_pages"

    page_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    file_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("quote_files.file_id", ondelete="CASCADE"), nullable=False
    )
    page_number: Mapped[int] = mapped_column(Integer, nullable=False)
    word_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    file = relationship("QuoteFileRow", back_populates="pages")

    __table_args__ = (
        UniqueConstraint("file_id", "page_number", name="uq_page_file_number"),
    )


# ────────────────────────────────────────────────────────────
# DOCUMENT GROUPS
# ────────────────────────────────────────────────────────────
class DocumentGroupRow(Base):
    __tablename__ = "document_groups"

    group_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    quote_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("quotes.quote_id", ondelete="CASCADE"), nullable=False
    )
    label: Mapped[str] = mapped_column(Text, nullable=False)
    document_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    complexity: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    certification_code: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    certification_price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00"), server_default="0.00"
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))

    __table_args__ = (
        Index("idx_document_groups_quote", "quote_id"),
    )


class GroupAssignmentRow(Base):
    __tablename__ = "group_assignments"

    assignment_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    group_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("document_groups.group_id", ondelete="CASCADE"), nullable=False
    )
    item_id: Mapped[str] = mapped_column(String(36), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))

    __table_args__ = (
        Index("idx_group_assignments_group", "group_id"),
        Index("idx_group_assignments_item", "item_id"),
    )


# ────────────────────────────────────────────────────────────
# HITL REVIEWS
# ────────────────────────────────────────────────────────────
class ReviewRow(Base):
    __tablename__ = "hitl_reviews"

    review_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    quote_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("quotes.quote_id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending", server_default="pending")
    assigned_to: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    trigger_reasons: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=5, server_default="5")
    sla_deadline: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    internal_notes: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    previous_assigned_to: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    claim_override_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    claim_override_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    completed_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        Index("idx_hitl_reviews_queue", "status", "priority", "created_at"),
        # At most one active review per quote
        Index(
            "uq_hitl_reviews_active",
            "quote_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'in_review')"),
            sqlite_where=text("status IN ('pending', 'in_review')"),
        ),
    )


# ────────────────────────────────────────────────────────────
# STAFF AND AUDIT
# ────────────────────────────────────────────────────────────
class StaffUserRow(Base):
    __tablename__ = "staff_users"

    staff_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    email: Mapped[Optional[str]] = mapped_column(Text, nullable=True, unique=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))


class StaffActivityRow(Base):
    __tablename__ = "staff_activity_log"

    activity_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    staff_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    action_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        Index("idx_staff_activity_entity", "entity_id", "created_at"),
    )


# ────────────────────────────────────────────────────────────
# REFERENCE DATA
# ────────────────────────────────────────────────────────────
class AppSettingRow(Base):
    __tablename__ = "app_settings"

    setting_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    setting_value: Mapped[str] = mapped_column(Text, nullable=False)


class HolidayRow(Base):
    __tablename__ = "holidays"

    holiday_date: Mapped[date] = mapped_column(Date, primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))


class DeliveryOptionRow(Base):
    __tablename__ = "delivery_options"

    code: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    is_physical: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    estimated_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")


class TurnaroundDefinitionRow(Base):
    __tablename__ = "turnaround_options"

    turnaround_type: Mapped[str] = mapped_column(String(16), primary_key=True)
    label: Mapped[str] = mapped_column(Text, nullable=False)
    multiplier: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))


class SameDayEligibilityRow(Base):
    __tablename__ = "same_day_eligibility"

    rule_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    source_language: Mapped[str] = mapped_column(String(16), nullable=False)
    target_language: Mapped[str] = mapped_column(String(16), nullable=False)
    document_type: Mapped[str] = mapped_column(Text, nullable=False)
    intended_use: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))


class HitlThresholdRow(Base):
    __tablename__ = "hitl_thresholds"

    threshold_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    threshold_value: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
