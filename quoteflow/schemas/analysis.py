"""
Analysis pipeline status as observed by the watchdog.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from quoteflow.models.enums import ProcessingStatus, TriggerReason


class DocumentAnalysis(BaseModel):
    """Validated per-document status returned by the analysis pipeline."""
    document_id: str = Field(validation_alias="documentId")
    status: ProcessingStatus
    word_count: Optional[int] = Field(default=None, validation_alias="wordCount")
    page_count: Optional[int] = Field(default=None, validation_alias="pageCount")
    billable_pages: Optional[float] = Field(default=None, validation_alias="billablePages")
    line_total: Optional[float] = Field(default=None, validation_alias="lineTotal")
    detected_language: Optional[str] = Field(default=None, validation_alias="detectedLanguage")
    detected_document_type: Optional[str] = Field(default=None, validation_alias="detectedDocumentType")
    assessed_complexity: Optional[str] = Field(default=None, validation_alias="assessedComplexity")
    ocr_confidence: Optional[float] = Field(default=None, validation_alias="ocrConfidence")
    language_confidence: Optional[float] = Field(default=None, validation_alias="languageConfidence")
    classification_confidence: Optional[float] = Field(default=None, validation_alias="classificationConfidence")
    complexity_confidence: Optional[float] = Field(default=None, validation_alias="complexityConfidence")
    customer_requested_review: bool = Field(default=False, validation_alias="customerRequestedReview")
    error: Optional[str] = None

    model_config = {"populate_by_name": True}

    @field_validator("status", mode="before")
    @classmethod
    def normalise_status(cls, v):
        # the pipeline reports finished analyses as "complete"
        if isinstance(v, str) and v.lower() == "complete":
            return ProcessingStatus.COMPLETED
        return v


class AnalysisHandle(BaseModel):
    document_id: str
    job_id: str


class WatchdogResult(BaseModel):
    """What a watchdog run ended with."""
    quote_id: str
    outcome: str                           # completed, escalated, timeout, cancelled
    attempts: int
    triggers: list[TriggerReason] = []
    review_id: Optional[str] = None
    failed_steps: list[str] = []
    error: Optional[dict] = None
