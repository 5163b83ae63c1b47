"""ORM model for verification cases, the aggregate every pipeline stage mutates."""

import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, Float, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin


class DocumentType(str, enum.Enum):
    OMANG = "omang"
    PASSPORT = "passport"
    DRIVERS_LICENCE = "drivers_licence"
    ID_CARD = "id_card"


class CaseStatus(str, enum.Enum):
    CREATED = "created"
    DOCUMENTS_UPLOADING = "documents_uploading"
    DOCUMENTS_COMPLETE = "documents_complete"
    SUBMITTED = "submitted"
    PROCESSING = "processing"
    PENDING_REVIEW = "pending_review"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    AUTO_REJECTED = "auto_rejected"
    RESUBMISSION_REQUIRED = "resubmission_required"
    EXPIRED = "expired"


TERMINAL_STATUSES = frozenset({
    CaseStatus.APPROVED,
    CaseStatus.REJECTED,
    CaseStatus.AUTO_REJECTED,
    CaseStatus.EXPIRED,
})

# Statuses a reviewer may approve or reject from
DECIDABLE_STATUSES = frozenset({CaseStatus.PENDING_REVIEW, CaseStatus.IN_REVIEW})


class VerificationCase(Base, TimestampMixin):
    __tablename__ = "verification_cases"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    client_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    document_type: Mapped[DocumentType] = mapped_column(
        SAEnum(DocumentType, name="document_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    status: Mapped[CaseStatus] = mapped_column(
        SAEnum(CaseStatus, name="case_status", values_callable=lambda e: [m.value for m in e]),
        default=CaseStatus.CREATED,
        nullable=False,
        index=True,
    )

    # Customer
    customer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    customer_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    redirect_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    webhook_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    case_metadata: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Extraction results
    extracted_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    field_confidence: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    overall_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    requires_manual_review: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    extraction_warnings: Mapped[list | None] = mapped_column(JSON, nullable=True)
    biometric_summary: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Decision
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    decision_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_by: Mapped[str | None] = mapped_column(String(200), nullable=True)

    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
