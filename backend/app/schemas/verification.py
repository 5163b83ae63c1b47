"""Pydantic schemas for verification case intake, reads, OCR and biometric submission."""

import re
from datetime import datetime

from pydantic import Field, field_validator, model_validator

from app.models.verification_case import CaseStatus, DocumentType
from app.schemas.common import CamelModel, ResponseMeta
from app.schemas.validation import ValidationVerdict

_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class CustomerInput(CamelModel):
    email: str | None = Field(default=None, max_length=320)
    name: str | None = Field(default=None, max_length=200)
    phone: str | None = Field(default=None, max_length=50)

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str | None) -> str | None:
        if v is not None and not _EMAIL.match(v):
            raise ValueError("Invalid email address")
        return v

    @model_validator(mode="after")
    def at_least_one_identifier(self) -> "CustomerInput":
        if not (self.email or self.name or self.phone):
            raise ValueError("At least one of email, name or phone is required")
        return self


class CreateVerificationRequest(CamelModel):
    customer: CustomerInput
    document_type: DocumentType = DocumentType.OMANG
    redirect_url: str | None = Field(default=None, max_length=2048)
    webhook_url: str | None = Field(default=None, max_length=2048)
    metadata: dict | None = None
    idempotency_key: str | None = Field(default=None, min_length=1, max_length=255)

    @field_validator("redirect_url", "webhook_url")
    @classmethod
    def require_https(cls, v: str | None) -> str | None:
        if v is not None and not v.lower().startswith("https://"):
            raise ValueError("URL must use HTTPS")
        return v


class CreateVerificationResponse(CamelModel):
    case_id: str
    status: CaseStatus
    session_token: str
    sdk_url: str
    expires_at: datetime
    meta: ResponseMeta


class CustomerResponse(CamelModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None


class CaseResponse(CamelModel):
    case_id: str
    status: CaseStatus
    document_type: DocumentType
    customer: CustomerResponse
    document_number: str
    extracted_data: dict = Field(default_factory=dict)
    field_confidence: dict = Field(default_factory=dict)
    overall_confidence: float | None = None
    requires_manual_review: bool = False
    warnings: list[str] = Field(default_factory=list)
    biometric_summary: dict | None = None
    rejection_reason: str | None = None
    rejection_code: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    submitted_at: datetime | None = None
    completed_at: datetime | None = None
    expires_at: datetime | None = None


class CaseEnvelope(CamelModel):
    data: CaseResponse
    meta: ResponseMeta


class OcrLineInput(CamelModel):
    text: str
    confidence: float = Field(default=0.0, ge=0, le=100)


class OcrSubmissionRequest(CamelModel):
    side: str | None = Field(default=None, max_length=50)
    lines: list[OcrLineInput] = Field(min_length=1)
    # False while more sides of the document are still to come
    complete: bool = True


class OcrSubmissionResponse(CamelModel):
    case_id: str
    status: CaseStatus
    overall_confidence: float
    field_confidence: dict[str, float]
    requires_manual_review: bool
    missing_required_fields: list[str]
    warnings: list[str]
    validation: ValidationVerdict | None = None
    meta: ResponseMeta


class BiometricSubmissionRequest(CamelModel):
    liveness_score: float = Field(ge=0, le=100)
    similarity_score: float = Field(ge=0, le=100)
    liveness_passed: bool
    face_match_passed: bool


class BiometricSummaryResponse(CamelModel):
    liveness_score: float
    similarity_score: float
    overall_score: float
    passed: bool
    requires_manual_review: bool


class BiometricSubmissionResponse(CamelModel):
    case_id: str
    status: CaseStatus
    biometric_summary: BiometricSummaryResponse
    requires_manual_review: bool
    rejection_code: str | None = None
    meta: ResponseMeta
