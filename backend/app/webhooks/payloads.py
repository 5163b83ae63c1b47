"""Webhook event names and payload construction.

Approved payloads carry a masked document number and a short list of
extracted fields. Rejected payloads carry only the email and the rejection
reason; no biographic data leaves the service for a rejected case.
"""

import enum
from datetime import datetime

from app.extraction.profiles import get_profile
from app.models.base import as_utc
from app.models.verification_case import CaseStatus, DocumentType, VerificationCase

IDENTIFIER_MASK = "***"


class WebhookEvent(str, enum.Enum):
    CREATED = "verification.created"
    SUBMITTED = "verification.submitted"
    APPROVED = "verification.approved"
    REJECTED = "verification.rejected"
    RESUBMISSION_REQUIRED = "verification.resubmission_required"
    EXPIRED = "verification.expired"


# Status changes that notify the client
STATUS_EVENTS: dict[CaseStatus, WebhookEvent] = {
    CaseStatus.APPROVED: WebhookEvent.APPROVED,
    CaseStatus.REJECTED: WebhookEvent.REJECTED,
    CaseStatus.RESUBMISSION_REQUIRED: WebhookEvent.RESUBMISSION_REQUIRED,
    CaseStatus.EXPIRED: WebhookEvent.EXPIRED,
}


def mask_identifier(value: str | None) -> str:
    if not value:
        return ""
    if len(value) < 4:
        return IDENTIFIER_MASK
    return IDENTIFIER_MASK + value[-4:]


def isoformat(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value is not None else None


def document_identifier(case: VerificationCase) -> str | None:
    fields = case.extracted_data or {}
    return fields.get(get_profile(case.document_type).identifier_field)


def build_payload(case: VerificationCase, event: WebhookEvent | str, timestamp: datetime) -> dict:
    status = CaseStatus(case.status)
    data: dict = {
        "verificationId": case.id,
        "status": status.value,
        "documentType": DocumentType(case.document_type).value,
        "createdAt": isoformat(case.created_at),
        "updatedAt": isoformat(case.updated_at),
    }

    if status == CaseStatus.APPROVED:
        fields = case.extracted_data or {}
        biometrics = case.biometric_summary or {}
        full_name = " ".join(
            part for part in (fields.get("forenames"), fields.get("surname")) if part
        )
        data["customer"] = {
            "name": case.customer_name,
            "email": case.customer_email,
            "omangNumber": mask_identifier(document_identifier(case)),
        }
        data["extractedData"] = {
            "fullName": full_name or None,
            "dateOfBirth": fields.get("dateOfBirth"),
            "sex": fields.get("sex") or fields.get("gender"),
            "dateOfExpiry": fields.get("dateOfExpiry") or fields.get("validityEnd"),
        }
        data["biometricScore"] = biometrics.get("similarityScore")
        data["completedAt"] = isoformat(case.completed_at)
    elif status in (CaseStatus.REJECTED, CaseStatus.AUTO_REJECTED):
        data["customer"] = {"email": case.customer_email}
        data["rejectionReason"] = case.rejection_reason
        data["rejectionCode"] = case.rejection_code
        data["completedAt"] = isoformat(case.completed_at)

    return {
        "event": WebhookEvent(event).value,
        "timestamp": isoformat(timestamp),
        "data": data,
    }


# Document numbers are masked wherever extracted data leaves the service
IDENTIFIER_FIELDS = frozenset({"idNumber", "omangNumber", "personalNumber", "passportNumber", "licenceNumber"})
_WITHHELD_FIELDS = frozenset({"mrzLine1", "mrzLine2"})


def mask_extracted_fields(fields: dict | None) -> dict:
    masked = {}
    for name, value in (fields or {}).items():
        if name in _WITHHELD_FIELDS:
            continue
        masked[name] = mask_identifier(value) if name in IDENTIFIER_FIELDS else value
    return masked
