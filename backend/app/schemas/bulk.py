"""Pydantic schemas for reviewer decisions, single and bulk."""

from datetime import datetime
from typing import Literal

from pydantic import Field

from app.models.verification_case import CaseStatus
from app.schemas.common import CamelModel, ResponseMeta

RejectionCode = Literal[
    "blurry_image",
    "face_mismatch",
    "invalid_document",
    "duplicate_detected",
    "incomplete_data",
    "fraudulent",
    "other",
]


class BulkDecisionRequest(CamelModel):
    # Size limits are enforced by the processor so the error text is uniform
    case_ids: list[str] | None = None
    reason: str | None = Field(default=None, max_length=1000)
    notes: str | None = Field(default=None, max_length=2000)


class BulkItemResponse(CamelModel):
    case_id: str
    success: bool
    error: str | None = None


class BulkSummary(CamelModel):
    total: int
    succeeded: int
    failed: int


class BulkDecisionData(CamelModel):
    results: list[BulkItemResponse]
    summary: BulkSummary


class BulkDecisionResponse(CamelModel):
    data: BulkDecisionData
    meta: ResponseMeta


class ApproveCaseRequest(CamelModel):
    notes: str | None = Field(default=None, max_length=2000)


class RejectCaseRequest(CamelModel):
    reason: RejectionCode
    notes: str | None = Field(default=None, max_length=2000)


class CaseDecisionResponse(CamelModel):
    case_id: str
    status: CaseStatus
    completed_at: datetime | None = None
    meta: ResponseMeta
