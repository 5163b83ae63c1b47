from app.schemas.bulk import BulkDecisionRequest, BulkDecisionResponse
from app.schemas.common import ErrorResponse, ResponseMeta
from app.schemas.health import HealthResponse
from app.schemas.verification import (
    CaseEnvelope,
    CreateVerificationRequest,
    CreateVerificationResponse,
    OcrSubmissionRequest,
    OcrSubmissionResponse,
)

__all__ = [
    "BulkDecisionRequest",
    "BulkDecisionResponse",
    "CaseEnvelope",
    "CreateVerificationRequest",
    "CreateVerificationResponse",
    "ErrorResponse",
    "HealthResponse",
    "OcrSubmissionRequest",
    "OcrSubmissionResponse",
    "ResponseMeta",
]
