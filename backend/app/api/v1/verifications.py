"""Verification case endpoints — create (idempotent), read, submit OCR and biometric results."""

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.responses import build_meta
from app.biometrics.scoring import BiometricScores
from app.cases.service import CaseService
from app.dependencies import ClientIdentity, get_case_service, get_current_client, get_db
from app.errors import PermissionDenied
from app.extraction.engine import OcrLine
from app.models.base import as_utc
from app.models.verification_case import VerificationCase
from app.schemas.validation import ValidationVerdict
from app.schemas.verification import (
    BiometricSubmissionRequest,
    BiometricSubmissionResponse,
    BiometricSummaryResponse,
    CaseEnvelope,
    CaseResponse,
    CreateVerificationRequest,
    CreateVerificationResponse,
    CustomerResponse,
    OcrSubmissionRequest,
    OcrSubmissionResponse,
)
from app.webhooks.payloads import document_identifier, mask_extracted_fields, mask_identifier

router = APIRouter()


@router.post(
    "",
    response_model=CreateVerificationResponse,
    response_model_exclude_none=True,
    status_code=201,
)
async def create_verification(
    body: CreateVerificationRequest,
    request: Request,
    response: Response,
    identity: ClientIdentity = Depends(get_current_client),
    db: AsyncSession = Depends(get_db),
    cases: CaseService = Depends(get_case_service),
) -> CreateVerificationResponse:
    """Create a case. Replaying an idempotency key returns the original case with 200."""
    if identity.case_id is not None:
        raise PermissionDenied("Session tokens cannot create verification cases")

    created = await cases.create_case(db, identity.client_id, body)
    if created.idempotent:
        response.status_code = 200

    return CreateVerificationResponse(
        case_id=created.case.id,
        status=created.case.status,
        session_token=created.session_token,
        sdk_url=created.sdk_url,
        expires_at=as_utc(created.case.expires_at),
        meta=build_meta(request, idempotent=True if created.idempotent else None),
    )


@router.get("/{case_id}", response_model=CaseEnvelope)
async def get_verification(
    case_id: str,
    request: Request,
    identity: ClientIdentity = Depends(get_current_client),
    db: AsyncSession = Depends(get_db),
    cases: CaseService = Depends(get_case_service),
) -> CaseEnvelope:
    _check_case_scope(identity, case_id)
    case = await cases.get_case(db, identity.client_id, case_id)
    return CaseEnvelope(data=_case_to_response(case), meta=build_meta(request))


@router.post("/{case_id}/ocr", response_model=OcrSubmissionResponse)
async def submit_ocr(
    case_id: str,
    body: OcrSubmissionRequest,
    request: Request,
    identity: ClientIdentity = Depends(get_current_client),
    db: AsyncSession = Depends(get_db),
    cases: CaseService = Depends(get_case_service),
) -> OcrSubmissionResponse:
    """Score OCR line blocks for one side of the case's document."""
    _check_case_scope(identity, case_id)
    outcome = await cases.submit_ocr(
        db,
        identity.client_id,
        case_id,
        [OcrLine(text=line.text, confidence=line.confidence) for line in body.lines],
        complete=body.complete,
    )
    validation = None
    if outcome.validation is not None:
        validation = ValidationVerdict(
            valid=outcome.validation.valid,
            errors=outcome.validation.errors,
            warnings=outcome.validation.warnings,
        )
    return OcrSubmissionResponse(
        case_id=outcome.case.id,
        status=outcome.case.status,
        overall_confidence=outcome.extraction.overall_confidence,
        field_confidence=outcome.extraction.confidence,
        requires_manual_review=outcome.requires_manual_review,
        missing_required_fields=outcome.extraction.missing_required_fields,
        warnings=outcome.warnings,
        validation=validation,
        meta=build_meta(request),
    )


@router.post("/{case_id}/biometric", response_model=BiometricSubmissionResponse)
async def submit_biometric(
    case_id: str,
    body: BiometricSubmissionRequest,
    request: Request,
    identity: ClientIdentity = Depends(get_current_client),
    db: AsyncSession = Depends(get_db),
    cases: CaseService = Depends(get_case_service),
) -> BiometricSubmissionResponse:
    """Record liveness and face-match scores; a failed liveness check auto-rejects."""
    _check_case_scope(identity, case_id)
    outcome = await cases.submit_biometric(
        db,
        identity.client_id,
        case_id,
        BiometricScores(
            liveness_score=body.liveness_score,
            similarity_score=body.similarity_score,
            liveness_passed=body.liveness_passed,
            face_match_passed=body.face_match_passed,
        ),
    )
    summary = outcome.summary
    return BiometricSubmissionResponse(
        case_id=outcome.case.id,
        status=outcome.case.status,
        biometric_summary=BiometricSummaryResponse(
            liveness_score=summary.liveness_score,
            similarity_score=summary.similarity_score,
            overall_score=summary.overall_score,
            passed=summary.passed,
            requires_manual_review=summary.requires_manual_review,
        ),
        requires_manual_review=outcome.case.requires_manual_review,
        rejection_code=outcome.case.rejection_code,
        meta=build_meta(request),
    )


def _check_case_scope(identity: ClientIdentity, case_id: str) -> None:
    if identity.case_id is not None and identity.case_id != case_id:
        raise PermissionDenied("Session token is not valid for this case")


def _case_to_response(case: VerificationCase) -> CaseResponse:
    return CaseResponse(
        case_id=case.id,
        status=case.status,
        document_type=case.document_type,
        customer=CustomerResponse(
            name=case.customer_name,
            email=case.customer_email,
            phone=case.customer_phone,
        ),
        document_number=mask_identifier(document_identifier(case)),
        extracted_data=mask_extracted_fields(case.extracted_data),
        field_confidence=case.field_confidence or {},
        overall_confidence=case.overall_confidence,
        requires_manual_review=case.requires_manual_review,
        warnings=case.extraction_warnings or [],
        biometric_summary=case.biometric_summary,
        rejection_reason=case.rejection_reason,
        rejection_code=case.rejection_code,
        created_at=as_utc(case.created_at),
        updated_at=as_utc(case.updated_at),
        submitted_at=as_utc(case.submitted_at),
        completed_at=as_utc(case.completed_at),
        expires_at=as_utc(case.expires_at),
    )
