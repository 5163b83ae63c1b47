"""Reviewer decision endpoints — single approve/reject and bulk decisions."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.responses import build_meta
from app.bulk_decision.processor import BulkDecision, BulkDecisionProcessor, BulkDecisionResult
from app.cases.status_service import CaseStatusService
from app.dependencies import (
    Reviewer,
    get_bulk_processor,
    get_case_status_service,
    get_db,
    require_permission,
)
from app.models.base import as_utc
from app.models.verification_case import DECIDABLE_STATUSES, CaseStatus, VerificationCase
from app.schemas.bulk import (
    ApproveCaseRequest,
    BulkDecisionData,
    BulkDecisionRequest,
    BulkDecisionResponse,
    BulkItemResponse,
    BulkSummary,
    CaseDecisionResponse,
    RejectCaseRequest,
)

router = APIRouter()

ALREADY_DECIDED = "Case already decided or invalid status"


@router.post("/bulk-approve", response_model=BulkDecisionResponse, response_model_exclude_none=True)
async def bulk_approve(
    body: BulkDecisionRequest,
    request: Request,
    reviewer: Reviewer = Depends(require_permission("cases:approve")),
    processor: BulkDecisionProcessor = Depends(get_bulk_processor),
) -> BulkDecisionResponse:
    result = await processor.bulk_decide(
        body.case_ids,
        BulkDecision.APPROVE,
        reviewer_id=reviewer.reviewer_id,
        notes=body.notes,
    )
    return _bulk_response(request, result)


@router.post("/bulk-reject", response_model=BulkDecisionResponse, response_model_exclude_none=True)
async def bulk_reject(
    body: BulkDecisionRequest,
    request: Request,
    reviewer: Reviewer = Depends(require_permission("cases:reject")),
    processor: BulkDecisionProcessor = Depends(get_bulk_processor),
) -> BulkDecisionResponse:
    result = await processor.bulk_decide(
        body.case_ids,
        BulkDecision.REJECT,
        reviewer_id=reviewer.reviewer_id,
        reason=body.reason,
        notes=body.notes,
    )
    return _bulk_response(request, result)


@router.post("/{case_id}/approve", response_model=CaseDecisionResponse)
async def approve_case(
    case_id: str,
    body: ApproveCaseRequest,
    request: Request,
    reviewer: Reviewer = Depends(require_permission("cases:approve")),
    db: AsyncSession = Depends(get_db),
    status_service: CaseStatusService = Depends(get_case_status_service),
) -> CaseDecisionResponse:
    case = await status_service.update_status(
        db,
        case_id,
        CaseStatus.APPROVED,
        extra={"decided_by": reviewer.reviewer_id, "decision_notes": body.notes},
        actor=reviewer.reviewer_id,
        actor_type="user",
        allowed_from=DECIDABLE_STATUSES,
        conflict_message=ALREADY_DECIDED,
    )
    return _decision_response(request, case)


@router.post("/{case_id}/reject", response_model=CaseDecisionResponse)
async def reject_case(
    case_id: str,
    body: RejectCaseRequest,
    request: Request,
    reviewer: Reviewer = Depends(require_permission("cases:reject")),
    db: AsyncSession = Depends(get_db),
    status_service: CaseStatusService = Depends(get_case_status_service),
) -> CaseDecisionResponse:
    case = await status_service.update_status(
        db,
        case_id,
        CaseStatus.REJECTED,
        extra={
            "decided_by": reviewer.reviewer_id,
            "rejection_reason": body.reason,
            "rejection_code": body.reason,
            "decision_notes": body.notes,
        },
        actor=reviewer.reviewer_id,
        actor_type="user",
        allowed_from=DECIDABLE_STATUSES,
        conflict_message=ALREADY_DECIDED,
    )
    return _decision_response(request, case)


def _decision_response(request: Request, case: VerificationCase) -> CaseDecisionResponse:
    return CaseDecisionResponse(
        case_id=case.id,
        status=case.status,
        completed_at=as_utc(case.completed_at),
        meta=build_meta(request),
    )


def _bulk_response(request: Request, result: BulkDecisionResult) -> BulkDecisionResponse:
    return BulkDecisionResponse(
        data=BulkDecisionData(
            results=[
                BulkItemResponse(case_id=r.case_id, success=r.success, error=r.error)
                for r in result.results
            ],
            summary=BulkSummary(**result.summary),
        ),
        meta=build_meta(request, bulk_operation_id=result.bulk_operation_id),
    )
