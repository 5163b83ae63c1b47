"""Audit log endpoints — query events for a case or event type."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.audit.service import AuditService
from app.dependencies import Reviewer, get_db, require_permission
from app.schemas.audit import AuditEventListResponse, AuditEventResponse

router = APIRouter()


@router.get("/events", response_model=AuditEventListResponse)
async def list_events(
    entity_type: str | None = None,
    entity_id: str | None = None,
    event_type: str | None = None,
    page: int = 1,
    per_page: int = 50,
    db: AsyncSession = Depends(get_db),
    reviewer: Reviewer = Depends(require_permission("audit:read")),
) -> AuditEventListResponse:
    """List audit events with optional filtering."""
    events, total = await AuditService.get_events(
        db,
        entity_type=entity_type,
        entity_id=entity_id,
        event_type=event_type,
        page=page,
        per_page=per_page,
    )
    return AuditEventListResponse(
        events=[AuditEventResponse.model_validate(e) for e in events],
        total=total,
        page=page,
        per_page=per_page,
    )
