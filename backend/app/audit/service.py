"""AuditService — immutable append-only audit log.

Static methods so any module can call AuditService.log_event() directly
without DI wiring.
"""

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit import AuditEvent


class AuditService:
    """Static audit event logger and query interface."""

    @staticmethod
    async def log_event(
        db: AsyncSession,
        *,
        event_type: str,
        entity_type: str | None = None,
        entity_id: str | None = None,
        action: str | None = None,
        actor: str = "system",
        actor_type: str = "system",
        event_data: dict | None = None,
        previous_state: dict | None = None,
        new_state: dict | None = None,
        rationale: str | None = None,
        ip_address: str | None = None,
    ) -> AuditEvent:
        """Append an immutable audit event."""
        event = AuditEvent(
            id=uuid.uuid4(),
            event_type=event_type,
            event_data=event_data,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action or event_type,
            actor=actor,
            actor_type=actor_type,
            previous_state=previous_state,
            new_state=new_state,
            rationale=rationale,
            ip_address=ip_address,
        )
        db.add(event)
        await db.flush()
        return event

    @staticmethod
    async def get_events(
        db: AsyncSession,
        *,
        entity_type: str | None = None,
        entity_id: str | None = None,
        event_type: str | None = None,
        page: int = 1,
        per_page: int = 50,
    ) -> tuple[list[AuditEvent], int]:
        """Query audit events with filtering and pagination."""
        query = select(AuditEvent)
        count_query = select(func.count(AuditEvent.id))

        if entity_type:
            query = query.where(AuditEvent.entity_type == entity_type)
            count_query = count_query.where(AuditEvent.entity_type == entity_type)
        if entity_id:
            query = query.where(AuditEvent.entity_id == entity_id)
            count_query = count_query.where(AuditEvent.entity_id == entity_id)
        if event_type:
            query = query.where(AuditEvent.event_type == event_type)
            count_query = count_query.where(AuditEvent.event_type == event_type)

        total = (await db.execute(count_query)).scalar_one()

        offset = (page - 1) * per_page
        query = query.order_by(AuditEvent.created_at.desc()).offset(offset).limit(per_page)
        result = await db.execute(query)
        events = list(result.scalars().all())

        return events, total

