"""CaseStatusService — the case status state machine.

update_status() is the only way a case changes status. The write is a
compare-and-set on the status the case was read with; completed_at is set
exactly when the new status is terminal. After the write commits, notifiable
transitions hand off to the webhook dispatcher. Dispatch failures are logged
and never undo or fail the status change.
"""

import logging

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.audit.service import AuditService
from app.cases.transitions import can_transition, is_terminal
from app.errors import CaseNotFound, InvalidStatusTransition
from app.models.base import utcnow
from app.models.verification_case import CaseStatus, VerificationCase
from app.webhooks.dispatcher import WebhookDispatcher
from app.webhooks.payloads import STATUS_EVENTS

logger = logging.getLogger("verification.cases")

# Extra data callers may merge into the case alongside a status change
_MERGED_JSON_FIELDS = ("extracted_data", "field_confidence", "biometric_summary")
_REPLACED_FIELDS = (
    "overall_confidence",
    "requires_manual_review",
    "extraction_warnings",
    "rejection_reason",
    "rejection_code",
    "decision_notes",
    "decided_by",
    "submitted_at",
)


class CaseStatusService:
    def __init__(self, dispatcher: WebhookDispatcher | None = None):
        self.dispatcher = dispatcher

    async def update_status(
        self,
        db: AsyncSession,
        case_id: str,
        new_status: CaseStatus,
        *,
        extra: dict | None = None,
        actor: str = "system",
        actor_type: str = "system",
        allowed_from: frozenset[CaseStatus] | None = None,
        conflict_message: str | None = None,
    ) -> VerificationCase:
        new_status = CaseStatus(new_status)
        case = await db.get(VerificationCase, case_id)
        if case is None:
            raise CaseNotFound(case_id)

        current = CaseStatus(case.status)
        # Re-asserting a non-terminal status only merges data
        touch = new_status == current and not is_terminal(current)
        if not (touch or can_transition(current, new_status)) or (
            allowed_from is not None and current not in allowed_from
        ):
            raise InvalidStatusTransition(
                conflict_message
                or f"Cannot change case status from {current.value} to {new_status.value}"
            )

        now = utcnow()
        values = self._merge_extra(case, extra or {})
        values.update(
            status=new_status,
            updated_at=now,
            completed_at=now if is_terminal(new_status) else None,
        )

        result = await db.execute(
            update(VerificationCase)
            .where(VerificationCase.id == case_id, VerificationCase.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InvalidStatusTransition(
                conflict_message or "Case status changed concurrently; reload and retry"
            )

        await AuditService.log_event(
            db,
            event_type="CASE_STATUS_CHANGED",
            entity_type="verification_case",
            entity_id=case_id,
            action=new_status.value,
            actor=actor,
            actor_type=actor_type,
            previous_state={"status": current.value},
            new_state={"status": new_status.value},
            rationale=values.get("rejection_reason"),
        )
        await db.commit()
        await db.refresh(case)

        logger.info("Case %s: %s -> %s", case_id, current.value, new_status.value)

        event = STATUS_EVENTS.get(new_status)
        if event is not None and not touch and self.dispatcher is not None:
            try:
                self.dispatcher.dispatch(case_id, event)
            except Exception:
                logger.exception("Could not schedule %s webhook for case %s", event.value, case_id)

        return case

    @staticmethod
    def _merge_extra(case: VerificationCase, extra: dict) -> dict:
        unknown = set(extra) - set(_MERGED_JSON_FIELDS) - set(_REPLACED_FIELDS)
        if unknown:
            raise ValueError(f"Unsupported case fields: {', '.join(sorted(unknown))}")

        values = {}
        for name in _MERGED_JSON_FIELDS:
            if extra.get(name):
                values[name] = {**(getattr(case, name) or {}), **extra[name]}
        for name in _REPLACED_FIELDS:
            if name in extra:
                values[name] = extra[name]
        return values
