"""BulkDecisionProcessor — approve or reject many cases in one request.

Each case id is an isolated unit of work with its own session and
transaction: a conditional status write plus its audit entry, retried only
for transient storage errors. A case in the wrong status fails immediately
and is never retried. The processor never raises for per-item failures; it
returns one result per input id, in input order.
"""

import asyncio
import enum
import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.audit.service import AuditService
from app.config import Settings
from app.errors import (
    CaseNotFound,
    ConditionalCheckFailed,
    RequestValidationFailed,
    is_transient_storage_error,
)
from app.models.base import utcnow
from app.models.verification_case import (
    DECIDABLE_STATUSES,
    CaseStatus,
    VerificationCase,
)
from app.notifications.queue import NotificationQueue

logger = logging.getLogger("verification.bulk")


class BulkDecision(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"


_DECISION_STATUS = {
    BulkDecision.APPROVE: CaseStatus.APPROVED,
    BulkDecision.REJECT: CaseStatus.REJECTED,
}
_MESSAGE_TYPE = {
    BulkDecision.APPROVE: "CASE_BULK_APPROVED",
    BulkDecision.REJECT: "CASE_BULK_REJECTED",
}
_NOUN = {
    BulkDecision.APPROVE: "approval",
    BulkDecision.REJECT: "rejection",
}


@dataclass
class BulkItemResult:
    case_id: str
    success: bool
    error: str | None = None


@dataclass
class BulkDecisionResult:
    bulk_operation_id: str
    results: list[BulkItemResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    @property
    def summary(self) -> dict[str, int]:
        return {"total": self.total, "succeeded": self.succeeded, "failed": self.failed}


class BulkDecisionProcessor:
    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        notification_queue: NotificationQueue | None = None,
    ):
        self.max_cases = settings.bulk_max_cases
        self.max_retries = settings.bulk_max_retries
        self.base_delay = settings.bulk_retry_base_delay_ms / 1000
        self.max_concurrency = max(1, settings.bulk_max_concurrency)
        self.session_factory = session_factory
        self.notification_queue = notification_queue

    def validate(
        self,
        case_ids: list[str] | None,
        decision: BulkDecision,
        reason: str | None = None,
    ) -> None:
        """Reject the whole request before any case is touched."""
        if not case_ids:
            raise RequestValidationFailed("caseIds array is required")
        if len(case_ids) > self.max_cases:
            raise RequestValidationFailed(f"Maximum {self.max_cases} cases per bulk operation")
        if decision == BulkDecision.REJECT and not (reason and reason.strip()):
            raise RequestValidationFailed("Rejection reason is required")

    async def bulk_decide(
        self,
        case_ids: list[str],
        decision: BulkDecision,
        *,
        reviewer_id: str,
        reason: str | None = None,
        notes: str | None = None,
    ) -> BulkDecisionResult:
        decision = BulkDecision(decision)
        self.validate(case_ids, decision, reason)

        bulk_operation_id = str(uuid.uuid4())
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(case_id: str) -> BulkItemResult:
            async with semaphore:
                return await self._process_item(
                    case_id,
                    decision,
                    reviewer_id=reviewer_id,
                    reason=reason,
                    notes=notes,
                    bulk_operation_id=bulk_operation_id,
                    total=len(case_ids),
                )

        # gather preserves input order regardless of completion order
        results = await asyncio.gather(*(run(case_id) for case_id in case_ids))
        outcome = BulkDecisionResult(bulk_operation_id=bulk_operation_id, results=list(results))

        logger.info(
            "Bulk %s %s: %d/%d succeeded",
            decision.value, bulk_operation_id, outcome.succeeded, outcome.total,
        )
        return outcome

    async def _process_item(
        self,
        case_id: str,
        decision: BulkDecision,
        *,
        reviewer_id: str,
        reason: str | None,
        notes: str | None,
        bulk_operation_id: str,
        total: int,
    ) -> BulkItemResult:
        try:
            await self._with_retry(
                lambda: self._decide_case(
                    case_id,
                    decision,
                    reviewer_id=reviewer_id,
                    reason=reason,
                    notes=notes,
                    bulk_operation_id=bulk_operation_id,
                    total=total,
                )
            )
        except ConditionalCheckFailed:
            return BulkItemResult(
                case_id=case_id,
                success=False,
                error=f"Case is not in a valid status for {_NOUN[decision]}",
            )
        except CaseNotFound:
            return BulkItemResult(case_id=case_id, success=False, error="Case not found")
        except Exception:
            logger.exception("Bulk %s of case %s failed", decision.value, case_id)
            return BulkItemResult(
                case_id=case_id, success=False, error=f"Failed to {decision.value} case"
            )

        await self._notify(case_id, decision, reviewer_id, reason, notes, bulk_operation_id, total)
        return BulkItemResult(case_id=case_id, success=True)

    async def _with_retry(self, operation):
        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as e:
                if attempt >= self.max_retries or not is_transient_storage_error(e):
                    raise
                delay = self.base_delay * (2 ** attempt)
                logger.warning(
                    "Transient storage error (%s), retry %d/%d in %.2fs",
                    type(e).__name__, attempt + 1, self.max_retries, delay,
                )
                await asyncio.sleep(delay)
                attempt += 1

    async def _decide_case(
        self,
        case_id: str,
        decision: BulkDecision,
        *,
        reviewer_id: str,
        reason: str | None,
        notes: str | None,
        bulk_operation_id: str,
        total: int,
    ) -> None:
        new_status = _DECISION_STATUS[decision]
        now = utcnow()
        values = {
            "status": new_status,
            "decided_by": reviewer_id,
            "decision_notes": notes,
            "updated_at": now,
            "completed_at": now,
        }
        if decision == BulkDecision.REJECT:
            values["rejection_reason"] = reason

        async with self.session_factory() as db:
            result = await db.execute(
                update(VerificationCase)
                .where(
                    VerificationCase.id == case_id,
                    VerificationCase.status.in_(list(DECIDABLE_STATUSES)),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                exists = await db.scalar(
                    select(VerificationCase.id).where(VerificationCase.id == case_id)
                )
                await db.rollback()
                if exists is None:
                    raise CaseNotFound(case_id)
                raise ConditionalCheckFailed(case_id)

            if decision == BulkDecision.APPROVE:
                rationale = f"Bulk approved ({bulk_operation_id})"
            else:
                rationale = f"{reason} (bulk: {bulk_operation_id})"

            await AuditService.log_event(
                db,
                event_type=_MESSAGE_TYPE[decision],
                entity_type="verification_case",
                entity_id=case_id,
                action=decision.value,
                actor=reviewer_id,
                actor_type="user",
                event_data={
                    "bulkOperationId": bulk_operation_id,
                    "totalCasesInBulk": total,
                    "notes": notes,
                },
                new_state={"status": new_status.value},
                rationale=rationale,
            )
            await db.commit()

    async def _notify(
        self,
        case_id: str,
        decision: BulkDecision,
        reviewer_id: str,
        reason: str | None,
        notes: str | None,
        bulk_operation_id: str,
        total: int,
    ) -> None:
        """Best-effort; a failed send never fails the item."""
        if self.notification_queue is None:
            return
        message = {
            "type": _MESSAGE_TYPE[decision],
            "caseId": case_id,
            "userId": reviewer_id,
            "timestamp": utcnow().isoformat(),
            "bulkOperationId": bulk_operation_id,
            "totalCasesInBulk": total,
            "reason": reason,
            "notes": notes,
        }
        try:
            await self.notification_queue.send(message)
        except Exception as e:
            logger.warning("Failed to enqueue notification for case %s: %s", case_id, e)
