"""Tests for the case status state machine and webhook hand-off."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy import select

from app.cases.status_service import CaseStatusService
from app.cases.transitions import ALLOWED_TRANSITIONS, can_transition, is_terminal
from app.errors import CaseNotFound, InvalidStatusTransition
from app.models.audit import AuditEvent
from app.models.verification_case import TERMINAL_STATUSES, CaseStatus, VerificationCase
from app.webhooks.payloads import WebhookEvent


class TestTransitionTable:
    def test_every_status_has_an_entry(self):
        assert set(ALLOWED_TRANSITIONS) == set(CaseStatus)

    @pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES))
    def test_terminal_statuses_are_final(self, status):
        assert is_terminal(status)
        assert not any(can_transition(status, target) for target in CaseStatus)

    def test_review_paths(self):
        assert can_transition(CaseStatus.PENDING_REVIEW, CaseStatus.APPROVED)
        assert can_transition(CaseStatus.IN_REVIEW, CaseStatus.REJECTED)
        assert can_transition(CaseStatus.PENDING_REVIEW, CaseStatus.AUTO_REJECTED)
        assert can_transition(CaseStatus.IN_REVIEW, CaseStatus.AUTO_REJECTED)
        assert not can_transition(CaseStatus.CREATED, CaseStatus.APPROVED)

    def test_accepts_plain_strings(self):
        assert can_transition("processing", "approved")
        assert is_terminal("expired")


class TestUpdateStatus:
    async def test_moves_case_and_audits(self, db_session, make_case):
        case = await make_case(status=CaseStatus.PENDING_REVIEW)
        service = CaseStatusService()

        updated = await service.update_status(
            db_session, case.id, CaseStatus.IN_REVIEW, actor="rev_1", actor_type="reviewer",
        )

        assert updated.status == CaseStatus.IN_REVIEW
        assert updated.completed_at is None
        events = (await db_session.execute(
            select(AuditEvent).where(AuditEvent.entity_id == case.id)
        )).scalars().all()
        assert len(events) == 1
        assert events[0].event_type == "CASE_STATUS_CHANGED"
        assert events[0].previous_state == {"status": "pending_review"}
        assert events[0].new_state == {"status": "in_review"}
        assert events[0].actor == "rev_1"

    async def test_terminal_status_sets_completed_at(self, db_session, make_case):
        case = await make_case(status=CaseStatus.PENDING_REVIEW)
        updated = await CaseStatusService().update_status(
            db_session,
            case.id,
            CaseStatus.REJECTED,
            extra={"rejection_reason": "Document is blurry", "rejection_code": "POOR_IMAGE_QUALITY"},
        )
        assert updated.completed_at is not None
        assert updated.rejection_reason == "Document is blurry"
        assert updated.rejection_code == "POOR_IMAGE_QUALITY"

    async def test_unknown_case(self, db_session):
        with pytest.raises(CaseNotFound):
            await CaseStatusService().update_status(db_session, "ver_missing", CaseStatus.APPROVED)

    async def test_terminal_case_is_immutable(self, db_session, make_case):
        case = await make_case(status=CaseStatus.APPROVED)
        with pytest.raises(InvalidStatusTransition):
            await CaseStatusService().update_status(db_session, case.id, CaseStatus.REJECTED)
        with pytest.raises(InvalidStatusTransition):
            await CaseStatusService().update_status(db_session, case.id, CaseStatus.APPROVED)

    async def test_invalid_transition_message(self, db_session, make_case):
        case = await make_case(status=CaseStatus.CREATED)
        with pytest.raises(InvalidStatusTransition) as exc_info:
            await CaseStatusService().update_status(db_session, case.id, CaseStatus.APPROVED)
        assert exc_info.value.message == "Cannot change case status from created to approved"

    async def test_allowed_from_restricts_source(self, db_session, make_case):
        case = await make_case(status=CaseStatus.PROCESSING)
        with pytest.raises(InvalidStatusTransition) as exc_info:
            await CaseStatusService().update_status(
                db_session,
                case.id,
                CaseStatus.APPROVED,
                allowed_from=frozenset({CaseStatus.PENDING_REVIEW}),
                conflict_message="Case already decided or invalid status",
            )
        assert exc_info.value.message == "Case already decided or invalid status"

    async def test_touch_merges_extracted_data(self, db_session, make_case):
        case = await make_case(
            status=CaseStatus.DOCUMENTS_UPLOADING,
            extracted_data={"surname": "MOEPSWA"},
            field_confidence={"surname": 96.0},
        )
        updated = await CaseStatusService().update_status(
            db_session,
            case.id,
            CaseStatus.DOCUMENTS_UPLOADING,
            extra={"extracted_data": {"sex": "M"}, "field_confidence": {"sex": 97.0}},
        )
        assert updated.status == CaseStatus.DOCUMENTS_UPLOADING
        assert updated.extracted_data == {"surname": "MOEPSWA", "sex": "M"}
        assert updated.field_confidence == {"surname": 96.0, "sex": 97.0}

    async def test_unknown_extra_field_rejected(self, db_session, make_case):
        case = await make_case(status=CaseStatus.PENDING_REVIEW)
        with pytest.raises(ValueError):
            await CaseStatusService().update_status(
                db_session, case.id, CaseStatus.IN_REVIEW, extra={"client_id": "someone_else"},
            )

    async def test_concurrent_change_loses(self, db_session, session_factory, make_case):
        case = await make_case(status=CaseStatus.PENDING_REVIEW)
        await db_session.get(VerificationCase, case.id)

        # Another writer decides the case after this session read it
        async with session_factory() as other:
            await CaseStatusService().update_status(other, case.id, CaseStatus.APPROVED)

        with pytest.raises(InvalidStatusTransition):
            await CaseStatusService().update_status(db_session, case.id, CaseStatus.REJECTED)


class TestDispatch:
    async def test_notifiable_transition_dispatches(self, db_session, make_case):
        dispatcher = MagicMock()
        case = await make_case(status=CaseStatus.PENDING_REVIEW)

        await CaseStatusService(dispatcher).update_status(db_session, case.id, CaseStatus.APPROVED)

        dispatcher.dispatch.assert_called_once_with(case.id, WebhookEvent.APPROVED)

    async def test_resubmission_dispatches(self, db_session, make_case):
        dispatcher = MagicMock()
        case = await make_case(status=CaseStatus.IN_REVIEW)

        await CaseStatusService(dispatcher).update_status(
            db_session, case.id, CaseStatus.RESUBMISSION_REQUIRED,
        )

        dispatcher.dispatch.assert_called_once_with(case.id, WebhookEvent.RESUBMISSION_REQUIRED)

    @pytest.mark.parametrize("target", [CaseStatus.IN_REVIEW, CaseStatus.AUTO_REJECTED])
    async def test_other_transitions_do_not_dispatch(self, db_session, make_case, target):
        dispatcher = MagicMock()
        case = await make_case(status=CaseStatus.PROCESSING)

        await CaseStatusService(dispatcher).update_status(db_session, case.id, target)

        dispatcher.dispatch.assert_not_called()

    async def test_dispatch_failure_does_not_fail_update(self, db_session, make_case):
        dispatcher = MagicMock()
        dispatcher.dispatch.side_effect = RuntimeError("event loop closed")
        case = await make_case(status=CaseStatus.PENDING_REVIEW)

        updated = await CaseStatusService(dispatcher).update_status(
            db_session, case.id, CaseStatus.APPROVED,
        )

        assert updated.status == CaseStatus.APPROVED
        stored = await db_session.get(VerificationCase, case.id)
        assert stored.status == CaseStatus.APPROVED
