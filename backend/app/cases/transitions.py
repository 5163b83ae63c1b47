"""Case status transition table — pure data and lookups, no DB."""

from app.models.verification_case import TERMINAL_STATUSES, CaseStatus

S = CaseStatus

ALLOWED_TRANSITIONS: dict[CaseStatus, frozenset[CaseStatus]] = {
    S.CREATED: frozenset({
        S.DOCUMENTS_UPLOADING, S.DOCUMENTS_COMPLETE, S.SUBMITTED, S.PROCESSING,
        S.PENDING_REVIEW, S.EXPIRED,
    }),
    S.DOCUMENTS_UPLOADING: frozenset({
        S.DOCUMENTS_COMPLETE, S.SUBMITTED, S.PROCESSING, S.PENDING_REVIEW, S.EXPIRED,
    }),
    S.DOCUMENTS_COMPLETE: frozenset({S.SUBMITTED, S.PROCESSING, S.PENDING_REVIEW, S.EXPIRED}),
    S.SUBMITTED: frozenset({S.PROCESSING, S.PENDING_REVIEW, S.IN_REVIEW, S.EXPIRED}),
    S.PROCESSING: frozenset({
        S.PENDING_REVIEW, S.IN_REVIEW, S.APPROVED, S.REJECTED, S.AUTO_REJECTED,
        S.RESUBMISSION_REQUIRED, S.EXPIRED,
    }),
    S.PENDING_REVIEW: frozenset({
        S.IN_REVIEW, S.APPROVED, S.REJECTED, S.AUTO_REJECTED, S.RESUBMISSION_REQUIRED,
        S.EXPIRED,
    }),
    S.IN_REVIEW: frozenset({
        S.PENDING_REVIEW, S.APPROVED, S.REJECTED, S.AUTO_REJECTED, S.RESUBMISSION_REQUIRED,
        S.EXPIRED,
    }),
    S.RESUBMISSION_REQUIRED: frozenset({
        S.DOCUMENTS_UPLOADING, S.DOCUMENTS_COMPLETE, S.SUBMITTED, S.PROCESSING,
        S.PENDING_REVIEW, S.EXPIRED,
    }),
    # Terminal statuses are immutable
    S.APPROVED: frozenset(),
    S.REJECTED: frozenset(),
    S.AUTO_REJECTED: frozenset(),
    S.EXPIRED: frozenset(),
}


def is_terminal(status: CaseStatus | str) -> bool:
    return CaseStatus(status) in TERMINAL_STATUSES


def can_transition(current: CaseStatus | str, new: CaseStatus | str) -> bool:
    return CaseStatus(new) in ALLOWED_TRANSITIONS[CaseStatus(current)]
