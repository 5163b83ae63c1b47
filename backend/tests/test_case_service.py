"""Tests for CaseService OCR staging, identifier labels and biometric routing."""

import pytest

from app.biometrics.scoring import BiometricScores, summarize_biometrics
from app.cases.service import CaseService
from app.cases.status_service import CaseStatusService
from app.errors import InvalidStatusTransition
from app.extraction.engine import OcrLine
from app.models.verification_case import CaseStatus, DocumentType, VerificationCase


@pytest.fixture
def cases(test_settings):
    return CaseService(test_settings, CaseStatusService())


def _scores(liveness=95.0, similarity=90.0, liveness_passed=True, face_match_passed=True):
    return BiometricScores(
        liveness_score=liveness,
        similarity_score=similarity,
        liveness_passed=liveness_passed,
        face_match_passed=face_match_passed,
    )


class TestPartialOcr:
    FRONT = [
        OcrLine("ID NUMBER: 059016012", 98.0),
        OcrLine("SURNAME: MOEPSWA", 96.0),
    ]

    async def test_new_case_moves_to_uploading(self, db_session, make_case, cases):
        case = await make_case(status=CaseStatus.CREATED)

        outcome = await cases.submit_ocr(db_session, "client_a", case.id, self.FRONT, complete=False)

        assert outcome.case.status == CaseStatus.DOCUMENTS_UPLOADING
        assert outcome.case.submitted_at is None

    async def test_processing_case_keeps_status_and_merges(self, db_session, make_case, cases):
        case = await make_case(status=CaseStatus.PROCESSING, extracted_data={"sex": "M"})

        outcome = await cases.submit_ocr(db_session, "client_a", case.id, self.FRONT, complete=False)

        assert outcome.case.status == CaseStatus.PROCESSING
        stored = await db_session.get(VerificationCase, case.id)
        assert stored.extracted_data["sex"] == "M"
        assert stored.extracted_data["surname"] == "MOEPSWA"

    async def test_review_case_does_not_accept_documents(self, db_session, make_case, cases):
        case = await make_case(status=CaseStatus.IN_REVIEW)

        with pytest.raises(InvalidStatusTransition):
            await cases.submit_ocr(db_session, "client_a", case.id, self.FRONT, complete=False)


class TestIdentifierLabel:
    MRZ_1 = "P<BWAMOEPSWA<<MOTLOTLEGI<EDMOND<POLOKO<<<<<<"
    # Eight-digit personal number
    MRZ_2 = "BN02215460BWA9408252M220104105901601<<<<<<84"

    async def test_passport_errors_name_personal_number(self, db_session, make_case, cases):
        case = await make_case(status=CaseStatus.CREATED, document_type=DocumentType.PASSPORT)

        outcome = await cases.submit_ocr(
            db_session,
            "client_a",
            case.id,
            [OcrLine(self.MRZ_1, 90.0), OcrLine(self.MRZ_2, 90.0)],
        )

        assert outcome.extraction.fields["personalNumber"] == "05901601"
        assert outcome.validation.errors == ["Personal number must be exactly 9 digits"]
        assert not any("Omang" in warning for warning in outcome.warnings)


class TestBiometricScoring:
    def test_weighted_overall(self):
        summary = summarize_biometrics(_scores(liveness=95, similarity=90))

        assert summary.overall_score == 91.5
        assert summary.passed is True
        assert summary.requires_manual_review is False

    def test_below_threshold_needs_review(self):
        summary = summarize_biometrics(_scores(liveness=70, similarity=75))

        assert summary.overall_score == 73.5
        assert summary.passed is False
        assert summary.requires_manual_review is True

    def test_failed_face_match_never_passes(self):
        summary = summarize_biometrics(_scores(liveness=99, similarity=99, face_match_passed=False))
        assert summary.passed is False

    def test_custom_weights(self):
        summary = summarize_biometrics(
            _scores(liveness=100, similarity=50),
            liveness_weight=0.5,
            similarity_weight=0.5,
            threshold=75,
        )
        assert summary.overall_score == 75.0
        assert summary.passed is True

    def test_summary_keys(self):
        summary = summarize_biometrics(_scores())
        assert set(summary.to_dict()) == {
            "livenessScore", "similarityScore", "overallScore", "passed", "requiresManualReview",
        }


class TestSubmitBiometric:
    async def test_passing_scores_merge_summary(self, db_session, make_case, cases):
        case = await make_case(
            status=CaseStatus.PROCESSING,
            biometric_summary={"provider": "selfie-sdk"},
        )

        outcome = await cases.submit_biometric(db_session, "client_a", case.id, _scores())

        assert outcome.case.status == CaseStatus.PENDING_REVIEW
        assert outcome.case.requires_manual_review is False
        assert outcome.case.biometric_summary["provider"] == "selfie-sdk"
        assert outcome.case.biometric_summary["overallScore"] == 91.5

    async def test_low_score_flags_manual_review(self, db_session, make_case, cases):
        case = await make_case(status=CaseStatus.PROCESSING)

        outcome = await cases.submit_biometric(
            db_session, "client_a", case.id, _scores(liveness=60, similarity=60),
        )

        assert outcome.case.status == CaseStatus.PENDING_REVIEW
        assert outcome.case.requires_manual_review is True

    async def test_earlier_review_flag_is_kept(self, db_session, make_case, cases):
        case = await make_case(status=CaseStatus.PENDING_REVIEW, requires_manual_review=True)

        outcome = await cases.submit_biometric(db_session, "client_a", case.id, _scores())

        assert outcome.case.requires_manual_review is True

    async def test_failed_liveness_auto_rejects(self, db_session, make_case, cases):
        case = await make_case(status=CaseStatus.PENDING_REVIEW)

        outcome = await cases.submit_biometric(
            db_session, "client_a", case.id, _scores(liveness=15, liveness_passed=False),
        )

        assert outcome.case.status == CaseStatus.AUTO_REJECTED
        assert outcome.case.rejection_code == "liveness_failed"
        assert outcome.case.rejection_reason == "Liveness check failed"
        assert outcome.case.completed_at is not None

    async def test_decided_case_rejects_biometrics(self, db_session, make_case, cases):
        case = await make_case(status=CaseStatus.APPROVED)

        with pytest.raises(InvalidStatusTransition, match="not accepting biometric results"):
            await cases.submit_biometric(db_session, "client_a", case.id, _scores())
