"""CaseService — case intake, reads and OCR result processing.

Creation is gated by the idempotency guard: the (client, key) reservation is
written before the case row, in the same transaction, so a request that loses
the race never creates a second case.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from app.audit.service import AuditService
from app.auth.session_tokens import SessionTokenService
from app.biometrics.scoring import BiometricScores, BiometricSummary, summarize_biometrics
from app.cases.status_service import CaseStatusService
from app.config import Settings
from app.errors import CaseNotFound, IdempotencyConflictError, InvalidStatusTransition
from app.extraction.engine import ExtractionEngine, ExtractionResult, OcrLine
from app.extraction.profiles import get_profile
from app.idempotency.guard import IdempotencyGuard
from app.models.base import utcnow
from app.models.verification_case import CaseStatus, VerificationCase
from app.schemas.verification import CreateVerificationRequest
from app.validation.rules import CheckResult, combine_results
from app.validation.service import DocumentValidationService

logger = logging.getLogger("verification.cases")

# Statuses in which document OCR results are still accepted
ACCEPTING_DOCUMENTS = frozenset({
    CaseStatus.CREATED,
    CaseStatus.DOCUMENTS_UPLOADING,
    CaseStatus.DOCUMENTS_COMPLETE,
    CaseStatus.SUBMITTED,
    CaseStatus.PROCESSING,
    CaseStatus.RESUBMISSION_REQUIRED,
})

# Statuses a partial submission moves to documents_uploading
UPLOAD_STAGE = frozenset({
    CaseStatus.CREATED,
    CaseStatus.DOCUMENTS_UPLOADING,
    CaseStatus.RESUBMISSION_REQUIRED,
})

# Statuses in which biometric results are accepted
ACCEPTING_BIOMETRICS = frozenset({CaseStatus.PROCESSING, CaseStatus.PENDING_REVIEW})


@dataclass
class CreatedCase:
    case: VerificationCase
    session_token: str
    sdk_url: str
    idempotent: bool = False


@dataclass
class OcrOutcome:
    case: VerificationCase
    extraction: ExtractionResult
    validation: CheckResult | None
    warnings: list[str]
    requires_manual_review: bool


@dataclass
class BiometricOutcome:
    case: VerificationCase
    summary: BiometricSummary


def new_case_id() -> str:
    return f"ver_{uuid.uuid4().hex}"


class CaseService:
    def __init__(self, settings: Settings, status_service: CaseStatusService):
        self.case_ttl = timedelta(days=settings.case_ttl_days)
        self.guard = IdempotencyGuard(settings)
        self.tokens = SessionTokenService(settings)
        self.extraction = ExtractionEngine(settings)
        self.validation = DocumentValidationService(settings)
        self.biometric_weights = (
            settings.biometric_liveness_weight,
            settings.biometric_similarity_weight,
        )
        self.biometric_threshold = settings.biometric_overall_threshold
        self.status_service = status_service

    async def create_case(
        self,
        db: AsyncSession,
        client_id: str,
        request: CreateVerificationRequest,
    ) -> CreatedCase:
        key = request.idempotency_key
        if key:
            existing_id = await self.guard.check(db, client_id, key)
            if existing_id is not None:
                return await self._replay(db, client_id, existing_id)

        case_id = new_case_id()
        if key:
            try:
                await self.guard.store(db, client_id, key, case_id)
            except IdempotencyConflictError:
                existing_id = await self.guard.check(db, client_id, key)
                if existing_id is None:
                    raise
                return await self._replay(db, client_id, existing_id)

        now = utcnow()
        case = VerificationCase(
            id=case_id,
            client_id=client_id,
            document_type=request.document_type,
            status=CaseStatus.CREATED,
            customer_name=request.customer.name,
            customer_email=request.customer.email,
            customer_phone=request.customer.phone,
            redirect_url=request.redirect_url,
            webhook_url=request.webhook_url,
            case_metadata=request.metadata,
            created_at=now,
            updated_at=now,
            expires_at=now + self.case_ttl,
        )
        db.add(case)
        await db.flush()

        await AuditService.log_event(
            db,
            event_type="CASE_CREATED",
            entity_type="verification_case",
            entity_id=case_id,
            action="create",
            actor=client_id,
            actor_type="client",
            new_state={
                "status": CaseStatus.CREATED.value,
                "documentType": request.document_type.value,
                "idempotencyKey": key,
            },
        )
        await db.commit()

        logger.info("Created case %s for client %s", case_id, client_id)
        token = self.tokens.issue(case_id, client_id, now=now)
        return CreatedCase(case=case, session_token=token, sdk_url=self.tokens.sdk_url(token))

    async def _replay(self, db: AsyncSession, client_id: str, case_id: str) -> CreatedCase:
        case = await self.get_case(db, client_id, case_id)
        logger.info("Idempotent replay for client %s returned case %s", client_id, case_id)
        token = self.tokens.issue(case.id, client_id)
        return CreatedCase(
            case=case,
            session_token=token,
            sdk_url=self.tokens.sdk_url(token),
            idempotent=True,
        )

    async def get_case(self, db: AsyncSession, client_id: str, case_id: str) -> VerificationCase:
        """Load a case owned by client_id; other clients' cases do not exist."""
        case = await db.get(VerificationCase, case_id)
        if case is None or case.client_id != client_id:
            raise CaseNotFound(case_id)
        return case

    async def submit_ocr(
        self,
        db: AsyncSession,
        client_id: str,
        case_id: str,
        lines: list[OcrLine],
        *,
        complete: bool = True,
    ) -> OcrOutcome:
        """Score one batch of OCR lines and move the case along.

        complete=False moves the case to documents_uploading for further
        sides, or leaves the status alone once the case is past that stage.
        Otherwise it goes to pending_review when anything needs a human and
        to processing when it does not.
        """
        case = await self.get_case(db, client_id, case_id)
        current = CaseStatus(case.status)
        if current not in ACCEPTING_DOCUMENTS:
            raise InvalidStatusTransition(f"Case is not accepting documents (status {current.value})")

        extraction = self.extraction.extract(
            case.document_type,
            lines,
            prior_fields=case.extracted_data,
            prior_confidence=case.field_confidence,
        )
        validation = self._validate(case, extraction)

        warnings = list(extraction.warnings)
        requires_review = extraction.requires_manual_review
        if validation is not None:
            if not validation.valid:
                requires_review = True
                warnings.extend(f"VALIDATION:{error}" for error in validation.errors)
            warnings.extend(validation.warnings)

        extra = {
            "extracted_data": extraction.fields,
            "field_confidence": extraction.confidence,
            "overall_confidence": extraction.overall_confidence,
            "requires_manual_review": requires_review,
            "extraction_warnings": warnings,
        }
        if not complete:
            new_status = CaseStatus.DOCUMENTS_UPLOADING if current in UPLOAD_STAGE else current
        else:
            new_status = CaseStatus.PENDING_REVIEW if requires_review else CaseStatus.PROCESSING
            extra["submitted_at"] = utcnow()

        case = await self.status_service.update_status(
            db, case.id, new_status, extra=extra, actor=client_id, actor_type="client",
        )
        return OcrOutcome(
            case=case,
            extraction=extraction,
            validation=validation,
            warnings=warnings,
            requires_manual_review=requires_review,
        )

    def _validate(self, case: VerificationCase, extraction: ExtractionResult) -> CheckResult | None:
        profile = get_profile(case.document_type)
        fields = extraction.fields
        checks = []

        identifier = fields.get(profile.identifier_field)
        if identifier:
            checks.append(
                self.validation.validate_identifier(identifier, label=profile.identifier_label)
            )
        if profile.validates_expiry and fields.get("dateOfIssue") and fields.get("dateOfExpiry"):
            checks.append(self.validation.validate_expiry(fields["dateOfIssue"], fields["dateOfExpiry"]))

        if not checks:
            return None
        return combine_results(*checks)

    async def submit_biometric(
        self,
        db: AsyncSession,
        client_id: str,
        case_id: str,
        scores: BiometricScores,
    ) -> BiometricOutcome:
        """Record liveness and face-match results on a case.

        A failed liveness check auto-rejects the case. Anything else sends it
        to pending_review, flagged for manual review unless the weighted
        score clears the threshold.
        """
        case = await self.get_case(db, client_id, case_id)
        liveness_weight, similarity_weight = self.biometric_weights
        summary = summarize_biometrics(
            scores,
            liveness_weight=liveness_weight,
            similarity_weight=similarity_weight,
            threshold=self.biometric_threshold,
        )

        extra = {"biometric_summary": summary.to_dict()}
        if not scores.liveness_passed:
            new_status = CaseStatus.AUTO_REJECTED
            extra["rejection_reason"] = "Liveness check failed"
            extra["rejection_code"] = "liveness_failed"
        else:
            new_status = CaseStatus.PENDING_REVIEW
            extra["requires_manual_review"] = (
                bool(case.requires_manual_review) or summary.requires_manual_review
            )

        case = await self.status_service.update_status(
            db,
            case.id,
            new_status,
            extra=extra,
            actor=client_id,
            actor_type="client",
            allowed_from=ACCEPTING_BIOMETRICS,
            conflict_message=(
                f"Case is not accepting biometric results (status {CaseStatus(case.status).value})"
            ),
        )
        logger.info(
            "Biometrics for case %s: overall %.2f, passed=%s",
            case.id, summary.overall_score, summary.passed,
        )
        return BiometricOutcome(case=case, summary=summary)
