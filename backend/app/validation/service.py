"""DocumentValidationService — applies jurisdiction rules to extracted fields."""

from dataclasses import dataclass
from datetime import date, datetime, timezone

from app.config import Settings
from app.validation.rules import (
    CheckResult,
    ExpiryCheckResult,
    combine_results,
    validate_expiry,
    validate_identifier,
)


@dataclass
class DocumentValidationResult:
    identifier: CheckResult
    expiry: ExpiryCheckResult
    overall: CheckResult


class DocumentValidationService:
    def __init__(self, settings: Settings):
        self.identifier_length = settings.identifier_length
        self.validity_years = settings.document_validity_years
        self.tolerance_days = settings.expiry_tolerance_days
        self.warning_days = settings.expiry_warning_days

    def validate_identifier(self, value: str | None, *, label: str = "Omang number") -> CheckResult:
        return validate_identifier(value, length=self.identifier_length, label=label)

    def validate_expiry(
        self,
        issue_date: str | None,
        expiry_date: str | None,
        *,
        today: date | None = None,
    ) -> ExpiryCheckResult:
        return validate_expiry(
            issue_date,
            expiry_date,
            today=today or datetime.now(timezone.utc).date(),
            validity_years=self.validity_years,
            tolerance_days=self.tolerance_days,
            warning_days=self.warning_days,
        )

    def validate(
        self,
        *,
        identifier: str | None,
        issue_date: str | None,
        expiry_date: str | None,
        today: date | None = None,
    ) -> DocumentValidationResult:
        identifier_result = self.validate_identifier(identifier)
        expiry_result = self.validate_expiry(issue_date, expiry_date, today=today)
        return DocumentValidationResult(
            identifier=identifier_result,
            expiry=expiry_result,
            overall=combine_results(identifier_result, expiry_result),
        )
