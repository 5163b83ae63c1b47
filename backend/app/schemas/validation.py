"""Pydantic schemas for document rule validation."""

from pydantic import Field

from app.schemas.common import CamelModel


class DocumentValidationRequest(CamelModel):
    identifier: str | None = None
    issue_date: str | None = Field(default=None, description="DD/MM/YYYY")
    expiry_date: str | None = Field(default=None, description="DD/MM/YYYY")


class ValidationVerdict(CamelModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ExpiryVerdict(ValidationVerdict):
    expired: bool = False
    expired_days: int | None = None
    days_until_expiry: int | None = None


class DocumentValidationResponse(CamelModel):
    identifier: ValidationVerdict
    expiry: ExpiryVerdict
    overall: ValidationVerdict
