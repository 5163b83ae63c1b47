"""Document rule checks — pure functions, no DB or service dependencies.

Each check returns a result object rather than raising; callers combine them
with combine_results().
"""

from dataclasses import dataclass, field
from datetime import date, datetime

DATE_FORMAT = "%d/%m/%Y"


@dataclass
class CheckResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class ExpiryCheckResult(CheckResult):
    expired: bool = False
    expired_days: int | None = None
    days_until_expiry: int | None = None


def validate_identifier(
    value: str | None,
    *,
    length: int = 9,
    label: str = "Omang number",
) -> CheckResult:
    """Document number must be exactly `length` ASCII digits.

    Composition is checked before length so "12345678A" reports the
    numeric error, not a misleading length error.
    """
    if not value:
        return CheckResult(valid=False, errors=[f"{label} must be exactly {length} digits"])
    if not (value.isascii() and value.isdigit()):
        return CheckResult(valid=False, errors=[f"{label} must be numeric only"])
    if len(value) != length:
        return CheckResult(valid=False, errors=[f"{label} must be exactly {length} digits"])
    return CheckResult(valid=True)


def parse_document_date(value: str) -> date | None:
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).date()
    except ValueError:
        return None


def add_years(value: date, years: int) -> date:
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        # 29 February rolls to 1 March in a non-leap target year
        return date(value.year + years, 3, 1)


def validate_expiry(
    issue_date: str | None,
    expiry_date: str | None,
    *,
    today: date,
    validity_years: int = 10,
    tolerance_days: int = 1,
    warning_days: int = 30,
) -> ExpiryCheckResult:
    if not issue_date or not expiry_date:
        return ExpiryCheckResult(valid=False, errors=["Issue date and expiry date are required"])

    issued = parse_document_date(issue_date)
    expires = parse_document_date(expiry_date)
    if issued is None or expires is None:
        return ExpiryCheckResult(
            valid=False, errors=["Invalid date format - dates must be in DD/MM/YYYY format"]
        )

    if issued > today:
        return ExpiryCheckResult(valid=False, errors=["Issue date cannot be in the future"])

    if expires < issued:
        return ExpiryCheckResult(valid=False, errors=["Expiry date cannot be before issue date"])

    expected = add_years(issued, validity_years)
    if abs((expires - expected).days) > tolerance_days:
        return ExpiryCheckResult(
            valid=False,
            errors=[f"Expiry date does not match {validity_years}-year validity period"],
        )

    if expires < today:
        expired_days = (today - expires).days
        return ExpiryCheckResult(
            valid=False,
            errors=["Document has expired"],
            expired=True,
            expired_days=expired_days,
        )

    days_until_expiry = (expires - today).days
    warnings = []
    if days_until_expiry <= warning_days:
        warnings.append(f"Document expires soon (in {days_until_expiry} days)")

    return ExpiryCheckResult(valid=True, warnings=warnings, days_until_expiry=days_until_expiry)


def combine_results(*results: CheckResult) -> CheckResult:
    """Valid only if every check passed; warnings never affect validity."""
    return CheckResult(
        valid=all(r.valid for r in results),
        errors=[e for r in results for e in r.errors],
        warnings=[w for r in results for w in r.warnings],
    )
