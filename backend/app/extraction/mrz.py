"""Machine-readable zone parsing for TD3 passports (two 44-character lines)."""

import re
from dataclasses import dataclass, field

_MRZ_LINE = re.compile(r"^[A-Z0-9<]+$")
_LINE1 = re.compile(r"^P<([A-Z]{3})([A-Z<]+)$")

_MONTHS = ("JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC")
_CHECK_WEIGHTS = (7, 3, 1)

# Fields read from the MRZ are machine-printed; trust them over OCR'd visual text
MRZ_FIELD_CONFIDENCE = 95.0


@dataclass
class MRZResult:
    line1: str
    line2: str
    check_digits_valid: bool
    fields: dict[str, str] = field(default_factory=dict)


def _char_value(char: str) -> int:
    if char.isdigit():
        return int(char)
    if "A" <= char <= "Z":
        return ord(char) - ord("A") + 10
    return 0


def check_digit_valid(data: str, check_digit: str) -> bool:
    total = sum(_char_value(c) * _CHECK_WEIGHTS[i % 3] for i, c in enumerate(data.upper()))
    return str(total % 10) == check_digit


def format_mrz_date(value: str) -> str:
    """YYMMDD -> 'DD MMM YY', matching the visual-zone date style."""
    if len(value) != 6:
        return value
    year, month, day = value[0:2], value[2:4], value[4:6]
    try:
        month_name = _MONTHS[int(month) - 1]
    except (ValueError, IndexError):
        month_name = month
    return f"{day} {month_name} {year}"


def parse_mrz(lines: list[str]) -> MRZResult | None:
    candidates = []
    for text in lines:
        compact = re.sub(r"\s", "", text)
        if len(compact) >= 40 and _MRZ_LINE.match(compact):
            candidates.append(compact)
    if len(candidates) < 2:
        return None

    line1, line2 = candidates[0], candidates[1]
    fields: dict[str, str] = {}
    check_digits_valid = True

    match = _LINE1.match(line1)
    if match:
        fields["countryCode"] = match.group(1)
        surname, _, given = match.group(2).partition("<<")
        fields["surname"] = re.sub(r"<+", " ", surname).strip()
        fields["forenames"] = re.sub(r"<+", " ", given).strip()

    if len(line2) >= 44:
        passport_number = line2[0:9]
        dob = line2[13:19]
        sex = line2[20]
        expiry = line2[21:27]

        fields["passportNumber"] = passport_number.rstrip("<")
        fields["countryCode"] = line2[10:13]
        fields["dateOfBirth"] = format_mrz_date(dob)
        if sex in ("M", "F"):
            fields["sex"] = sex
        fields["dateOfExpiry"] = format_mrz_date(expiry)
        fields["personalNumber"] = line2[28:42].rstrip("<")

        check_digits_valid = (
            check_digit_valid(passport_number, line2[9])
            and check_digit_valid(dob, line2[19])
            and check_digit_valid(expiry, line2[27])
        )

    return MRZResult(line1=line1, line2=line2, check_digits_valid=check_digits_valid, fields=fields)
