"""Document profiles — static field tables per document type.

Each profile lists the labelled fields to pull out of the OCR text as
{name, pattern, weight} rows, the fields a complete extraction must contain,
and an optional line heuristic for values printed without a label (name lines
on a driving licence, the locality line on the back of an Omang).
"""

import re
from dataclasses import dataclass, field

from app.models.verification_case import DocumentType

_I = re.IGNORECASE

DEFAULT_FIELD_WEIGHT = 1.0


@dataclass(frozen=True)
class FieldPattern:
    name: str
    pattern: re.Pattern
    weight: float = DEFAULT_FIELD_WEIGHT
    # 0 keeps the whole match instead of a capture group
    group: int = 1


@dataclass(frozen=True)
class LineHeuristic:
    """Assign unlabelled lines to fields in document order.

    A line qualifies when it is longer than two characters, consists only of
    letters and spaces, and matches none of the excluded terms.
    """

    fields: tuple[str, ...]
    exclude: re.Pattern
    weights: dict[str, float] = field(default_factory=dict)
    # Test the line as printed rather than upper-cased
    case_sensitive: bool = True


@dataclass(frozen=True)
class DocumentProfile:
    document_type: DocumentType
    fields: tuple[FieldPattern, ...]
    required_fields: tuple[str, ...]
    identifier_field: str
    # Name used in validation messages
    identifier_label: str = "Omang number"
    line_heuristic: LineHeuristic | None = None
    parse_mrz: bool = False
    # Issue/expiry dates are DD/MM/YYYY and follow the fixed validity period
    validates_expiry: bool = False

    @property
    def weights(self) -> dict[str, float]:
        weights = {f.name: f.weight for f in self.fields}
        if self.line_heuristic is not None:
            weights.update(self.line_heuristic.weights)
        return weights


NATIONAL_ID = DocumentProfile(
    document_type=DocumentType.OMANG,
    fields=(
        # Front
        FieldPattern("surname", re.compile(r"SURNAME:?\s*([A-Z\s]+?)(?:\n|$)", _I), 1.5),
        FieldPattern("forenames", re.compile(r"FORENAMES?:?\s*([A-Z\s]+?)(?:\n|$)", _I), 1.5),
        FieldPattern("idNumber", re.compile(r"ID\s+NUMBER:?\s*(\d{9})", _I), 2.0),
        FieldPattern("dateOfBirth", re.compile(r"DATE\s+OF\s+BIRTH:?\s*(\d{2}/\d{2}/\d{4})", _I), 1.0),
        FieldPattern("placeOfBirth", re.compile(r"PLACE\s+OF\s+BIRTH:?\s*([A-Z\s]+?)(?:\n|$)", _I), 0.5),
        # Back
        FieldPattern("nationality", re.compile(r"NATIONALITY:?\s*([A-Z\s]+?)(?:\n|$)", _I), 0.5),
        FieldPattern("sex", re.compile(r"SEX:?\s*([MF])", _I), 0.5),
        FieldPattern("colourOfEyes", re.compile(r"COLOUR\s+OF\s+EYES:?\s*([A-Z\s]+?)(?:\n|$)", _I), 0.3),
        FieldPattern("dateOfIssue", re.compile(r"DATE\s+OF\s+ISSUE:?\s*(\d{2}/\d{2}/\d{4})", _I), 0.5),
        FieldPattern("dateOfExpiry", re.compile(r"DATE\s+OF\s+EXPIRY:?\s*(\d{2}/\d{2}/\d{4})", _I), 0.5),
        FieldPattern(
            "placeOfApplication",
            re.compile(r"PLACE\s+OF\s+APPLICATION:?\s*([A-Z\s]+?)(?:\n|$)", _I),
            0.3,
        ),
        FieldPattern("plot", re.compile(r"PLOT\s+(\d+[A-Z]?)", _I), 0.3),
        FieldPattern("district", re.compile(r"(.*?)\s+DISTRICT", _I), 0.3, group=0),
    ),
    required_fields=("idNumber", "surname", "forenames", "dateOfBirth", "dateOfExpiry", "sex"),
    identifier_field="idNumber",
    validates_expiry=True,
    line_heuristic=LineHeuristic(
        fields=("locality",),
        exclude=re.compile(
            r"ADDRESS|PLOT\s+\d+|DISTRICT|NATIONALITY|SEX|COLOUR|DATE|PLACE OF APPLICATION"
            r"|REPUBLIC|BOTSWANA|NATIONAL IDENTITY"
        ),
        weights={"locality": 0.3},
        case_sensitive=False,
    ),
)

DRIVERS_LICENCE = DocumentProfile(
    document_type=DocumentType.DRIVERS_LICENCE,
    fields=(
        FieldPattern("omangNumber", re.compile(r"ID:?\s*Omang\s*(\d{9})", _I), 2.0),
        FieldPattern("gender", re.compile(r"Gender:?\s*([MF])", _I), 0.5),
        FieldPattern("dateOfBirth", re.compile(r"Date\s+of\s+Birth:?\s*(\d{2}/\d{2}/\d{4})", _I), 1.0),
        FieldPattern("licenceNumber", re.compile(r"Licence\s+Number:?\s*(\d+)", _I), 1.5),
        FieldPattern("licenceClass", re.compile(r"Class\s+([A-Z0-9]+)", _I), 1.0),
        FieldPattern(
            "validityStart",
            re.compile(r"Validity\s+Period:?\s*([A-Za-z]+\s+\d{4})\s*-\s*([A-Za-z]+\s+\d{4})", _I),
            0.5,
        ),
        FieldPattern(
            "validityEnd",
            re.compile(r"Validity\s+Period:?\s*([A-Za-z]+\s+\d{4})\s*-\s*([A-Za-z]+\s+\d{4})", _I),
            0.5,
            group=2,
        ),
        FieldPattern("firstIssue", re.compile(r"First\s+Issue:?\s*(\d{2}/\d{2}/\d{4})", _I), 0.3),
        FieldPattern(
            "driverRestriction",
            re.compile(r"Driver\s+Restriction:?\s*([A-Za-z0-9]+)", _I),
            0.3,
        ),
        FieldPattern(
            "vehicleRestriction",
            re.compile(r"Vehicle\s+Restriction:?\s*([A-Za-z0-9]+)", _I),
            0.3,
        ),
        FieldPattern("endorsement", re.compile(r"Endorsement:?\s*(Yes|No)", _I), 0.3),
    ),
    required_fields=(
        "omangNumber", "surname", "forenames", "dateOfBirth", "licenceNumber",
        "licenceClass", "validityStart", "validityEnd", "gender",
    ),
    identifier_field="omangNumber",
    line_heuristic=LineHeuristic(
        fields=("surname", "forenames"),
        exclude=re.compile(r"REPUBLIC|BOTSWANA|DRIVING|LICENCE|SADC"),
        weights={"surname": 1.5, "forenames": 1.5},
    ),
)

_BILINGUAL_DATE = r"(\d{2}\s+[A-Z]+/?[A-Z]+\s+\d{2})"

PASSPORT = DocumentProfile(
    document_type=DocumentType.PASSPORT,
    fields=(
        FieldPattern("type", re.compile(r"Type/?Type:?\s*([A-Z])", _I), 0.3),
        FieldPattern("countryCode", re.compile(r"Code/?Code:?\s*([A-Z]{3})", _I), 0.3),
        FieldPattern(
            "passportNumber",
            re.compile(r"Passport\s+No\.?/?N°\s*de\s*passeport:?\s*([A-Z0-9]+)", _I),
            2.0,
        ),
        FieldPattern("surname", re.compile(r"Surname/?Nom:?\s*([A-Z\s]+?)(?:\n|$)", _I), 1.5),
        FieldPattern(
            "forenames",
            re.compile(r"Given\s+names?/?Pr[ée]noms?:?\s*([A-Z\s]+?)(?:\n|$)", _I),
            1.5,
        ),
        FieldPattern("nationality", re.compile(r"Nationality/?Nationalit[ée]:?\s*([A-Z]+)", _I), 0.5),
        FieldPattern(
            "dateOfBirth",
            re.compile(r"Date\s+of\s+birth/?Date\s+de\s+naissance:?\s*" + _BILINGUAL_DATE, _I),
            1.0,
        ),
        FieldPattern("sex", re.compile(r"Sex/?Sexe:?\s*([MF])", _I), 0.5),
        FieldPattern(
            "placeOfBirth",
            re.compile(r"Place\s+of\s+birth/?Lieu\s+de\s+naissance:?\s*([A-Z\s]+?)(?:\n|$)", _I),
            0.5,
        ),
        FieldPattern(
            "personalNumber",
            re.compile(r"Personal\s+No\.?/?N°\s*personnel:?\s*(\d{9})", _I),
            2.0,
        ),
        FieldPattern(
            "dateOfIssue",
            re.compile(r"Date\s+of\s+issue/?Date\s+de\s+d[ée]livrance:?\s*" + _BILINGUAL_DATE, _I),
            0.5,
        ),
        FieldPattern(
            "dateOfExpiry",
            re.compile(r"Date\s+of\s+expiry/?Date\s+d['’]?expiration:?\s*" + _BILINGUAL_DATE, _I),
            1.0,
        ),
        FieldPattern(
            "authority",
            re.compile(r"Authority/?Autorit[ée]:?\s*([A-Z\s\-]+?)(?:\n|$)", _I),
            0.3,
        ),
    ),
    required_fields=(
        "passportNumber", "surname", "forenames", "dateOfBirth", "dateOfExpiry", "nationality", "sex",
    ),
    identifier_field="personalNumber",
    identifier_label="Personal number",
    parse_mrz=True,
)

PROFILES: dict[DocumentType, DocumentProfile] = {
    DocumentType.OMANG: NATIONAL_ID,
    DocumentType.PASSPORT: PASSPORT,
    DocumentType.DRIVERS_LICENCE: DRIVERS_LICENCE,
    # Other national id cards share the Omang layout
    DocumentType.ID_CARD: NATIONAL_ID,
}


def get_profile(document_type: DocumentType | str) -> DocumentProfile:
    return PROFILES[DocumentType(document_type)]
