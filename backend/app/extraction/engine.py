"""ExtractionEngine — OCR line blocks to structured, confidence-scored fields.

All line texts are joined into one searchable document and every pattern in
the document's profile is run against it. A field's confidence is that of the
OCR line the match came from. Overall confidence is a weighted mean over the
fields actually found; absent fields never dilute it.
"""

import logging
import re
from dataclasses import dataclass, field

from app.config import Settings
from app.extraction.mrz import MRZ_FIELD_CONFIDENCE, parse_mrz
from app.extraction.profiles import DEFAULT_FIELD_WEIGHT, DocumentProfile, LineHeuristic, get_profile
from app.models.verification_case import DocumentType

logger = logging.getLogger("verification.extraction")

_NAME_LINE = re.compile(r"^[A-Z\s]+$")


@dataclass
class OcrLine:
    text: str
    confidence: float = 0.0


@dataclass
class ExtractionResult:
    document_type: DocumentType
    fields: dict[str, str] = field(default_factory=dict)
    confidence: dict[str, float] = field(default_factory=dict)
    overall_confidence: float = 0.0
    missing_required_fields: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    requires_manual_review: bool = False


def find_line_confidence(lines: list[OcrLine], matched_text: str) -> float:
    """Confidence of the first line containing, or contained by, the match."""
    for line in lines:
        if line.text in matched_text or matched_text in line.text:
            return line.confidence
    return 0.0


def weighted_confidence(confidence: dict[str, float], weights: dict[str, float]) -> float:
    total_score = 0.0
    total_weight = 0.0
    for name, score in confidence.items():
        if score and score > 0:
            weight = weights.get(name, DEFAULT_FIELD_WEIGHT)
            total_score += score * weight
            total_weight += weight
    return total_score / total_weight if total_weight > 0 else 0.0


class ExtractionEngine:
    def __init__(self, settings: Settings):
        self.low_confidence_threshold = settings.ocr_low_confidence_threshold

    def extract(
        self,
        document_type: DocumentType | str,
        lines: list[OcrLine],
        *,
        prior_fields: dict[str, str] | None = None,
        prior_confidence: dict[str, float] | None = None,
    ) -> ExtractionResult:
        """Extract fields for one submission, merged over earlier submissions.

        Front and back of a card arrive separately; values from this batch
        win over prior values for the same field.
        """
        profile = get_profile(document_type)
        lines = [line for line in lines if line.text]
        full_text = "\n".join(line.text for line in lines)

        fields: dict[str, str] = {}
        confidence: dict[str, float] = {}
        warnings: list[str] = []

        self._apply_patterns(profile, full_text, lines, fields, confidence)
        if profile.line_heuristic is not None:
            self._apply_line_heuristic(profile.line_heuristic, lines, fields, confidence)
        if profile.parse_mrz:
            self._reconcile_mrz(lines, fields, confidence, warnings)

        merged_fields = {**(prior_fields or {}), **fields}
        merged_confidence = {**(prior_confidence or {}), **confidence}

        overall = weighted_confidence(merged_confidence, profile.weights)
        missing = [name for name in profile.required_fields if not merged_fields.get(name)]

        if missing:
            warnings.append(f"Missing required fields: {', '.join(missing)}")
        if overall < self.low_confidence_threshold:
            warnings.append("Low overall confidence - manual review recommended")

        logger.info(
            "Extracted %d fields from %d lines (document_type=%s, overall=%.1f, missing=%d)",
            len(fields), len(lines), profile.document_type.value, overall, len(missing),
        )

        return ExtractionResult(
            document_type=profile.document_type,
            fields=merged_fields,
            confidence=merged_confidence,
            overall_confidence=overall,
            missing_required_fields=missing,
            warnings=warnings,
            requires_manual_review=bool(missing) or overall < self.low_confidence_threshold,
        )

    @staticmethod
    def _apply_patterns(
        profile: DocumentProfile,
        full_text: str,
        lines: list[OcrLine],
        fields: dict[str, str],
        confidence: dict[str, float],
    ) -> None:
        for spec in profile.fields:
            match = spec.pattern.search(full_text)
            if match is None:
                continue
            value = (match.group(spec.group) or "").strip()
            if not value:
                continue
            fields[spec.name] = value
            confidence[spec.name] = find_line_confidence(lines, match.group(0))

    @staticmethod
    def _apply_line_heuristic(
        heuristic: LineHeuristic,
        lines: list[OcrLine],
        fields: dict[str, str],
        confidence: dict[str, float],
    ) -> None:
        """Fill still-missing fields from unlabelled lines, in document order."""
        candidates = []
        for line in lines:
            text = line.text.strip()
            candidate = text if heuristic.case_sensitive else text.upper()
            if len(candidate) <= 2 or not _NAME_LINE.match(candidate):
                continue
            if heuristic.exclude.search(candidate.upper()):
                continue
            candidates.append((text, line.confidence))

        for name, (text, score) in zip(heuristic.fields, candidates):
            if name in fields:
                continue
            fields[name] = text
            confidence[name] = score

    @staticmethod
    def _reconcile_mrz(
        lines: list[OcrLine],
        fields: dict[str, str],
        confidence: dict[str, float],
        warnings: list[str],
    ) -> None:
        mrz = parse_mrz([line.text for line in lines])
        if mrz is None:
            return

        fields["mrzLine1"] = mrz.line1
        fields["mrzLine2"] = mrz.line2
        if not mrz.check_digits_valid:
            warnings.append("MRZ check digits are invalid - possible tampering or OCR error")

        for name, mrz_value in mrz.fields.items():
            if not mrz_value:
                continue
            visual_value = fields.get(name)
            if not visual_value:
                fields[name] = mrz_value
                confidence[name] = MRZ_FIELD_CONFIDENCE
            elif re.sub(r"\s+", "", visual_value).upper() != re.sub(r"\s+", "", mrz_value).upper():
                warnings.append(f"Field '{name}' mismatch: Visual=\"{visual_value}\" vs MRZ=\"{mrz_value}\"")
