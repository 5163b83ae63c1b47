"""Biometric scoring — liveness and face-match results to a case summary.

Scores come from the external liveness and face comparison services already
computed (0-100). This module only weighs and thresholds them.
"""

from dataclasses import dataclass


@dataclass
class BiometricScores:
    liveness_score: float
    similarity_score: float
    liveness_passed: bool
    face_match_passed: bool


@dataclass
class BiometricSummary:
    liveness_score: float
    similarity_score: float
    overall_score: float
    passed: bool
    requires_manual_review: bool

    def to_dict(self) -> dict:
        return {
            "livenessScore": self.liveness_score,
            "similarityScore": self.similarity_score,
            "overallScore": self.overall_score,
            "passed": self.passed,
            "requiresManualReview": self.requires_manual_review,
        }


def summarize_biometrics(
    scores: BiometricScores,
    *,
    liveness_weight: float = 0.3,
    similarity_weight: float = 0.7,
    threshold: float = 80.0,
) -> BiometricSummary:
    overall = scores.liveness_score * liveness_weight + scores.similarity_score * similarity_weight
    passed = scores.liveness_passed and scores.face_match_passed and overall >= threshold
    return BiometricSummary(
        liveness_score=scores.liveness_score,
        similarity_score=scores.similarity_score,
        overall_score=round(overall, 2),
        passed=passed,
        requires_manual_review=not passed,
    )
