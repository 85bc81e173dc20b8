# ============================================================================
# src/medical_digitizer/core/confidence.py
# ============================================================================
"""
Confidence Scoring

Turns extraction quality signals into the single 0-100 score stored on a
document:
- OCR confidence from the upstream producer
- AI contribution (fixed high value when the enhancement pass succeeded)
- Field completeness of the merged entity set

Weighting:

    base   = ai_contribution if present, else ocr_confidence
    factor = floor + (1 - floor) * completeness
    score  = round(base * factor), clamped to [0, 100]

With the default floor of 0.85 a fully populated AI-enhanced extraction
scores 95 and an empty one still scores 81, so a successful AI pass always
dominates. The factor only grows with completeness, so more complete
extractions never score lower at equal OCR/AI confidence.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .enums import ConfidenceLevel
from .models import EntitySet


# Reported whenever the AI enhancement pass succeeded
AI_ENHANCED_CONFIDENCE = 95

DEFAULT_COMPLETENESS_FLOOR = 0.85


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


@dataclass
class ConfidenceThresholds:
    """Confidence level thresholds on the 0-100 scale"""
    high: int = 85
    medium: int = 70

    def get_level(self, score: float) -> ConfidenceLevel:
        if score >= self.high:
            return ConfidenceLevel.HIGH
        elif score >= self.medium:
            return ConfidenceLevel.MEDIUM
        else:
            return ConfidenceLevel.LOW


def field_completeness(entities: EntitySet) -> float:
    """Fraction of entity categories that are non-empty and non-sentinel."""
    return entities.completeness()


class ConfidenceScorer:
    """
    Computes the aggregate document confidence.
    """

    def __init__(
        self,
        completeness_floor: float = DEFAULT_COMPLETENESS_FLOOR,
        thresholds: Optional[ConfidenceThresholds] = None,
    ):
        if not 0.0 <= completeness_floor <= 1.0:
            raise ValueError(f"completeness_floor must be within [0, 1], got {completeness_floor}")
        self.completeness_floor = completeness_floor
        self.thresholds = thresholds or ConfidenceThresholds()

    def score(
        self,
        ocr_confidence: float,
        ai_contribution: Optional[float] = None,
        field_completeness: float = 1.0,
    ) -> int:
        """
        Aggregate score.

        Args:
            ocr_confidence: Raw OCR confidence (0-100, clamped)
            ai_contribution: AI confidence when enhancement succeeded, else None
            field_completeness: Fraction of filled entity categories (0.0-1.0)

        Returns:
            Integer score in [0, 100]
        """
        base = ai_contribution if ai_contribution is not None else ocr_confidence
        base = _clamp(float(base))

        completeness = _clamp(float(field_completeness), 0.0, 1.0)
        factor = self.completeness_floor + (1.0 - self.completeness_floor) * completeness

        return int(_clamp(round(base * factor)))

    def assess(
        self,
        ocr_confidence: float,
        ai_contribution: Optional[float],
        entities: EntitySet,
    ) -> Dict[str, Any]:
        """
        Score an entity set and describe how the score was reached.

        Returns:
            Dict containing:
                - score: Aggregate score
                - level: Confidence level
                - components: Individual inputs
        """
        completeness = field_completeness(entities)
        score = self.score(ocr_confidence, ai_contribution, completeness)

        return {
            "score": score,
            "level": self.thresholds.get_level(score).value,
            "components": {
                "ocr_confidence": _clamp(float(ocr_confidence)),
                "ai_confidence": ai_contribution,
                "field_completeness": round(completeness, 4),
            },
            "method": "ai_enhanced" if ai_contribution is not None else "ocr_only",
        }
