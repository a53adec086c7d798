"""Qualitative confidence labels for display.

Pure and total: every ``(probability, vigorish)`` pair of floats maps to a
label, including out-of-range and negative-vig inputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

ConfidenceLabel = Literal["high", "medium", "low"]

HIGH_THRESHOLD = 0.70
MEDIUM_THRESHOLD = 0.60
SCORE_CAP = 89.5


@dataclass(frozen=True, slots=True)
class ConfidenceScore:
    """Display bundle for one pick.

    Attributes:
        label: ``high`` above 70%, ``medium`` above 60%, otherwise ``low``.
        score: Probability on a 0-100 scale, capped at 89.5 so no pick is
            ever shown as a near-certainty.
        vigorish: Margin of the market the probability came from, carried
            for display next to the label.
    """

    label: ConfidenceLabel
    score: float
    vigorish: float


def confidence_label(
    probability: float,
    high: float = HIGH_THRESHOLD,
    medium: float = MEDIUM_THRESHOLD,
) -> ConfidenceLabel:
    if probability > high:
        return "high"
    if probability > medium:
        return "medium"
    return "low"


def score_confidence(
    probability: float,
    vigorish: float,
    *,
    high: float = HIGH_THRESHOLD,
    medium: float = MEDIUM_THRESHOLD,
    cap: float = SCORE_CAP,
) -> ConfidenceScore:
    """Map a realised probability and its market's vigorish to a label."""
    score = min(max(probability, 0.0) * 100.0, cap)
    return ConfidenceScore(
        label=confidence_label(probability, high, medium),
        score=round(score, 1),
        vigorish=vigorish,
    )
