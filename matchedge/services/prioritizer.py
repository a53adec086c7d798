"""
Prioritizer: collapse a match's candidate opportunities to at most one pick.

Selection is deterministic:

    1. opportunities tagged ``no_recommendation`` are discarded (they never
       reach this point from the detector, but hand-built lists may carry
       them),
    2. only the highest ``source_rule_priority`` survives,
    3. among equal priorities the rule defined first wins (``rule_index``,
       then input order).

The display conversion derives confidence from the stance: a contrarian
(inverted) pick is shown as ``high`` confidence and every other pick as
``medium``.  The probability-based tier from
:mod:`matchedge.core.confidence` travels alongside it.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from matchedge.core.confidence import ConfidenceScore, score_confidence
from matchedge.core.engine_config import EngineConfig
from matchedge.core.match import MatchRecord, build_fair_markets
from matchedge.core.vocabulary import MARKET_LABELS, OUTCOME_LABELS, ActionTag
from matchedge.services.opportunity import DetectedOpportunity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Recommendation:
    """Display-ready pick."""
    bet_type: str               # Market label, e.g. "1X2"
    prediction: str             # Outcome code, e.g. "X2"
    prediction_label: str       # e.g. "Double chance X2"
    odds: float
    probability: float
    confidence: str             # "high" when inverted, else "medium"
    probability_tier: ConfidenceScore
    is_inverted: bool
    source_rule_id: str
    reasons: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "bet_type": self.bet_type,
            "prediction": self.prediction,
            "prediction_label": self.prediction_label,
            "odds": round(self.odds, 4),
            "probability": round(self.probability, 6),
            "confidence": self.confidence,
            "probability_tier": {
                "label": self.probability_tier.label,
                "score": self.probability_tier.score,
                "vigorish": round(self.probability_tier.vigorish, 6),
            },
            "is_inverted": self.is_inverted,
            "source_rule_id": self.source_rule_id,
            "reasons": list(self.reasons),
        }


def select_recommendations(
    opportunities: Sequence[DetectedOpportunity],
) -> List[DetectedOpportunity]:
    """Return ``[]`` or a single-element list holding the winning opportunity."""
    candidates = [o for o in opportunities if o.action != ActionTag.NO_RECOMMENDATION]
    if not candidates:
        return []

    top_priority = max(o.source_rule_priority for o in candidates)
    # min() returns the first of equal keys, so input order breaks any tie left
    winner = min(
        (o for o in candidates if o.source_rule_priority == top_priority),
        key=lambda o: o.rule_index,
    )
    if len(candidates) > 1:
        logger.debug(
            "Selected %r (priority %d) out of %d candidates",
            winner.source_rule_name, top_priority, len(candidates),
        )
    return [winner]


def to_recommendation(
    opportunity: DetectedOpportunity,
    match: MatchRecord,
    config: Optional[EngineConfig] = None,
) -> Recommendation:
    """Convert the winning opportunity into its display form."""
    config = config or EngineConfig()
    fair = build_fair_markets(match).get(opportunity.market)
    vigorish = fair.vigorish if fair is not None else 0.0

    tier = score_confidence(
        opportunity.probability,
        vigorish,
        high=config.confidence_high,
        medium=config.confidence_medium,
        cap=config.confidence_score_cap,
    )
    return Recommendation(
        bet_type=MARKET_LABELS[opportunity.market],
        prediction=opportunity.predicted_outcome.value,
        prediction_label=OUTCOME_LABELS[opportunity.predicted_outcome],
        odds=opportunity.odds,
        probability=opportunity.probability,
        confidence="high" if opportunity.is_inverted else "medium",
        probability_tier=tier,
        is_inverted=opportunity.is_inverted,
        source_rule_id=opportunity.source_rule_id,
        reasons=[
            f"Rule '{opportunity.source_rule_name}' (priority {opportunity.source_rule_priority})",
            opportunity.matched_conditions,
        ],
    )
