"""
Opportunity detection: which configured rules license a bet on this match.

For one match the detector

  1. de-margins every priced market (precomputed fair values are kept),
  2. builds the flat evaluation context,
  3. evaluates every enabled rule with the shared :class:`RuleEngine`,
  4. drops rules that did not match and rules whose action is
     ``no_recommendation`` (an explicit opt-out, logged as such),
  5. translates each remaining action into a concrete market / outcome /
     price through :data:`ACTION_HANDLERS`.

Every opportunity carries the originating rule's id, name, priority,
definition index and a summary of the conditions that matched, so a
surfaced recommendation can always be traced back to the rule behind it.

No rule, no opportunity: when the store returns no enabled rules or none
match, the result is an empty list.  Nothing is synthesised from raw
probabilities.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from matchedge.core.context import RuleEvaluationContext, build_context
from matchedge.core.engine_config import EngineConfig
from matchedge.core.match import FairMarket, MatchRecord, build_fair_markets
from matchedge.core.odds_math import double_chance_odds, draw_no_bet_odds
from matchedge.core.rule_engine import RuleEngine, RuleEvaluationResult
from matchedge.core.rules import ConditionalRule
from matchedge.core.vocabulary import (
    ACTION_OPTIONS,
    DOUBLE_CHANCE_CODES,
    INVERTED_ACTIONS,
    MARKET_OUTCOMES,
    ActionTag,
    Market,
    Outcome,
    raw_value,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data containers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Pick:
    """Structured prediction returned by an action handler."""
    market: Market
    outcome: Outcome
    odds: float
    probability: float


@dataclass(frozen=True)
class DetectedOpportunity:
    market: Market
    predicted_outcome: Outcome
    odds: float
    probability: float
    source_rule_id: str
    source_rule_name: str
    source_rule_priority: int
    rule_index: int
    action: ActionTag
    is_inverted: bool
    matched_conditions: str

    def to_dict(self) -> dict:
        return {
            "market": self.market.value,
            "predicted_outcome": self.predicted_outcome.value,
            "odds": round(self.odds, 4),
            "probability": round(self.probability, 6),
            "source_rule_id": self.source_rule_id,
            "source_rule_name": self.source_rule_name,
            "source_rule_priority": self.source_rule_priority,
            "rule_index": self.rule_index,
            "action": self.action.value,
            "is_inverted": self.is_inverted,
            "matched_conditions": self.matched_conditions,
        }


@dataclass(frozen=True)
class DetectionReport:
    """Everything computed during one detection pass, for auditing."""
    fair_markets: Dict[Market, FairMarket]
    context: RuleEvaluationContext
    evaluations: List[RuleEvaluationResult]
    opportunities: List[DetectedOpportunity]


# ---------------------------------------------------------------------------
# Action handlers
# ---------------------------------------------------------------------------

ActionHandler = Callable[[Market, Mapping[Market, FairMarket]], Optional[Pick]]


def _single(market: Market, fair: FairMarket, outcome: Outcome) -> Optional[Pick]:
    if not fair.is_priced(outcome):
        return None
    return Pick(market, outcome, fair.price(outcome), fair.probability(outcome))


def _double_chance(fair: FairMarket, legs: Sequence[Outcome]) -> Optional[Pick]:
    first, second = legs
    if not fair.is_priced(first, second):
        return None
    return Pick(
        market=Market.ONE_X_TWO,
        outcome=DOUBLE_CHANCE_CODES[frozenset((first, second))],
        odds=double_chance_odds(fair.price(first), fair.price(second)),
        probability=fair.probability(first) + fair.probability(second),
    )


def _most_probable(market: Market, markets: Mapping[Market, FairMarket]) -> Optional[Pick]:
    fair = markets.get(market)
    if fair is None:
        return None
    return _single(market, fair, max(MARKET_OUTCOMES[market], key=fair.probability))


def _least_probable(market: Market, markets: Mapping[Market, FairMarket]) -> Optional[Pick]:
    fair = markets.get(market)
    if fair is None:
        return None
    return _single(market, fair, min(MARKET_OUTCOMES[market], key=fair.probability))


def _ranked_1x2(markets: Mapping[Market, FairMarket], most_first: bool) -> Optional[tuple]:
    fair = markets.get(Market.ONE_X_TWO)
    if fair is None:
        return None
    # sorted() is stable, so equal probabilities keep home, draw, away order
    ranked = sorted(MARKET_OUTCOMES[Market.ONE_X_TWO], key=fair.probability, reverse=most_first)
    return fair, ranked


def _double_chance_least_probable(
    market: Market, markets: Mapping[Market, FairMarket],
) -> Optional[Pick]:
    ranked = _ranked_1x2(markets, most_first=False)
    if ranked is None:
        return None
    fair, order = ranked
    return _double_chance(fair, order[:2])


def _double_chance_most_probable(
    market: Market, markets: Mapping[Market, FairMarket],
) -> Optional[Pick]:
    ranked = _ranked_1x2(markets, most_first=True)
    if ranked is None:
        return None
    fair, order = ranked
    return _double_chance(fair, order[:2])


def _refund_if_draw(market: Market, markets: Mapping[Market, FairMarket]) -> Optional[Pick]:
    fair = markets.get(Market.ONE_X_TWO)
    if fair is None:
        return None
    p_home = fair.probability(Outcome.HOME)
    p_away = fair.probability(Outcome.AWAY)
    side, outcome = (Outcome.HOME, Outcome.DNB_HOME) if p_home >= p_away else (Outcome.AWAY, Outcome.DNB_AWAY)
    if p_home + p_away <= 0.0 or not fair.is_priced(side, Outcome.DRAW):
        return None
    # Probability of winning the bet once the refunded draw is excluded
    return Pick(
        market=Market.ONE_X_TWO,
        outcome=outcome,
        odds=draw_no_bet_odds(fair.price(side), fair.price(Outcome.DRAW)),
        probability=fair.probability(side) / (p_home + p_away),
    )


def _invert(market: Market, markets: Mapping[Market, FairMarket]) -> Optional[Pick]:
    fair = markets.get(market)
    if fair is None:
        return None
    outcomes = MARKET_OUTCOMES[market]
    favourite = max(outcomes, key=fair.probability)
    others = [o for o in outcomes if o is not favourite]
    if market is Market.ONE_X_TWO:
        return _double_chance(fair, others)
    return _single(market, fair, others[0])


def _fixed(market: Market, outcome: Outcome) -> ActionHandler:
    def handler(rule_market: Market, markets: Mapping[Market, FairMarket]) -> Optional[Pick]:
        fair = markets.get(market)
        if fair is None:
            return None
        return _single(market, fair, outcome)
    return handler


def _fixed_double_chance(first: Outcome, second: Outcome) -> ActionHandler:
    def handler(rule_market: Market, markets: Mapping[Market, FairMarket]) -> Optional[Pick]:
        fair = markets.get(Market.ONE_X_TWO)
        if fair is None:
            return None
        return _double_chance(fair, (first, second))
    return handler


#: Action tag → handler.  ``no_recommendation`` is deliberately absent: it is
#: filtered out before translation.
ACTION_HANDLERS: Dict[ActionTag, ActionHandler] = {
    ActionTag.RECOMMEND_HOME: _fixed(Market.ONE_X_TWO, Outcome.HOME),
    ActionTag.RECOMMEND_DRAW: _fixed(Market.ONE_X_TWO, Outcome.DRAW),
    ActionTag.RECOMMEND_AWAY: _fixed(Market.ONE_X_TWO, Outcome.AWAY),
    ActionTag.RECOMMEND_DOUBLE_CHANCE_1X: _fixed_double_chance(Outcome.HOME, Outcome.DRAW),
    ActionTag.RECOMMEND_DOUBLE_CHANCE_12: _fixed_double_chance(Outcome.HOME, Outcome.AWAY),
    ActionTag.RECOMMEND_DOUBLE_CHANCE_X2: _fixed_double_chance(Outcome.DRAW, Outcome.AWAY),
    ActionTag.RECOMMEND_DOUBLE_CHANCE_LEAST_PROBABLE: _double_chance_least_probable,
    ActionTag.RECOMMEND_DOUBLE_CHANCE_MOST_PROBABLE: _double_chance_most_probable,
    ActionTag.RECOMMEND_REFUND_IF_DRAW: _refund_if_draw,
    ActionTag.RECOMMEND_BTTS_YES: _fixed(Market.BTTS, Outcome.BTTS_YES),
    ActionTag.RECOMMEND_BTTS_NO: _fixed(Market.BTTS, Outcome.BTTS_NO),
    ActionTag.RECOMMEND_OVER25: _fixed(Market.OU25, Outcome.OVER),
    ActionTag.RECOMMEND_UNDER25: _fixed(Market.OU25, Outcome.UNDER),
    ActionTag.RECOMMEND_MOST_PROBABLE: _most_probable,
    ActionTag.RECOMMEND_LEAST_PROBABLE: _least_probable,
    ActionTag.INVERT_RECOMMENDATION: _invert,
}


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------

class OpportunityDetector:
    """Turns matching rules into candidate opportunities for one match."""

    def __init__(self, config: Optional[EngineConfig] = None, engine: Optional[RuleEngine] = None):
        self.config = config or EngineConfig()
        self.engine = engine or RuleEngine(self.config.equality_tolerance)

    def detect(self, match: MatchRecord, rules: Sequence[ConditionalRule]) -> List[DetectedOpportunity]:
        """Candidate opportunities for ``match`` in rule-definition order."""
        return self.run(match, rules).opportunities

    def run(self, match: MatchRecord, rules: Sequence[ConditionalRule]) -> DetectionReport:
        fair_markets = build_fair_markets(match)
        report = self.run_on_markets(fair_markets, rules)
        if not report.opportunities:
            logger.info("No opportunity for %s (%d rules evaluated)", match.label, len(report.evaluations))
        return report

    def run_on_markets(
        self,
        fair_markets: Mapping[Market, FairMarket],
        rules: Sequence[ConditionalRule],
    ) -> DetectionReport:
        context = build_context(fair_markets)
        evaluations = self.engine.evaluate_rules(rules, context)
        opportunities: List[DetectedOpportunity] = []

        for result in evaluations:
            if not result.conditions_met:
                continue
            if result.action == ActionTag.NO_RECOMMENDATION:
                logger.info(
                    "Rule %r matched with no_recommendation on %s: explicit opt-out",
                    result.rule_name, raw_value(result.market),
                )
                continue
            opportunity = self._translate(result, fair_markets)
            if opportunity is not None:
                opportunities.append(opportunity)

        logger.debug(
            "%d/%d enabled rules matched, %d opportunities",
            sum(r.conditions_met for r in evaluations), len(evaluations), len(opportunities),
        )
        return DetectionReport(
            fair_markets=dict(fair_markets),
            context=context,
            evaluations=evaluations,
            opportunities=opportunities,
        )

    def _translate(
        self,
        result: RuleEvaluationResult,
        fair_markets: Mapping[Market, FairMarket],
    ) -> Optional[DetectedOpportunity]:
        if not isinstance(result.market, Market) or not isinstance(result.action, ActionTag):
            logger.warning(
                "Rule %r skipped: unknown market %r or action %r",
                result.rule_name, result.market, result.action,
            )
            return None
        if result.action not in ACTION_OPTIONS[result.market]:
            logger.warning(
                "Rule %r skipped: action %s is not available on market %s",
                result.rule_name, result.action.value, result.market.value,
            )
            return None

        pick = ACTION_HANDLERS[result.action](result.market, fair_markets)
        if pick is None:
            logger.warning(
                "Rule %r matched but %s has no usable price for this match; skipped",
                result.rule_name, result.action.value,
            )
            return None

        return DetectedOpportunity(
            market=pick.market,
            predicted_outcome=pick.outcome,
            odds=pick.odds,
            probability=pick.probability,
            source_rule_id=result.rule_id,
            source_rule_name=result.rule_name,
            source_rule_priority=result.priority,
            rule_index=result.rule_index,
            action=result.action,
            is_inverted=result.action in INVERTED_ACTIONS,
            matched_conditions=result.details,
        )


def detect_opportunities(
    match: MatchRecord,
    rules: Sequence[ConditionalRule],
    config: Optional[EngineConfig] = None,
) -> List[DetectedOpportunity]:
    """Convenience wrapper around :meth:`OpportunityDetector.detect`."""
    return OpportunityDetector(config).detect(match, rules)
