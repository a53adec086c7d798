"""Flat numeric snapshot of one match, as seen by the rule engine.

Every value is a decimal fraction (probabilities and vigorish in 0–1) or a
decimal odd.  Fields of a market the match does not price are 0.0, so a
condition on them simply evaluates against zero.

A context is built fresh for every match and every evaluation call; it is
never shared across matches.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Mapping

from matchedge.core.match import FairMarket
from matchedge.core.vocabulary import Market, Outcome


@dataclass(frozen=True, slots=True)
class RuleEvaluationContext:
    vigorish_1x2: float = 0.0
    vigorish_btts: float = 0.0
    vigorish_ou25: float = 0.0

    probability_home: float = 0.0
    probability_draw: float = 0.0
    probability_away: float = 0.0
    probability_btts_yes: float = 0.0
    probability_btts_no: float = 0.0
    probability_over25: float = 0.0
    probability_under25: float = 0.0

    max_probability_1x2: float = 0.0
    max_probability_btts: float = 0.0
    max_probability_ou25: float = 0.0

    odds_home: float = 0.0
    odds_draw: float = 0.0
    odds_away: float = 0.0
    odds_btts_yes: float = 0.0
    odds_btts_no: float = 0.0
    odds_over25: float = 0.0
    odds_under25: float = 0.0

    def vigorish_for(self, market: Market | str) -> float:
        """Vigorish of ``market``; 0.0 for an unrecognised market."""
        return {
            Market.ONE_X_TWO: self.vigorish_1x2,
            Market.BTTS: self.vigorish_btts,
            Market.OU25: self.vigorish_ou25,
        }.get(market, 0.0)

    def as_dict(self) -> dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


#: Context attribute names, for membership checks on raw field strings.
CONTEXT_FIELDS: frozenset[str] = frozenset(f.name for f in fields(RuleEvaluationContext))


def build_context(fair_markets: Mapping[Market, FairMarket]) -> RuleEvaluationContext:
    """Assemble the evaluation context from a match's fair markets."""
    values: dict[str, float] = {}

    one_x_two = fair_markets.get(Market.ONE_X_TWO)
    if one_x_two is not None:
        values.update(
            vigorish_1x2=one_x_two.vigorish,
            probability_home=one_x_two.probability(Outcome.HOME),
            probability_draw=one_x_two.probability(Outcome.DRAW),
            probability_away=one_x_two.probability(Outcome.AWAY),
            max_probability_1x2=one_x_two.max_probability,
            odds_home=one_x_two.price(Outcome.HOME),
            odds_draw=one_x_two.price(Outcome.DRAW),
            odds_away=one_x_two.price(Outcome.AWAY),
        )

    btts = fair_markets.get(Market.BTTS)
    if btts is not None:
        values.update(
            vigorish_btts=btts.vigorish,
            probability_btts_yes=btts.probability(Outcome.BTTS_YES),
            probability_btts_no=btts.probability(Outcome.BTTS_NO),
            max_probability_btts=btts.max_probability,
            odds_btts_yes=btts.price(Outcome.BTTS_YES),
            odds_btts_no=btts.price(Outcome.BTTS_NO),
        )

    goals = fair_markets.get(Market.OU25)
    if goals is not None:
        values.update(
            vigorish_ou25=goals.vigorish,
            probability_over25=goals.probability(Outcome.OVER),
            probability_under25=goals.probability(Outcome.UNDER),
            max_probability_ou25=goals.max_probability,
            odds_over25=goals.price(Outcome.OVER),
            odds_under25=goals.price(Outcome.UNDER),
        )

    return RuleEvaluationContext(**values)
