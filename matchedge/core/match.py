"""Match odds records and their de-margined markets.

A :class:`MatchRecord` is what the Match Store hands the engine: raw decimal
odds per market (any of which may be missing) and, when an upstream job has
already computed them, fair probabilities and vigorish.

:func:`build_fair_markets` turns a record into one :class:`FairMarket` per
*priced* market.  A market with a missing, zero or ≤ 1.0 odd is absent from
the result rather than an error, unless the store supplied fair values for
it.  Precomputed values are used as supplied and never replaced by a
recomputation that could disagree with them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping

from matchedge.core.odds_math import is_valid_odds, normalize_odds
from matchedge.core.vocabulary import MARKET_OUTCOMES, Market, Outcome


@dataclass(frozen=True, slots=True)
class MatchOdds:
    """Decimal odds for one match.  Every price is nullable."""

    home: float | None = None
    draw: float | None = None
    away: float | None = None
    btts_yes: float | None = None
    btts_no: float | None = None
    over25: float | None = None
    under25: float | None = None
    # Additional goal lines: threshold → (over, under)
    over_under_lines: Mapping[float, tuple[float | None, float | None]] = field(default_factory=dict)

    def prices(self, market: Market) -> tuple[float, ...] | None:
        """Odds for ``market`` in outcome order, or ``None`` when not fully priced."""
        raw = {
            Market.ONE_X_TWO: (self.home, self.draw, self.away),
            Market.BTTS: (self.btts_yes, self.btts_no),
            Market.OU25: (self.over25, self.under25),
        }[market]
        if not all(is_valid_odds(o) for o in raw):
            return None
        return tuple(float(o) for o in raw)


@dataclass(frozen=True, slots=True)
class PrecomputedMarket:
    """Fair values supplied by the Match Store, in outcome order."""

    probabilities: tuple[float, ...]
    vigorish: float


@dataclass(frozen=True, slots=True)
class MatchRecord:
    match_id: str
    home_team: str
    away_team: str
    odds: MatchOdds
    league: str = ""
    country: str | None = None
    kickoff_utc: datetime | None = None
    precomputed: Mapping[Market, PrecomputedMarket] = field(default_factory=dict)
    home_score: int | None = None
    away_score: int | None = None
    status: str = "scheduled"

    @property
    def label(self) -> str:
        return f"{self.home_team} vs {self.away_team}"


@dataclass(frozen=True, slots=True)
class FairMarket:
    """De-margined view of one market for one match.

    Attributes:
        market: Which market this is.
        probabilities: Outcome → fair probability.  Sums to 1.
        vigorish: Σ implied − 1.  Negative values are kept.
        odds: Outcome → decimal price the probabilities were derived from.
            Empty for a precomputed market the store holds no prices for.
        precomputed: True when ``probabilities`` / ``vigorish`` came from
            the Match Store rather than from :func:`normalize_odds`.
    """

    market: Market
    probabilities: Mapping[Outcome, float]
    vigorish: float
    odds: Mapping[Outcome, float]
    precomputed: bool = False

    @classmethod
    def from_odds(cls, market: Market, prices: tuple[float, ...]) -> FairMarket:
        outcomes = MARKET_OUTCOMES[market]
        normalized = normalize_odds(prices)
        return cls(
            market=market,
            probabilities=dict(zip(outcomes, normalized.probs)),
            vigorish=normalized.vig,
            odds=dict(zip(outcomes, prices)),
        )

    def probability(self, outcome: Outcome) -> float:
        return self.probabilities.get(outcome, 0.0)

    def price(self, outcome: Outcome) -> float:
        return self.odds.get(outcome, 0.0)

    def is_priced(self, *outcomes: Outcome) -> bool:
        return all(is_valid_odds(self.odds.get(o)) for o in outcomes)

    @property
    def max_probability(self) -> float:
        return max(self.probabilities.values())


@dataclass(frozen=True, slots=True)
class GoalLine:
    """De-margined over/under market at an arbitrary goal threshold."""

    threshold: float
    odds_over: float
    odds_under: float
    p_over: float
    p_under: float
    vigorish: float


def build_fair_markets(match: MatchRecord) -> dict[Market, FairMarket]:
    """One :class:`FairMarket` per fully priced or precomputed market of ``match``.

    A precomputed market without usable prices still counts; its ``odds``
    map is empty.

    Raises:
        ValueError: If a precomputed entry does not have one probability
            per outcome of its market.
    """
    markets: dict[Market, FairMarket] = {}
    for market, outcomes in MARKET_OUTCOMES.items():
        prices = match.odds.prices(market)
        supplied = match.precomputed.get(market)
        if supplied is None:
            if prices is not None:
                markets[market] = FairMarket.from_odds(market, prices)
            continue
        if len(supplied.probabilities) != len(outcomes):
            raise ValueError(
                f"Precomputed {market.value} market for match {match.match_id!r} has "
                f"{len(supplied.probabilities)} probabilities, expected {len(outcomes)}"
            )
        markets[market] = FairMarket(
            market=market,
            probabilities=dict(zip(outcomes, supplied.probabilities)),
            vigorish=supplied.vigorish,
            odds=dict(zip(outcomes, prices)) if prices is not None else {},
            precomputed=True,
        )
    return markets


def build_goal_lines(match: MatchRecord) -> list[GoalLine]:
    """De-margined over/under markets for every fully priced extra threshold."""
    lines: list[GoalLine] = []
    for threshold in sorted(match.odds.over_under_lines):
        over, under = match.odds.over_under_lines[threshold]
        if not (is_valid_odds(over) and is_valid_odds(under)):
            continue
        normalized = normalize_odds((over, under))
        lines.append(GoalLine(
            threshold=float(threshold),
            odds_over=float(over),
            odds_under=float(under),
            p_over=normalized.probs[0],
            p_under=normalized.probs[1],
            vigorish=normalized.vig,
        ))
    return lines
