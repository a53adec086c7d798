"""Closed vocabulary for rule definitions.

Markets, condition fields, operators, connectors, actions and outcomes are
modelled as ``str`` enums so that rules stored as JSON round-trip through
their plain string values while the engine dispatches on exhaustive,
checkable members.

Anything a Rule Store hands us that is not in this vocabulary is kept as
the raw string by the parsers in :mod:`matchedge.core.rules`; the engine
then treats it as an unknown field / operator rather than crashing.
"""

from __future__ import annotations

from enum import Enum
from typing import Final


class Market(str, Enum):
    ONE_X_TWO = "1x2"
    BTTS = "btts"
    OU25 = "ou25"

    @property
    def label(self) -> str:
        return MARKET_LABELS[self]


class Outcome(str, Enum):
    # 1X2
    HOME = "1"
    DRAW = "X"
    AWAY = "2"
    # Double chance
    HOME_OR_DRAW = "1X"
    HOME_OR_AWAY = "12"
    DRAW_OR_AWAY = "X2"
    # Refund if draw (draw no bet)
    DNB_HOME = "DNB1"
    DNB_AWAY = "DNB2"
    # Both teams to score
    BTTS_YES = "yes"
    BTTS_NO = "no"
    # Goal line
    OVER = "over"
    UNDER = "under"

    @property
    def label(self) -> str:
        return OUTCOME_LABELS[self]


class ConditionField(str, Enum):
    # Vigorish of the rule's own market
    VIGORISH = "vigorish"
    # Vigorish of a named market
    VIGORISH_1X2 = "vigorish_1x2"
    VIGORISH_BTTS = "vigorish_btts"
    VIGORISH_OU25 = "vigorish_ou25"

    PROBABILITY_HOME = "probability_home"
    PROBABILITY_DRAW = "probability_draw"
    PROBABILITY_AWAY = "probability_away"
    PROBABILITY_BTTS_YES = "probability_btts_yes"
    PROBABILITY_BTTS_NO = "probability_btts_no"
    PROBABILITY_OVER25 = "probability_over25"
    PROBABILITY_UNDER25 = "probability_under25"

    MAX_PROBABILITY_1X2 = "max_probability_1x2"
    MAX_PROBABILITY_BTTS = "max_probability_btts"
    MAX_PROBABILITY_OU25 = "max_probability_ou25"

    ODDS_HOME = "odds_home"
    ODDS_DRAW = "odds_draw"
    ODDS_AWAY = "odds_away"
    ODDS_BTTS_YES = "odds_btts_yes"
    ODDS_BTTS_NO = "odds_btts_no"
    ODDS_OVER25 = "odds_over25"
    ODDS_UNDER25 = "odds_under25"

    @property
    def is_fraction(self) -> bool:
        """True for fields expressed as decimal fractions (vigorish, probabilities)."""
        return not self.value.startswith("odds_")


class Operator(str, Enum):
    GT = ">"
    LT = "<"
    GTE = ">="
    LTE = "<="
    EQ = "="
    NEQ = "!="
    BETWEEN = "between"
    NOT_BETWEEN = "not_between"


class Connector(str, Enum):
    AND = "AND"
    OR = "OR"


class ActionTag(str, Enum):
    RECOMMEND_HOME = "recommend_home"
    RECOMMEND_DRAW = "recommend_draw"
    RECOMMEND_AWAY = "recommend_away"
    RECOMMEND_DOUBLE_CHANCE_1X = "recommend_double_chance_1x"
    RECOMMEND_DOUBLE_CHANCE_12 = "recommend_double_chance_12"
    RECOMMEND_DOUBLE_CHANCE_X2 = "recommend_double_chance_x2"
    RECOMMEND_DOUBLE_CHANCE_LEAST_PROBABLE = "recommend_double_chance_least_probable"
    RECOMMEND_DOUBLE_CHANCE_MOST_PROBABLE = "recommend_double_chance_most_probable"
    RECOMMEND_REFUND_IF_DRAW = "recommend_refund_if_draw"
    RECOMMEND_BTTS_YES = "recommend_btts_yes"
    RECOMMEND_BTTS_NO = "recommend_btts_no"
    RECOMMEND_OVER25 = "recommend_over25"
    RECOMMEND_UNDER25 = "recommend_under25"
    RECOMMEND_MOST_PROBABLE = "recommend_most_probable"
    RECOMMEND_LEAST_PROBABLE = "recommend_least_probable"
    INVERT_RECOMMENDATION = "invert_recommendation"
    NO_RECOMMENDATION = "no_recommendation"


# ---------------------------------------------------------------------------
# Market structure
# ---------------------------------------------------------------------------

#: Base outcomes of each market in tie-break order.  ``max``/``min`` over
#: these tuples return the first extreme, which is how ties are resolved.
MARKET_OUTCOMES: Final[dict[Market, tuple[Outcome, ...]]] = {
    Market.ONE_X_TWO: (Outcome.HOME, Outcome.DRAW, Outcome.AWAY),
    Market.BTTS: (Outcome.BTTS_YES, Outcome.BTTS_NO),
    Market.OU25: (Outcome.OVER, Outcome.UNDER),
}

#: Double-chance code for an unordered pair of 1X2 outcomes.
DOUBLE_CHANCE_CODES: Final[dict[frozenset[Outcome], Outcome]] = {
    frozenset({Outcome.HOME, Outcome.DRAW}): Outcome.HOME_OR_DRAW,
    frozenset({Outcome.HOME, Outcome.AWAY}): Outcome.HOME_OR_AWAY,
    frozenset({Outcome.DRAW, Outcome.AWAY}): Outcome.DRAW_OR_AWAY,
}

#: Inverse of :data:`DOUBLE_CHANCE_CODES`, in canonical 1-X-2 order.
DOUBLE_CHANCE_LEGS: Final[dict[Outcome, tuple[Outcome, Outcome]]] = {
    Outcome.HOME_OR_DRAW: (Outcome.HOME, Outcome.DRAW),
    Outcome.HOME_OR_AWAY: (Outcome.HOME, Outcome.AWAY),
    Outcome.DRAW_OR_AWAY: (Outcome.DRAW, Outcome.AWAY),
}

#: Actions permitted on a rule of each market.
ACTION_OPTIONS: Final[dict[Market, frozenset[ActionTag]]] = {
    Market.ONE_X_TWO: frozenset({
        ActionTag.RECOMMEND_HOME,
        ActionTag.RECOMMEND_DRAW,
        ActionTag.RECOMMEND_AWAY,
        ActionTag.RECOMMEND_DOUBLE_CHANCE_1X,
        ActionTag.RECOMMEND_DOUBLE_CHANCE_12,
        ActionTag.RECOMMEND_DOUBLE_CHANCE_X2,
        ActionTag.RECOMMEND_DOUBLE_CHANCE_LEAST_PROBABLE,
        ActionTag.RECOMMEND_DOUBLE_CHANCE_MOST_PROBABLE,
        ActionTag.RECOMMEND_REFUND_IF_DRAW,
        ActionTag.RECOMMEND_MOST_PROBABLE,
        ActionTag.RECOMMEND_LEAST_PROBABLE,
        ActionTag.INVERT_RECOMMENDATION,
        ActionTag.NO_RECOMMENDATION,
    }),
    Market.BTTS: frozenset({
        ActionTag.RECOMMEND_BTTS_YES,
        ActionTag.RECOMMEND_BTTS_NO,
        ActionTag.RECOMMEND_MOST_PROBABLE,
        ActionTag.RECOMMEND_LEAST_PROBABLE,
        ActionTag.INVERT_RECOMMENDATION,
        ActionTag.NO_RECOMMENDATION,
    }),
    Market.OU25: frozenset({
        ActionTag.RECOMMEND_OVER25,
        ActionTag.RECOMMEND_UNDER25,
        ActionTag.RECOMMEND_MOST_PROBABLE,
        ActionTag.RECOMMEND_LEAST_PROBABLE,
        ActionTag.INVERT_RECOMMENDATION,
        ActionTag.NO_RECOMMENDATION,
    }),
}

#: Actions that bet against the market's favourite.
INVERTED_ACTIONS: Final[frozenset[ActionTag]] = frozenset({
    ActionTag.RECOMMEND_LEAST_PROBABLE,
    ActionTag.RECOMMEND_DOUBLE_CHANCE_LEAST_PROBABLE,
    ActionTag.INVERT_RECOMMENDATION,
})


# ---------------------------------------------------------------------------
# Display labels
# ---------------------------------------------------------------------------

MARKET_LABELS: Final[dict[Market, str]] = {
    Market.ONE_X_TWO: "1X2",
    Market.BTTS: "BTTS",
    Market.OU25: "O/U 2.5",
}

OUTCOME_LABELS: Final[dict[Outcome, str]] = {
    Outcome.HOME: "Home win",
    Outcome.DRAW: "Draw",
    Outcome.AWAY: "Away win",
    Outcome.HOME_OR_DRAW: "Double chance 1X",
    Outcome.HOME_OR_AWAY: "Double chance 12",
    Outcome.DRAW_OR_AWAY: "Double chance X2",
    Outcome.DNB_HOME: "Home (refund if draw)",
    Outcome.DNB_AWAY: "Away (refund if draw)",
    Outcome.BTTS_YES: "BTTS yes",
    Outcome.BTTS_NO: "BTTS no",
    Outcome.OVER: "Over 2.5 goals",
    Outcome.UNDER: "Under 2.5 goals",
}


def parse_enum(enum_cls: type[Enum], raw: object) -> Enum | str:
    """Return the enum member for ``raw``, or ``str(raw)`` when unrecognised."""
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(raw)
    except ValueError:
        return str(raw)


def raw_value(value: object) -> object:
    """The plain string behind an enum member; anything else unchanged."""
    return value.value if isinstance(value, Enum) else value
