"""Fundamental odds mathematics — the single source of truth.

Every function here is **pure**: no I/O, no logging, no side effects.
Import from this module; never reimplement locally in services or models.

The two pillars exposed are:

1. **De-margining** — decimal odds → fair (no-vig) probabilities plus the
   bookmaker margin (vigorish) for one market.
2. **Odds combinators** — the price of a bet covering several outcomes of
   the same market (double chance) and of draw-no-bet.

Design decisions
----------------
* All functions accept **decimal** (European) odds, which is what football
  bookmakers quote.  A decimal odd is the total payout per unit staked,
  stake included, so every valid price is strictly greater than 1.0.
* Vig removal is **proportional**: each implied probability is divided by
  the overround.  This is the convention the rule authors calibrate their
  thresholds against, so changing it would silently shift every rule.
* Negative vigorish is a legitimate output.  It means the book's prices sum
  to less than 100% implied probability (a pricing error) and downstream
  rules branch on ``vig < 0`` as a premium signal, so it is never clamped.

Run tests with::

    pytest tests/test_odds_math.py -v
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Sequence

# ---------------------------------------------------------------------------
# Module-level constants
# ---------------------------------------------------------------------------

#: A decimal odd must be strictly above this value.  1.0 would mean a bet
#: that returns only the stake (implied probability 100%).
MIN_DECIMAL_ODDS: Final[float] = 1.0

#: Smallest and largest number of mutually exclusive outcomes in one market
#: (BTTS / goal lines are 2-way, 1X2 is 3-way).
MIN_OUTCOMES: Final[int] = 2
MAX_OUTCOMES: Final[int] = 3


@dataclass(frozen=True, slots=True)
class NormalizedOdds:
    """De-margined view of one market.

    Attributes:
        probs: Fair probabilities in the same order as the input odds.
            Sum to 1.0 within floating-point tolerance.
        vig: Σ implied probabilities − 1.  May be negative.
    """

    probs: tuple[float, ...]
    vig: float


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------


def is_valid_odds(odds: float | None) -> bool:
    """True when ``odds`` is a usable decimal price (not missing, > 1.0)."""
    return odds is not None and odds > MIN_DECIMAL_ODDS


def implied_prob(decimal_odds: float) -> float:
    """Raw implied probability of a decimal price (vig-inclusive).

    Examples::

        implied_prob(2.00) → 0.5000
        implied_prob(3.50) → 0.2857

    Raises:
        ValueError: If ``decimal_odds ≤ 1.0``.
    """
    if not is_valid_odds(decimal_odds):
        raise ValueError(
            f"Invalid decimal odds {decimal_odds!r}: must be > {MIN_DECIMAL_ODDS}. "
            "Incomplete markets must be filtered out before normalisation."
        )
    return 1.0 / decimal_odds


# ---------------------------------------------------------------------------
# Vig removal — proportional
# ---------------------------------------------------------------------------


def normalize_odds(odds: Sequence[float]) -> NormalizedOdds:
    """Convert one market's decimal odds into fair probabilities and vig.

    Algorithm::

        implied_i = 1 / odds_i
        total     = Σ implied_i
        vig       = total − 1
        p_i       = implied_i / total

    Args:
        odds: Two or three decimal odds for mutually exclusive outcomes.

    Returns:
        :class:`NormalizedOdds` with probabilities in input order.

    Raises:
        ValueError: If fewer than two or more than three prices are given,
            or if any price is ≤ 1.0.

    Examples::

        normalize_odds([2.00, 3.50, 4.00])
        → probs ≈ (0.4828, 0.2759, 0.2414), vig ≈ 0.0357
    """
    if not MIN_OUTCOMES <= len(odds) <= MAX_OUTCOMES:
        raise ValueError(
            f"Expected {MIN_OUTCOMES}-{MAX_OUTCOMES} outcome odds, got {len(odds)}"
        )
    implied = [implied_prob(o) for o in odds]
    total = sum(implied)
    return NormalizedOdds(
        probs=tuple(p / total for p in implied),
        vig=total - 1.0,
    )


def vigorish(odds: Sequence[float]) -> float:
    """Bookmaker margin of a market: Σ(1/odds) − 1."""
    return normalize_odds(odds).vig


# ---------------------------------------------------------------------------
# Combinators
# ---------------------------------------------------------------------------


def double_chance_odds(odds_a: float, odds_b: float) -> float:
    """Price of a bet that wins on either of two outcomes.

    The implied probabilities of the covered outcomes add, so the combined
    price is their harmonic combination ``1 / (1/a + 1/b)``.

    Examples::

        double_chance_odds(4.50, 7.00) → 2.7391
    """
    return 1.0 / (implied_prob(odds_a) + implied_prob(odds_b))


def draw_no_bet_odds(side_odds: float, draw_odds: float) -> float:
    """Price of a side with the stake refunded on a draw.

    Derived from the 1X2 prices: a unit stake split so the draw leg returns
    the whole stake gives ``side · (draw − 1) / draw``.

    Examples::

        draw_no_bet_odds(2.00, 3.50) → 1.4286
    """
    for price in (side_odds, draw_odds):
        if not is_valid_odds(price):
            raise ValueError(f"Invalid decimal odds {price!r}: must be > {MIN_DECIMAL_ODDS}")
    return side_odds * (draw_odds - 1.0) / draw_odds
