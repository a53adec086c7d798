"""
Scoreline probability model: Poisson intensities fitted to market prices,
Dixon-Coles low-score correction, and recommendation weighting.

Pipeline for one match (every call starts from scratch, nothing is cached
between matches):

    1. Fit λ_home / λ_away so that an independent-Poisson grid reproduces the
       fair 1X2 probabilities, plus P(over 2.5) and P(BTTS yes) when those
       markets are priced.  The fit is a bounded least-squares problem solved
       with scipy's L-BFGS-B from a fixed, closed-form starting point, so the
       same prices always give the same intensities.
    2. Pick ρ from the fair draw probability (or take the caller's value) and
       apply the Dixon-Coles τ factors to the four low-score cells:

           (0,0) × (1 − ρ·λh·λa)     (0,1) × (1 + ρ·λh)
           (1,0) × (1 + ρ·λa)        (1,1) × (1 − ρ)

       τ moves probability between those four cells without changing the
       total; a negative product is clipped to zero.
    3. For every surfaced recommendation, multiply the cells consistent with
       it by the configured boost for its kind and mark them highlighted.
    4. Renormalise the grid to exactly 1 whenever a boost was applied.

Without boosts, the (N+1)×(N+1) grid plus ``truncated_mass`` sums to 1.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import numpy as np
from scipy.optimize import minimize
from scipy.stats import poisson

from matchedge.core.engine_config import EngineConfig
from matchedge.core.match import FairMarket
from matchedge.core.vocabulary import OUTCOME_LABELS, Market, Outcome

logger = logging.getLogger(__name__)

# Home-advantage factor of the starting-point heuristic only; the fit moves
# away from it freely.
_START_HOME_ADVANTAGE = 1.35

#: Number of most likely scorelines reported on a matrix.
TOP_SCORES = 5


# ---------------------------------------------------------------------------
# Data containers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScoreCell:
    home_goals: int
    away_goals: int
    probability: float
    highlighted: bool = False
    highlight_reason: Optional[str] = None

    @property
    def score(self) -> str:
        return f"{self.home_goals}-{self.away_goals}"

    def to_dict(self) -> dict:
        return {
            "home_goals": self.home_goals,
            "away_goals": self.away_goals,
            "probability": self.probability,
            "highlighted": self.highlighted,
            "highlight_reason": self.highlight_reason,
        }


@dataclass(frozen=True)
class ImpliedProbabilities:
    """Market probabilities implied by the fitted (un-boosted) model."""
    home: float
    draw: float
    away: float
    btts_yes: float
    btts_no: float
    over25: float
    under25: float
    under35: float

    def to_dict(self) -> dict:
        return {k: round(v, 6) for k, v in self.__dict__.items()}


@dataclass(frozen=True)
class ScoreMatrix:
    """
    Scoreline grid for one match.

    ``cells[h][a]`` is the cell for ``h`` home goals and ``a`` away goals.
    ``truncated_mass`` is the model probability of scorelines beyond the
    grid before any renormalisation; once ``renormalized`` is set the grid
    alone sums to 1.
    """
    cells: Tuple[Tuple[ScoreCell, ...], ...]
    lambda_home: float
    lambda_away: float
    rho: float
    truncated_mass: float
    renormalized: bool
    top_scores: Tuple[ScoreCell, ...]
    implied: ImpliedProbabilities

    @property
    def max_goals(self) -> int:
        return len(self.cells) - 1

    def cell(self, home_goals: int, away_goals: int) -> ScoreCell:
        return self.cells[home_goals][away_goals]

    def as_array(self) -> np.ndarray:
        return np.array([[c.probability for c in row] for row in self.cells])

    @property
    def total_probability(self) -> float:
        return float(sum(c.probability for row in self.cells for c in row))

    @property
    def highlighted_cells(self) -> List[ScoreCell]:
        return [c for row in self.cells for c in row if c.highlighted]

    def to_dict(self) -> dict:
        return {
            "max_goals": self.max_goals,
            "lambda_home": round(self.lambda_home, 4),
            "lambda_away": round(self.lambda_away, 4),
            "rho": float(self.rho),
            "truncated_mass": float(self.truncated_mass),
            "renormalized": bool(self.renormalized),
            "cells": [[c.to_dict() for c in row] for row in self.cells],
            "top_scores": [c.to_dict() for c in self.top_scores],
            "implied": self.implied.to_dict(),
        }


# ---------------------------------------------------------------------------
# Grid helpers
# ---------------------------------------------------------------------------

def poisson_grid(lambda_home: float, lambda_away: float, max_goals: int) -> np.ndarray:
    """Independent-Poisson scoreline probabilities, rows = home goals."""
    goals = np.arange(0, max_goals + 1)
    return np.outer(poisson.pmf(goals, lambda_home), poisson.pmf(goals, lambda_away))


def dixon_coles_adjust(
    grid: np.ndarray,
    lambda_home: float,
    lambda_away: float,
    rho: float,
) -> np.ndarray:
    """Copy of ``grid`` with the τ factors applied to the four low-score cells."""
    adjusted = grid.copy()
    adjusted[0, 0] *= 1.0 - rho * lambda_home * lambda_away
    adjusted[0, 1] *= 1.0 + rho * lambda_home
    adjusted[1, 0] *= 1.0 + rho * lambda_away
    adjusted[1, 1] *= 1.0 - rho
    return np.clip(adjusted, 0.0, None)


def _goal_indices(grid: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    size = grid.shape[0]
    return np.meshgrid(np.arange(size), np.arange(size), indexing="ij")


def market_probabilities(grid: np.ndarray) -> Dict[str, float]:
    """Aggregate a scoreline grid into 1X2 / BTTS / goal-line probabilities."""
    home, away = _goal_indices(grid)
    total = home + away
    return {
        "home": float(np.tril(grid, -1).sum()),
        "draw": float(np.trace(grid)),
        "away": float(np.triu(grid, 1).sum()),
        "btts_yes": float(grid[1:, 1:].sum()),
        "over25": float(grid[total >= 3].sum()),
        "under35": float(grid[total <= 3].sum()),
    }


# Outcome → (boost kind, cell predicate over home/away goal arrays)
_Predicate = Callable[[np.ndarray, np.ndarray], np.ndarray]

_CONSISTENT_CELLS: Dict[Outcome, Tuple[str, _Predicate]] = {
    Outcome.HOME: ("match_result", lambda h, a: h > a),
    Outcome.DRAW: ("match_result", lambda h, a: h == a),
    Outcome.AWAY: ("match_result", lambda h, a: h < a),
    Outcome.HOME_OR_DRAW: ("double_chance", lambda h, a: h >= a),
    Outcome.HOME_OR_AWAY: ("double_chance", lambda h, a: h != a),
    Outcome.DRAW_OR_AWAY: ("double_chance", lambda h, a: h <= a),
    Outcome.DNB_HOME: ("draw_no_bet", lambda h, a: h > a),
    Outcome.DNB_AWAY: ("draw_no_bet", lambda h, a: h < a),
    Outcome.BTTS_YES: ("btts", lambda h, a: (h > 0) & (a > 0)),
    Outcome.BTTS_NO: ("btts", lambda h, a: (h == 0) | (a == 0)),
    Outcome.OVER: ("goal_line", lambda h, a: h + a >= 3),
    Outcome.UNDER: ("goal_line", lambda h, a: h + a <= 2),
}


RecommendationLike = Union[Outcome, str, object]


def _outcome_of(item: RecommendationLike) -> Optional[Outcome]:
    """Accept an Outcome, an outcome code, an opportunity or a recommendation."""
    if isinstance(item, Outcome):
        return item
    raw = getattr(item, "predicted_outcome", None) or getattr(item, "prediction", None) or item
    if isinstance(raw, Outcome):
        return raw
    try:
        return Outcome(str(raw))
    except ValueError:
        logger.warning("Ignoring recommendation with unknown outcome %r", raw)
        return None


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------

class ScoreMatrixModel:
    """Builds :class:`ScoreMatrix` objects from fair market probabilities."""

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    @property
    def fit_size(self) -> int:
        return max(self.config.fit_max_goals, self.config.matrix_max_goals)

    # ------------------------------------------------------------------ #
    #  Intensity fit                                                       #
    # ------------------------------------------------------------------ #

    def initial_guess(self, fair_markets: Mapping[Market, FairMarket]) -> Tuple[float, float]:
        """Closed-form starting point: goal total from O/U, split by the 1X2 odds ratio."""
        one_x_two = fair_markets[Market.ONE_X_TWO]
        p_home = one_x_two.probability(Outcome.HOME)
        p_away = max(one_x_two.probability(Outcome.AWAY), 1e-6)

        ou = fair_markets.get(Market.OU25)
        p_over = ou.probability(Outcome.OVER) if ou is not None else 0.5
        expected_total = 2.5 + (p_over - 0.5) * 2.0

        ratio = max(p_home / p_away, 1e-6)
        lambda_away = expected_total / (_START_HOME_ADVANTAGE * ratio + 1.0)
        lambda_home = lambda_away * _START_HOME_ADVANTAGE * ratio

        low, high = self.config.lambda_bounds
        return (
            float(np.clip(lambda_home, low, high)),
            float(np.clip(lambda_away, low, high)),
        )

    def fit_intensities(self, fair_markets: Mapping[Market, FairMarket]) -> Tuple[float, float]:
        """Least-squares Poisson intensities matching the fair market probabilities.

        Raises:
            ValueError: If the 1X2 market is not priced.
        """
        one_x_two = fair_markets.get(Market.ONE_X_TWO)
        if one_x_two is None:
            raise ValueError("Score matrix needs a priced 1X2 market")

        targets = {
            "home": one_x_two.probability(Outcome.HOME),
            "draw": one_x_two.probability(Outcome.DRAW),
            "away": one_x_two.probability(Outcome.AWAY),
        }
        ou = fair_markets.get(Market.OU25)
        if ou is not None:
            targets["over25"] = ou.probability(Outcome.OVER)
        btts = fair_markets.get(Market.BTTS)
        if btts is not None:
            targets["btts_yes"] = btts.probability(Outcome.BTTS_YES)

        size = self.fit_size

        def loss(params: np.ndarray) -> float:
            grid = poisson_grid(params[0], params[1], size)
            grid = grid / grid.sum()
            model = market_probabilities(grid)
            return sum((model[key] - target) ** 2 for key, target in targets.items())

        start = self.initial_guess(fair_markets)
        bounds = [self.config.lambda_bounds, self.config.lambda_bounds]
        result = minimize(
            loss,
            np.array(start),
            method="L-BFGS-B",
            bounds=bounds,
            options={"maxiter": 200, "ftol": 1e-12},
        )
        if not result.success:
            logger.warning("Intensity fit did not converge (%s); using best point found", result.message)

        lambda_home, lambda_away = (float(x) for x in result.x)
        logger.debug(
            "Fitted λ_home=%.3f λ_away=%.3f (loss %.2e, %d targets)",
            lambda_home, lambda_away, result.fun, len(targets),
        )
        return lambda_home, lambda_away

    # ------------------------------------------------------------------ #
    #  Matrix                                                              #
    # ------------------------------------------------------------------ #

    def compute(
        self,
        fair_markets: Mapping[Market, FairMarket],
        recommendations: Iterable[RecommendationLike] = (),
        rho: Optional[float] = None,
    ) -> ScoreMatrix:
        lambda_home, lambda_away = self.fit_intensities(fair_markets)
        if rho is None:
            rho = self.config.rho_for_draw_probability(
                fair_markets[Market.ONE_X_TWO].probability(Outcome.DRAW)
            )

        # Implied market view from the wide grid, before any weighting
        wide = dixon_coles_adjust(poisson_grid(lambda_home, lambda_away, self.fit_size),
                                  lambda_home, lambda_away, rho)
        implied = market_probabilities(wide)

        size = self.config.matrix_max_goals
        grid = dixon_coles_adjust(poisson_grid(lambda_home, lambda_away, size),
                                  lambda_home, lambda_away, rho)
        truncated_mass = max(0.0, 1.0 - float(grid.sum()))

        reasons = [[[] for _ in range(size + 1)] for _ in range(size + 1)]
        boosted = self._apply_boosts(grid, recommendations, reasons)

        renormalized = bool(boosted or grid.sum() > 1.0)
        if renormalized:
            grid = grid / grid.sum()

        cells = tuple(
            tuple(
                ScoreCell(
                    home_goals=h,
                    away_goals=a,
                    probability=float(grid[h, a]),
                    highlighted=bool(reasons[h][a]),
                    highlight_reason="; ".join(reasons[h][a]) or None,
                )
                for a in range(size + 1)
            )
            for h in range(size + 1)
        )
        ranked = sorted((c for row in cells for c in row), key=lambda c: c.probability, reverse=True)

        return ScoreMatrix(
            cells=cells,
            lambda_home=lambda_home,
            lambda_away=lambda_away,
            rho=rho,
            truncated_mass=truncated_mass,
            renormalized=renormalized,
            top_scores=tuple(ranked[:TOP_SCORES]),
            implied=ImpliedProbabilities(
                home=implied["home"],
                draw=implied["draw"],
                away=implied["away"],
                btts_yes=implied["btts_yes"],
                btts_no=1.0 - implied["btts_yes"],
                over25=implied["over25"],
                under25=1.0 - implied["over25"],
                under35=implied["under35"],
            ),
        )

    def _apply_boosts(
        self,
        grid: np.ndarray,
        recommendations: Iterable[RecommendationLike],
        reasons: List[List[List[str]]],
    ) -> bool:
        """Multiply consistent cells in place; True when any cell was boosted."""
        home, away = _goal_indices(grid)
        boosted = False
        for item in recommendations:
            outcome = _outcome_of(item)
            if outcome is None:
                continue
            kind, predicate = _CONSISTENT_CELLS[outcome]
            factor = self.config.boosts.get(kind)
            if factor is None:
                logger.debug("No boost configured for %s; %s not weighted", kind, outcome.value)
                continue
            mask = predicate(home, away)
            grid[mask] *= factor
            reason = f"{OUTCOME_LABELS[outcome]} ({outcome.value}) ×{factor:g}"
            for h, a in zip(*np.nonzero(mask)):
                reasons[h][a].append(reason)
            boosted = boosted or bool(mask.any())
        return boosted
