"""Engine configuration — every tunable constant in one place.

:class:`EngineConfig` is a frozen dataclass.  Nowhere else in the codebase
should confidence thresholds, score-matrix boosts or the Dixon-Coles ρ table
be hard-coded; components receive a config at construction time.

Typical usage::

    from matchedge.core.engine_config import EngineConfig

    cfg = EngineConfig.from_env()

    # Override a single constant for an experiment:
    from dataclasses import replace
    custom_cfg = replace(cfg, matrix_max_goals=6)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Final, Mapping

#: Prefix of every environment variable read by :meth:`EngineConfig.from_env`.
ENV_PREFIX: Final[str] = "MATCHEDGE_"


def _default_boosts() -> dict[str, float]:
    return {
        "match_result": 1.15,
        "double_chance": 1.06,
        "draw_no_bet": 1.10,
        "btts": 1.12,
        "goal_line": 1.10,
    }


def _default_rho_table() -> tuple[tuple[float, float], ...]:
    # (draw probability strictly above, rho), checked top to bottom
    return ((0.28, 0.15), (0.24, 0.10))


@dataclass(frozen=True)
class EngineConfig:
    """Immutable configuration bundle for the evaluation pipeline.

    Attributes:
        equality_tolerance: Absolute tolerance used by the ``=`` and ``!=``
            operators.  Rule values are decimal fractions, so 0.01 is one
            percentage point.

        confidence_high: Probability strictly above which a pick is labelled
            ``high``.
        confidence_medium: Probability strictly above which a pick is
            labelled ``medium``; anything lower is ``low``.
        confidence_score_cap: Ceiling of the numeric display score (0-100).

        matrix_max_goals: N in the (N+1)×(N+1) scoreline grid.
        fit_max_goals: Goals per side summed when fitting Poisson intensities.
            Never below ``matrix_max_goals``; large enough that the
            truncated tail is negligible.
        lambda_bounds: Search interval for each Poisson intensity.
        default_rho: Dixon-Coles ρ when the draw probability falls below
            every threshold of ``rho_table``.
        rho_table: ``(draw_threshold, rho)`` pairs; the first threshold the
            fair draw probability exceeds selects ρ.
        boosts: Multiplicative weight per recommendation kind applied to
            the scoreline cells consistent with a surfaced pick.

        rule_cache_seconds: TTL of :class:`~matchedge.core.stores.CachedRuleStore`.
        batch_concurrency: Maximum matches evaluated concurrently in a batch.
    """

    # Rule engine
    equality_tolerance: float = 0.01

    # Confidence
    confidence_high: float = 0.70
    confidence_medium: float = 0.60
    confidence_score_cap: float = 89.5

    # Score matrix
    matrix_max_goals: int = 5
    fit_max_goals: int = 10
    lambda_bounds: tuple[float, float] = (0.2, 5.0)
    default_rho: float = 0.05
    rho_table: tuple[tuple[float, float], ...] = field(default_factory=_default_rho_table)
    boosts: Mapping[str, float] = field(default_factory=_default_boosts)

    # Orchestration
    rule_cache_seconds: float = 300.0
    batch_concurrency: int = 8

    def __post_init__(self) -> None:
        if self.matrix_max_goals < 1:
            raise ValueError("matrix_max_goals must be at least 1")
        if not self.confidence_medium <= self.confidence_high:
            raise ValueError("confidence_medium must not exceed confidence_high")
        if self.batch_concurrency < 1:
            raise ValueError("batch_concurrency must be at least 1")
        for kind, factor in self.boosts.items():
            if factor <= 0:
                raise ValueError(f"boost for {kind!r} must be positive")

    def rho_for_draw_probability(self, p_draw: float) -> float:
        for threshold, rho in self.rho_table:
            if p_draw > threshold:
                return rho
        return self.default_rho

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Build a config from ``MATCHEDGE_*`` environment variables.

        Unset variables keep the dataclass defaults.
        """
        defaults = cls()
        return cls(
            equality_tolerance=float(
                os.getenv(f"{ENV_PREFIX}EQUALITY_TOLERANCE", defaults.equality_tolerance)
            ),
            confidence_high=float(
                os.getenv(f"{ENV_PREFIX}CONFIDENCE_HIGH", defaults.confidence_high)
            ),
            confidence_medium=float(
                os.getenv(f"{ENV_PREFIX}CONFIDENCE_MEDIUM", defaults.confidence_medium)
            ),
            matrix_max_goals=int(
                os.getenv(f"{ENV_PREFIX}MATRIX_MAX_GOALS", defaults.matrix_max_goals)
            ),
            default_rho=float(os.getenv(f"{ENV_PREFIX}DEFAULT_RHO", defaults.default_rho)),
            rule_cache_seconds=float(
                os.getenv(f"{ENV_PREFIX}RULE_CACHE_SECONDS", defaults.rule_cache_seconds)
            ),
            batch_concurrency=int(
                os.getenv(f"{ENV_PREFIX}BATCH_CONCURRENCY", defaults.batch_concurrency)
            ),
        )
