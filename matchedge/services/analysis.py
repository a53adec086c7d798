"""
Match analysis orchestration.

Single match (synchronous, pure):
    analyze_match(match, rules, config)
        1. de-margin every priced market, build the evaluation context
        2. detect opportunities with the shared rule engine
        3. keep the top-priority opportunity and convert it for display
        4. build the scoreline matrix, weighted by the surfaced pick

From the stores (asynchronous):
    analyze_match_by_id  — one Match Store read, one Rule Store read
    run_batch_analysis   — rules fetched once for the whole batch, matches
                           fetched once, per-match work fanned out to worker
                           threads under a semaphore.  Results are keyed by
                           match id, so completion order does not matter.

Only store failures (:class:`StoreUnavailableError`) escape a batch.  A
match with unusable data (``ValueError``) or any other per-match failure
gets an error entry and the rest of the batch carries on.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Sequence

from matchedge.core.context import RuleEvaluationContext
from matchedge.core.engine_config import EngineConfig
from matchedge.core.match import FairMarket, GoalLine, MatchRecord, build_goal_lines
from matchedge.core.rule_engine import RuleEvaluationResult
from matchedge.core.rules import ConditionalRule
from matchedge.core.stores import MatchStore, RuleStore, StoreUnavailableError
from matchedge.core.vocabulary import Market
from matchedge.services.opportunity import DetectedOpportunity, OpportunityDetector
from matchedge.services.prioritizer import Recommendation, select_recommendations, to_recommendation
from matchedge.services.score_matrix import ScoreMatrix, ScoreMatrixModel

logger = logging.getLogger(__name__)


class MatchNotFoundError(LookupError):
    """The Match Store has no match with the requested id."""


# ---------------------------------------------------------------------------
# Data containers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MatchAnalysis:
    """Everything the presentation layer needs for one match."""
    match: MatchRecord
    fair_markets: Dict[Market, FairMarket]
    goal_lines: List[GoalLine]
    context: RuleEvaluationContext
    evaluations: List[RuleEvaluationResult]
    opportunities: List[DetectedOpportunity]
    selected: List[DetectedOpportunity]
    recommendations: List[Recommendation]
    score_matrix: Optional[ScoreMatrix]

    @property
    def match_id(self) -> str:
        return self.match.match_id

    @property
    def recommendation(self) -> Optional[Recommendation]:
        return self.recommendations[0] if self.recommendations else None


@dataclass(frozen=True)
class BatchEntry:
    match_id: str
    analysis: Optional[MatchAnalysis] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchResult:
    entries: Dict[str, BatchEntry] = field(default_factory=dict)
    rules_loaded: int = 0
    elapsed_seconds: float = 0.0

    @property
    def succeeded(self) -> Dict[str, MatchAnalysis]:
        return {k: e.analysis for k, e in self.entries.items() if e.ok and e.analysis is not None}

    @property
    def errors(self) -> Dict[str, str]:
        return {k: e.error for k, e in self.entries.items() if e.error is not None}

    @property
    def recommendations(self) -> Dict[str, Recommendation]:
        return {
            k: a.recommendation for k, a in self.succeeded.items()
            if a.recommendation is not None
        }


# ---------------------------------------------------------------------------
# Single match
# ---------------------------------------------------------------------------

def analyze_match(
    match: MatchRecord,
    rules: Sequence[ConditionalRule],
    config: Optional[EngineConfig] = None,
) -> MatchAnalysis:
    """Run the full pipeline for one match.

    Raises:
        ValueError: If the match carries inconsistent precomputed values or
            odds that cannot be de-margined.
    """
    config = config or EngineConfig()
    report = OpportunityDetector(config).run(match, rules)

    selected = select_recommendations(report.opportunities)
    recommendations = [to_recommendation(o, match, config) for o in selected]

    score_matrix = None
    if Market.ONE_X_TWO in report.fair_markets:
        score_matrix = ScoreMatrixModel(config).compute(report.fair_markets, selected)
    else:
        logger.debug("No 1X2 prices for %s; score matrix skipped", match.label)

    if recommendations:
        rec = recommendations[0]
        logger.info(
            "%s: %s %s @ %.2f (rule %s)",
            match.label, rec.bet_type, rec.prediction, rec.odds, rec.source_rule_id,
        )

    return MatchAnalysis(
        match=match,
        fair_markets=report.fair_markets,
        goal_lines=build_goal_lines(match),
        context=report.context,
        evaluations=report.evaluations,
        opportunities=report.opportunities,
        selected=selected,
        recommendations=recommendations,
        score_matrix=score_matrix,
    )


async def analyze_match_by_id(
    match_id: str,
    match_store: MatchStore,
    rule_store: RuleStore,
    config: Optional[EngineConfig] = None,
) -> MatchAnalysis:
    """Fetch one match and the rule set, then analyse it.

    Raises:
        MatchNotFoundError: If the Match Store does not know ``match_id``.
        StoreUnavailableError: If either store read fails.
    """
    match = await match_store.get_match(match_id)
    if match is None:
        raise MatchNotFoundError(match_id)
    rules = await rule_store.get_rules()
    return analyze_match(match, rules, config)


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------

async def run_batch_analysis(
    match_store: MatchStore,
    rule_store: RuleStore,
    match_ids: Optional[Sequence[str]] = None,
    config: Optional[EngineConfig] = None,
    max_concurrency: Optional[int] = None,
    match_date: Optional[date] = None,
) -> BatchResult:
    """Analyse many matches concurrently.

    ``match_ids=None`` analyses every match the store lists (optionally for
    one kickoff date).  Unknown ids get an error entry.
    """
    config = config or EngineConfig()
    limit = max_concurrency or config.batch_concurrency
    started = time.perf_counter()

    rules = await rule_store.get_rules()

    result = BatchResult(rules_loaded=len(rules))
    if match_ids is None:
        matches = await match_store.list_matches(match_date)
    else:
        fetched = await asyncio.gather(*(match_store.get_match(mid) for mid in match_ids))
        matches = []
        for mid, match in zip(match_ids, fetched):
            if match is None:
                result.entries[mid] = BatchEntry(match_id=mid, error="match not found")
            else:
                matches.append(match)

    logger.info("Batch analysis: %d matches, %d rules, concurrency %d", len(matches), len(rules), limit)
    semaphore = asyncio.Semaphore(limit)

    async def _analyse(match: MatchRecord) -> BatchEntry:
        async with semaphore:
            try:
                analysis = await asyncio.to_thread(analyze_match, match, rules, config)
            except StoreUnavailableError:
                raise
            except ValueError as exc:
                logger.warning("Skipping %s (%s): %s", match.match_id, match.label, exc)
                return BatchEntry(match_id=match.match_id, error=str(exc))
            except Exception as exc:
                logger.error("Analysis failed for %s (%s): %s", match.match_id, match.label, exc)
                return BatchEntry(match_id=match.match_id, error=f"analysis failed: {exc}")
            return BatchEntry(match_id=match.match_id, analysis=analysis)

    for entry in await asyncio.gather(*(_analyse(m) for m in matches)):
        result.entries[entry.match_id] = entry

    result.elapsed_seconds = time.perf_counter() - started
    logger.info(
        "Batch analysis done: %d ok, %d errors, %d recommendations in %.2fs",
        len(result.succeeded), len(result.errors), len(result.recommendations),
        result.elapsed_seconds,
    )
    return result
