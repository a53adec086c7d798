"""
Tests for services/analysis.py — single-match pipeline and batch orchestration

Run with: pytest tests/test_analysis.py -v
"""

import asyncio
from datetime import date, datetime

import pytest

from matchedge.core.match import MatchOdds, MatchRecord, PrecomputedMarket
from matchedge.core.rules import Condition, ConditionalRule
from matchedge.core.stores import (
    InMemoryMatchStore,
    InMemoryRuleStore,
    MatchStore,
    StoreUnavailableError,
)
from matchedge.core.vocabulary import ActionTag, ConditionField, Market, Operator, Outcome
from matchedge.services import analysis as analysis_module
from matchedge.services.analysis import (
    MatchNotFoundError,
    analyze_match,
    analyze_match_by_id,
    run_batch_analysis,
)
from matchedge.services.default_rules import default_rules


def _make_match(match_id="m1", kickoff=None, **odds):
    prices = dict(home=1.80, draw=3.80, away=4.60, btts_yes=1.70, btts_no=2.10,
                  over25=1.75, under25=2.05, over_under_lines={3.5: (2.70, 1.45)})
    prices.update(odds)
    return MatchRecord(match_id, "Lens", "Brest", MatchOdds(**prices), kickoff_utc=kickoff)


def _broken_match(match_id="bad"):
    """Precomputed 1X2 with two probabilities: build_fair_markets raises ValueError."""
    return MatchRecord(
        match_id, "X", "Y", MatchOdds(home=2.0, draw=3.4, away=3.8),
        precomputed={Market.ONE_X_TWO: PrecomputedMarket((0.5, 0.5), 0.05)},
    )


def _refund_if_draw_rule():
    return ConditionalRule(
        id="dnb", name="Refund if draw", market=Market.ONE_X_TWO,
        conditions=(Condition(ConditionField.VIGORISH_1X2, Operator.GT, -1.0),),
        action=ActionTag.RECOMMEND_REFUND_IF_DRAW,
    )


class CountingRuleStore(InMemoryRuleStore):
    def __init__(self, rules=()):
        super().__init__(rules)
        self.reads = 0

    async def get_rules(self):
        self.reads += 1
        return await super().get_rules()


class DownMatchStore(MatchStore):
    async def get_match(self, match_id):
        raise StoreUnavailableError("match store down")

    async def list_matches(self, match_date=None):
        raise StoreUnavailableError("match store down")


class TestAnalyzeMatch:

    def test_default_rules_pick(self):
        # 1X2 vig ≈ 0.036 < 0.06 → "Low vigorish 1X2" fires on the favourite;
        # it outranks the BTTS and over 2.5 rules.
        analysis = analyze_match(_make_match(), default_rules())
        rec = analysis.recommendation
        assert rec is not None
        assert rec.source_rule_id == "default-1x2-low-vig"
        assert rec.prediction == "1"
        assert rec.odds == 1.80
        assert len(analysis.recommendations) == 1
        assert {o.source_rule_id for o in analysis.opportunities} >= {"default-1x2-low-vig"}

    def test_matrix_weighted_by_pick(self):
        analysis = analyze_match(_make_match(), default_rules())
        matrix = analysis.score_matrix
        assert matrix is not None
        assert matrix.renormalized
        assert matrix.cell(1, 0).highlighted
        assert not matrix.cell(0, 1).highlighted

    def test_goal_lines_and_context(self):
        analysis = analyze_match(_make_match(), [])
        assert [gl.threshold for gl in analysis.goal_lines] == [3.5]
        assert analysis.context.odds_home == 1.80
        assert analysis.recommendation is None
        assert analysis.score_matrix is not None
        assert not analysis.score_matrix.renormalized

    def test_no_1x2_means_no_matrix(self):
        match = _make_match(home=None)
        analysis = analyze_match(match, default_rules())
        assert Market.ONE_X_TWO not in analysis.fair_markets
        assert analysis.score_matrix is None

    def test_inconsistent_precomputed_raises(self):
        with pytest.raises(ValueError, match="expected 3"):
            analyze_match(_broken_match(), default_rules())

    def test_precomputed_only_match(self):
        match = MatchRecord(
            "pre", "Lens", "Brest", MatchOdds(),
            precomputed={Market.ONE_X_TWO: PrecomputedMarket((0.55, 0.25, 0.20), 0.04)},
        )
        analysis = analyze_match(match, [_refund_if_draw_rule()])
        assert analysis.fair_markets[Market.ONE_X_TWO].precomputed
        assert analysis.context.probability_home == 0.55
        assert analysis.evaluations[0].conditions_met
        assert analysis.opportunities == []
        assert analysis.recommendation is None
        assert analysis.score_matrix is not None


class TestAnalyzeById:

    def test_found(self):
        analysis = asyncio.run(analyze_match_by_id(
            "m1", InMemoryMatchStore([_make_match()]), InMemoryRuleStore(default_rules()),
        ))
        assert analysis.match_id == "m1"

    def test_not_found(self):
        with pytest.raises(MatchNotFoundError):
            asyncio.run(analyze_match_by_id("zz", InMemoryMatchStore(), InMemoryRuleStore()))


class TestBatch:

    def test_rules_fetched_once(self):
        matches = [_make_match(f"m{i}") for i in range(6)]
        rules = CountingRuleStore(default_rules())
        result = asyncio.run(run_batch_analysis(InMemoryMatchStore(matches), rules, max_concurrency=2))
        assert rules.reads == 1
        assert result.rules_loaded == 4
        assert set(result.succeeded) == {f"m{i}" for i in range(6)}
        assert set(result.recommendations) == set(result.succeeded)

    def test_bad_match_isolated(self):
        store = InMemoryMatchStore([_make_match("good"), _broken_match("bad")])
        result = asyncio.run(run_batch_analysis(store, InMemoryRuleStore(default_rules())))
        assert set(result.succeeded) == {"good"}
        assert "expected 3" in result.errors["bad"]
        assert not result.entries["bad"].ok

    def test_certain_draw_does_not_break_batch(self):
        certain_draw = MatchRecord(
            "draw", "X", "Y", MatchOdds(home=2.0, draw=3.4, away=3.8),
            precomputed={Market.ONE_X_TWO: PrecomputedMarket((0.0, 1.0, 0.0), 0.0)},
        )
        store = InMemoryMatchStore([_make_match("good"), certain_draw])
        result = asyncio.run(run_batch_analysis(store, InMemoryRuleStore([_refund_if_draw_rule()])))
        assert set(result.succeeded) == {"good", "draw"}
        assert result.recommendations["good"].prediction == "DNB1"
        assert "draw" not in result.recommendations

    def test_unexpected_failure_isolated(self, monkeypatch):
        real = analysis_module.analyze_match

        def flaky(match, rules, config=None):
            if match.match_id == "bad":
                raise ZeroDivisionError("float division by zero")
            return real(match, rules, config)

        monkeypatch.setattr(analysis_module, "analyze_match", flaky)
        store = InMemoryMatchStore([_make_match("good"), _make_match("bad")])
        result = asyncio.run(run_batch_analysis(store, InMemoryRuleStore(default_rules())))
        assert set(result.succeeded) == {"good"}
        assert "float division by zero" in result.errors["bad"]

    def test_explicit_ids_with_unknown(self):
        store = InMemoryMatchStore([_make_match("m1"), _make_match("m2")])
        result = asyncio.run(run_batch_analysis(
            store, InMemoryRuleStore(default_rules()), match_ids=["m2", "ghost"],
        ))
        assert set(result.succeeded) == {"m2"}
        assert result.errors == {"ghost": "match not found"}

    def test_filtered_by_date(self):
        store = InMemoryMatchStore([
            _make_match("sat", kickoff=datetime(2026, 3, 14, 15, 0)),
            _make_match("sun", kickoff=datetime(2026, 3, 15, 15, 0)),
        ])
        result = asyncio.run(run_batch_analysis(
            store, InMemoryRuleStore(), match_date=date(2026, 3, 15),
        ))
        assert list(result.entries) == ["sun"]

    def test_store_failure_propagates(self):
        with pytest.raises(StoreUnavailableError):
            asyncio.run(run_batch_analysis(DownMatchStore(), InMemoryRuleStore(default_rules())))

    def test_results_match_single_analysis(self):
        match = _make_match()
        single = analyze_match(match, default_rules())
        batch = asyncio.run(run_batch_analysis(
            InMemoryMatchStore([match]), InMemoryRuleStore(default_rules()),
        ))
        rec = batch.recommendations["m1"]
        assert rec.prediction == single.recommendation.prediction
        assert rec.probability == pytest.approx(single.recommendation.probability)
        assert Outcome(rec.prediction) is Outcome.HOME
