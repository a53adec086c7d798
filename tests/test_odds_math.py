"""
Tests for core/odds_math.py

Run with: pytest tests/test_odds_math.py -v
"""

import pytest

from matchedge.core.odds_math import (
    double_chance_odds,
    draw_no_bet_odds,
    implied_prob,
    is_valid_odds,
    normalize_odds,
    vigorish,
)


class TestImpliedProb:

    def test_even_money(self):
        assert implied_prob(2.0) == pytest.approx(0.5)

    def test_longer_price(self):
        assert implied_prob(3.5) == pytest.approx(0.285714, abs=1e-6)

    @pytest.mark.parametrize("odds", [1.0, 0.5, 0.0, -2.0])
    def test_rejects_prices_at_or_below_one(self, odds):
        with pytest.raises(ValueError):
            implied_prob(odds)


class TestIsValidOdds:

    def test_missing_and_degenerate_prices(self):
        assert not is_valid_odds(None)
        assert not is_valid_odds(0.0)
        assert not is_valid_odds(1.0)

    def test_normal_price(self):
        assert is_valid_odds(1.01)


class TestNormalizeOdds:

    def test_three_way_example(self):
        """2.00 / 3.50 / 4.00 → implied 0.5, 0.2857, 0.25 over a 1.0357 book."""
        result = normalize_odds([2.00, 3.50, 4.00])
        assert result.vig == pytest.approx(0.035714, abs=1e-6)
        assert result.probs == pytest.approx((0.48276, 0.27586, 0.24138), abs=1e-5)

    def test_probabilities_sum_to_one(self):
        for odds in ([1.40, 4.50, 7.00], [1.91, 1.91], [2.5, 3.1, 2.9], [1.05, 12.0]):
            assert sum(normalize_odds(odds).probs) == pytest.approx(1.0, abs=1e-9)

    def test_vig_is_sum_of_implied_minus_one(self):
        odds = [1.80, 3.60, 4.75]
        expected = sum(1 / o for o in odds) - 1
        assert normalize_odds(odds).vig == pytest.approx(expected, abs=1e-12)

    def test_negative_vig_is_preserved(self):
        """An arbitrage book keeps its negative margin."""
        result = normalize_odds([2.10, 2.10])
        assert result.vig < 0
        assert result.vig == pytest.approx(2 / 2.10 - 1)
        assert result.probs == pytest.approx((0.5, 0.5))

    def test_order_is_preserved(self):
        result = normalize_odds([5.0, 1.5])
        assert result.probs[0] < result.probs[1]

    @pytest.mark.parametrize("odds", [[2.0], [2.0, 3.0, 4.0, 5.0], []])
    def test_wrong_outcome_count(self, odds):
        with pytest.raises(ValueError):
            normalize_odds(odds)

    def test_zero_odds_do_not_divide_by_zero(self):
        with pytest.raises(ValueError):
            normalize_odds([2.0, 0.0, 3.0])

    def test_vigorish_shortcut(self):
        assert vigorish([1.91, 1.91]) == pytest.approx(2 / 1.91 - 1)


class TestCombinators:

    def test_double_chance_is_harmonic_combination(self):
        assert double_chance_odds(4.50, 7.00) == pytest.approx(2.7391, abs=1e-4)

    def test_double_chance_is_symmetric(self):
        assert double_chance_odds(2.0, 3.0) == pytest.approx(double_chance_odds(3.0, 2.0))

    def test_draw_no_bet(self):
        assert draw_no_bet_odds(2.00, 3.50) == pytest.approx(1.4286, abs=1e-4)

    def test_draw_no_bet_shorter_than_side(self):
        assert draw_no_bet_odds(1.40, 4.50) < 1.40

    def test_draw_no_bet_rejects_invalid(self):
        with pytest.raises(ValueError):
            draw_no_bet_odds(2.0, 1.0)
