"""
Tests for core/engine_config.py

Run with: pytest tests/test_engine_config.py -v
"""

from dataclasses import FrozenInstanceError, replace

import pytest

from matchedge.core.engine_config import EngineConfig


class TestDefaults:

    def test_values(self):
        cfg = EngineConfig()
        assert cfg.equality_tolerance == 0.01
        assert cfg.confidence_high == 0.70
        assert cfg.confidence_medium == 0.60
        assert cfg.matrix_max_goals == 5
        assert cfg.boosts["match_result"] == 1.15
        assert cfg.boosts["double_chance"] == 1.06

    def test_frozen(self):
        with pytest.raises(FrozenInstanceError):
            EngineConfig().matrix_max_goals = 7

    def test_replace(self):
        cfg = replace(EngineConfig(), matrix_max_goals=7)
        assert cfg.matrix_max_goals == 7
        assert EngineConfig().matrix_max_goals == 5


class TestRhoTable:

    @pytest.mark.parametrize("p_draw,rho", [
        (0.31, 0.15),
        (0.28, 0.10),
        (0.25, 0.10),
        (0.24, 0.05),
        (0.18, 0.05),
    ])
    def test_lookup(self, p_draw, rho):
        assert EngineConfig().rho_for_draw_probability(p_draw) == rho

    def test_custom_default(self):
        assert EngineConfig(default_rho=0.0).rho_for_draw_probability(0.2) == 0.0


class TestValidation:

    def test_matrix_size(self):
        with pytest.raises(ValueError, match="matrix_max_goals"):
            EngineConfig(matrix_max_goals=0)

    def test_confidence_order(self):
        with pytest.raises(ValueError, match="confidence_medium"):
            EngineConfig(confidence_high=0.5, confidence_medium=0.6)

    def test_concurrency(self):
        with pytest.raises(ValueError):
            EngineConfig(batch_concurrency=0)

    def test_boosts_positive(self):
        with pytest.raises(ValueError, match="btts"):
            EngineConfig(boosts={"btts": 0.0})


class TestFromEnv:

    def test_unset_keeps_defaults(self, monkeypatch):
        for name in ("EQUALITY_TOLERANCE", "MATRIX_MAX_GOALS", "BATCH_CONCURRENCY"):
            monkeypatch.delenv(f"MATCHEDGE_{name}", raising=False)
        assert EngineConfig.from_env().matrix_max_goals == EngineConfig().matrix_max_goals

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("MATCHEDGE_MATRIX_MAX_GOALS", "7")
        monkeypatch.setenv("MATCHEDGE_CONFIDENCE_HIGH", "0.75")
        monkeypatch.setenv("MATCHEDGE_RULE_CACHE_SECONDS", "30")
        cfg = EngineConfig.from_env()
        assert cfg.matrix_max_goals == 7
        assert cfg.confidence_high == 0.75
        assert cfg.rule_cache_seconds == 30.0

    def test_invalid_env_rejected(self, monkeypatch):
        monkeypatch.setenv("MATCHEDGE_BATCH_CONCURRENCY", "0")
        with pytest.raises(ValueError):
            EngineConfig.from_env()
