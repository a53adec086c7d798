"""
Tests for schemas.py — rule payload validation and unit conversion

Run with: pytest tests/test_schemas.py -v
"""

import pytest
from pydantic import ValidationError

from matchedge.core.rules import ConditionGroup
from matchedge.core.vocabulary import ActionTag, Connector, ConditionField, Market
from matchedge.schemas import AnalysisRequest, RuleSchema
from matchedge.services.default_rules import DEFAULT_RULE_DEFINITIONS, default_rules


def _payload(**overrides):
    data = {
        "id": "btts-value",
        "name": "BTTS value",
        "market": "btts",
        "conditions": [
            {"type": "probability_btts_yes", "operator": "between", "value": 55, "valueMax": 65},
            {"type": "odds_btts_yes", "operator": ">", "value": 1.8},
        ],
        "logicalConnectors": ["AND"],
        "action": "recommend_btts_yes",
        "priority": 3,
        "unit": "percent",
    }
    data.update(overrides)
    return data


class TestRuleSchema:

    def test_percent_converted_odds_untouched(self):
        rule = RuleSchema.model_validate(_payload()).to_rule()
        prob, odds = rule.conditions
        assert prob.type is ConditionField.PROBABILITY_BTTS_YES
        assert prob.value == pytest.approx(0.55)
        assert prob.value_max == pytest.approx(0.65)
        assert odds.value == 1.8
        assert rule.market is Market.BTTS
        assert rule.action is ActionTag.RECOMMEND_BTTS_YES
        assert rule.logical_connectors == (Connector.AND,)

    def test_decimal_unit_is_default(self):
        data = _payload()
        del data["unit"]
        data["conditions"][0].update(value=0.55, valueMax=0.65)
        rule = RuleSchema.model_validate(data).to_rule()
        assert rule.conditions[0].value == 0.55

    def test_nested_group(self):
        data = _payload(
            conditions=[
                {"type": "vigorish", "operator": "<", "value": 6},
                {"type": "group", "logical_connectors": ["or"], "conditions": [
                    {"type": "probability_btts_yes", "operator": ">", "value": 60},
                    {"type": "odds_btts_yes", "operator": ">", "value": 2.1},
                ]},
            ],
        )
        rule = RuleSchema.model_validate(data).to_rule()
        group = rule.conditions[1]
        assert isinstance(group, ConditionGroup)
        assert group.logical_connectors == (Connector.OR,)
        assert group.conditions[0].value == pytest.approx(0.60)
        assert group.conditions[1].value == 2.1
        assert rule.is_valid

    @pytest.mark.parametrize("overrides", [
        {"market": "corners"},
        {"action": "recommend_home"},          # not a BTTS action
        {"action": "recommend_moon"},
        {"logicalConnectors": []},
        {"logicalConnectors": ["XOR"]},
        {"conditions": []},
        {"name": ""},
    ])
    def test_rejected(self, overrides):
        with pytest.raises(ValidationError):
            RuleSchema.model_validate(_payload(**overrides))

    def test_unknown_field_rejected(self):
        data = _payload(conditions=[{"type": "probabilty_home", "operator": ">", "value": 50}],
                        logicalConnectors=[])
        with pytest.raises(ValidationError):
            RuleSchema.model_validate(data)


class TestDefaultRules:

    def test_all_valid_and_ordered(self):
        rules = default_rules()
        assert [r.id for r in rules] == [d["id"] for d in DEFAULT_RULE_DEFINITIONS]
        assert [r.priority for r in rules] == sorted((r.priority for r in rules), reverse=True)

    def test_accepted_by_schema(self):
        for definition in DEFAULT_RULE_DEFINITIONS:
            assert RuleSchema.model_validate(definition).to_rule().to_dict() == definition


class TestAnalysisRequest:

    def test_to_match(self):
        request = AnalysisRequest.model_validate({
            "home_team": "Lens", "away_team": "Brest",
            "odds": {"home": 1.8, "draw": 3.8, "away": 4.6, "over_under_lines": {"1.5": [1.25, 3.80]}},
        })
        match = request.to_match()
        assert match.match_id == "adhoc"
        assert match.odds.prices(Market.ONE_X_TWO) == (1.8, 3.8, 4.6)
        assert match.odds.over_under_lines == {1.5: (1.25, 3.80)}

    def test_goal_line_odds_validated(self):
        with pytest.raises(ValidationError):
            AnalysisRequest.model_validate({"odds": {"over_under_lines": {"2.5": [1.0, 3.0]}}})
