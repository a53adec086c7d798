"""
Starter rule set, used to seed an empty Rule Store.

Thresholds are decimal fractions.  Higher priority wins, so the list below
is ordered from most to least important.
"""

from typing import List

from matchedge.core.rules import ConditionalRule

DEFAULT_RULE_DEFINITIONS: List[dict] = [
    # Balanced BTTS markets carry no signal; opt out explicitly
    {
        "id": "anti-btts-5050",
        "name": "Anti-BTTS 50/50",
        "market": "btts",
        "conditions": [
            {"id": "cond-1", "type": "probability_btts_yes", "operator": "between",
             "value": 0.48, "value_max": 0.52},
        ],
        "logical_connectors": [],
        "action": "no_recommendation",
        "priority": 40,
        "enabled": True,
    },
    {
        "id": "default-1x2-low-vig",
        "name": "Low vigorish 1X2",
        "market": "1x2",
        "conditions": [
            {"id": "cond-1", "type": "vigorish", "operator": "<", "value": 0.06},
        ],
        "logical_connectors": [],
        "action": "recommend_most_probable",
        "priority": 30,
        "enabled": True,
    },
    {
        "id": "default-btts-high-prob",
        "name": "BTTS high probability",
        "market": "btts",
        "conditions": [
            {"id": "cond-1", "type": "probability_btts_yes", "operator": ">", "value": 0.55},
            {"id": "cond-2", "type": "odds_btts_yes", "operator": ">", "value": 1.8},
        ],
        "logical_connectors": ["AND"],
        "action": "recommend_btts_yes",
        "priority": 20,
        "enabled": True,
    },
    {
        "id": "default-ou25-over",
        "name": "Over 2.5 high probability",
        "market": "ou25",
        "conditions": [
            {"id": "cond-1", "type": "probability_over25", "operator": ">", "value": 0.60},
            {"id": "cond-2", "type": "odds_over25", "operator": ">", "value": 1.7},
        ],
        "logical_connectors": ["AND"],
        "action": "recommend_over25",
        "priority": 10,
        "enabled": True,
    },
]


def default_rules() -> List[ConditionalRule]:
    """Fresh, validated copies of the starter rules in definition order."""
    rules = [ConditionalRule.from_dict(d) for d in DEFAULT_RULE_DEFINITIONS]
    for rule in rules:
        rule.validate()
    return rules
