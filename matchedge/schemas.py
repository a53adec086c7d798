"""
Pydantic request/response schemas for the Match Edge API.

Rule thresholds inside the engine are decimal fractions.  A rule payload
may be authored in percent instead by setting ``unit="percent"``; the
conversion happens here, once, and only for vigorish/probability fields
(``odds_*`` thresholds are decimal odds in either unit).
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from matchedge.core.match import MatchOdds, MatchRecord
from matchedge.core.rules import Condition, ConditionalRule, ConditionGroup
from matchedge.core.vocabulary import ConditionField, Connector, raw_value

OperatorLiteral = Literal[">", "<", ">=", "<=", "=", "!=", "between", "not_between"]
ConnectorLiteral = Literal["AND", "OR"]
MarketLiteral = Literal["1x2", "btts", "ou25"]


def _upper_connectors(v):
    if isinstance(v, list):
        return [str(c).upper() for c in v]
    return v


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

class ConditionSchema(BaseModel):
    """One comparison, e.g. ``vigorish >= 0.10``."""
    type: str = Field(..., description='Context field, e.g. "vigorish" or "probability_home"')
    operator: OperatorLiteral
    value: float
    value_max: Optional[float] = Field(
        None,
        validation_alias=AliasChoices("value_max", "valueMax"),
        description="Upper bound for between / not_between",
    )
    id: Optional[str] = None

    @field_validator("type")
    @classmethod
    def validate_field(cls, v: str) -> str:
        try:
            ConditionField(v)
        except ValueError:
            raise ValueError(f"unknown condition field {v!r}") from None
        return v

    def to_condition(self, scale: float) -> Condition:
        factor = scale if ConditionField(self.type).is_fraction else 1.0
        return Condition.from_dict({
            "type": self.type,
            "operator": self.operator,
            "value": self.value * factor,
            "value_max": self.value_max * factor if self.value_max is not None else None,
            "id": self.id,
        })


class ConditionGroupSchema(BaseModel):
    """Parenthesised sub-expression."""
    type: Literal["group"] = "group"
    conditions: list[Union[ConditionGroupSchema, ConditionSchema]] = Field(..., min_length=1)
    logical_connectors: list[ConnectorLiteral] = Field(
        default_factory=list,
        validation_alias=AliasChoices("logical_connectors", "logicalConnectors"),
    )
    id: Optional[str] = None

    @field_validator("logical_connectors", mode="before")
    @classmethod
    def upper_connectors(cls, v):
        return _upper_connectors(v)

    def to_group(self, scale: float) -> ConditionGroup:
        return ConditionGroup(
            conditions=tuple(_convert_item(c, scale) for c in self.conditions),
            logical_connectors=tuple(Connector(c) for c in self.logical_connectors),
            id=self.id,
        )


def _convert_item(item: Union[ConditionGroupSchema, ConditionSchema], scale: float):
    if isinstance(item, ConditionGroupSchema):
        return item.to_group(scale)
    return item.to_condition(scale)


class RuleSchema(BaseModel):
    """
    Payload describing one conditional rule.

    Validation mirrors :meth:`ConditionalRule.validate`: at least one
    condition, one connector fewer than conditions, known market / action,
    and an action that exists on the rule's market.
    """
    id: str = Field(..., min_length=1, max_length=120)
    name: str = Field(..., min_length=1, max_length=200)
    market: MarketLiteral
    conditions: list[Union[ConditionGroupSchema, ConditionSchema]] = Field(..., min_length=1)
    logical_connectors: list[ConnectorLiteral] = Field(
        default_factory=list,
        validation_alias=AliasChoices("logical_connectors", "logicalConnectors"),
    )
    action: str
    priority: int = 0
    enabled: bool = True
    unit: Literal["decimal", "percent"] = Field(
        "decimal", description='"percent" when thresholds are authored as 0-100'
    )

    @field_validator("logical_connectors", mode="before")
    @classmethod
    def upper_connectors(cls, v):
        return _upper_connectors(v)

    @model_validator(mode="after")
    def validate_rule(self) -> RuleSchema:
        self.to_rule().validate()
        return self

    def to_rule(self) -> ConditionalRule:
        scale = 0.01 if self.unit == "percent" else 1.0
        base = ConditionalRule.from_dict({
            "id": self.id,
            "name": self.name,
            "market": self.market,
            "logical_connectors": self.logical_connectors,
            "action": self.action,
            "priority": self.priority,
            "enabled": self.enabled,
        })
        return ConditionalRule(
            id=base.id,
            name=base.name,
            market=base.market,
            conditions=tuple(_convert_item(c, scale) for c in self.conditions),
            logical_connectors=base.logical_connectors,
            action=base.action,
            priority=base.priority,
            enabled=base.enabled,
        )

    model_config = {
        "json_schema_extra": {
            "example": {
                "id": "contrarian-high-vig",
                "name": "High vig, no clear favourite",
                "market": "1x2",
                "conditions": [
                    {"type": "vigorish", "operator": ">=", "value": 10},
                    {"type": "max_probability_1x2", "operator": "<=", "value": 65},
                ],
                "logical_connectors": ["AND"],
                "action": "recommend_double_chance_least_probable",
                "priority": 5,
                "enabled": True,
                "unit": "percent",
            }
        }
    }


# ---------------------------------------------------------------------------
# Ad-hoc analysis
# ---------------------------------------------------------------------------

class OddsPayload(BaseModel):
    """Decimal odds.  Omit a price to leave its market unpriced."""
    home: Optional[float] = Field(None, gt=1.0)
    draw: Optional[float] = Field(None, gt=1.0)
    away: Optional[float] = Field(None, gt=1.0)
    btts_yes: Optional[float] = Field(None, gt=1.0)
    btts_no: Optional[float] = Field(None, gt=1.0)
    over25: Optional[float] = Field(None, gt=1.0)
    under25: Optional[float] = Field(None, gt=1.0)
    over_under_lines: dict[float, tuple[float, float]] = Field(
        default_factory=dict, description="Extra goal lines: threshold → [over, under]"
    )

    @field_validator("over_under_lines")
    @classmethod
    def validate_lines(cls, v: dict[float, tuple[float, float]]) -> dict[float, tuple[float, float]]:
        for threshold, prices in v.items():
            if any(p <= 1.0 for p in prices):
                raise ValueError(f"goal line {threshold}: decimal odds must be above 1.0")
        return v

    def to_match_odds(self) -> MatchOdds:
        return MatchOdds(**self.model_dump())


class AnalysisRequest(BaseModel):
    """Payload for POST /api/analysis."""
    match_id: str = "adhoc"
    home_team: str = Field("Home", min_length=1)
    away_team: str = Field("Away", min_length=1)
    league: str = ""
    kickoff_utc: Optional[datetime] = None
    odds: OddsPayload
    rules: Optional[list[RuleSchema]] = Field(
        None, description="Rules to evaluate instead of the stored rule set"
    )

    def to_match(self) -> MatchRecord:
        return MatchRecord(
            match_id=self.match_id,
            home_team=self.home_team,
            away_team=self.away_team,
            league=self.league,
            kickoff_utc=self.kickoff_utc,
            odds=self.odds.to_match_odds(),
        )

    model_config = {
        "json_schema_extra": {
            "example": {
                "home_team": "Lyon",
                "away_team": "Nantes",
                "odds": {"home": 1.40, "draw": 4.50, "away": 7.00},
            }
        }
    }


class BatchRequest(BaseModel):
    """Payload for POST /api/analysis/batch.  No ids = every stored match."""
    match_ids: Optional[list[str]] = None
    match_date: Optional[date] = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class FairMarketResponse(BaseModel):
    market: str
    probabilities: dict[str, float]
    vigorish: float
    odds: dict[str, float]
    precomputed: bool


class GoalLineResponse(BaseModel):
    threshold: float
    odds_over: float
    odds_under: float
    p_over: float
    p_under: float
    vigorish: float


class RuleEvaluationResponse(BaseModel):
    rule_id: str
    rule_name: str
    market: str
    action: str
    priority: int
    conditions_met: bool
    details: str


class OpportunityResponse(BaseModel):
    market: str
    predicted_outcome: str
    odds: float
    probability: float
    source_rule_id: str
    source_rule_name: str
    source_rule_priority: int
    rule_index: int
    action: str
    is_inverted: bool
    matched_conditions: str


class ConfidenceTierResponse(BaseModel):
    label: Literal["high", "medium", "low"]
    score: float
    vigorish: float


class RecommendationResponse(BaseModel):
    bet_type: str
    prediction: str
    prediction_label: str
    odds: float
    probability: float
    confidence: Literal["high", "medium"]
    probability_tier: ConfidenceTierResponse
    is_inverted: bool
    source_rule_id: str
    reasons: list[str]


class AnalysisResponse(BaseModel):
    """Full analysis of one match."""
    match_id: str
    home_team: str
    away_team: str
    league: str
    kickoff_utc: Optional[datetime]
    fair_markets: dict[str, FairMarketResponse]
    goal_lines: list[GoalLineResponse]
    context: dict[str, float]
    evaluations: list[RuleEvaluationResponse]
    opportunities: list[OpportunityResponse]
    recommendation: Optional[RecommendationResponse]
    score_matrix: Optional[dict]

    @classmethod
    def from_analysis(cls, analysis) -> AnalysisResponse:
        match = analysis.match
        return cls(
            match_id=match.match_id,
            home_team=match.home_team,
            away_team=match.away_team,
            league=match.league,
            kickoff_utc=match.kickoff_utc,
            fair_markets={
                market.value: FairMarketResponse(
                    market=market.value,
                    probabilities={o.value: p for o, p in fair.probabilities.items()},
                    vigorish=fair.vigorish,
                    odds={o.value: p for o, p in fair.odds.items()},
                    precomputed=fair.precomputed,
                )
                for market, fair in analysis.fair_markets.items()
            },
            goal_lines=[
                GoalLineResponse(
                    threshold=line.threshold,
                    odds_over=line.odds_over,
                    odds_under=line.odds_under,
                    p_over=line.p_over,
                    p_under=line.p_under,
                    vigorish=line.vigorish,
                )
                for line in analysis.goal_lines
            ],
            context=analysis.context.as_dict(),
            evaluations=[
                RuleEvaluationResponse(
                    rule_id=r.rule_id,
                    rule_name=r.rule_name,
                    market=str(raw_value(r.market)),
                    action=str(raw_value(r.action)),
                    priority=r.priority,
                    conditions_met=r.conditions_met,
                    details=r.details,
                )
                for r in analysis.evaluations
            ],
            opportunities=[OpportunityResponse(**o.to_dict()) for o in analysis.opportunities],
            recommendation=(
                RecommendationResponse(**analysis.recommendation.to_dict())
                if analysis.recommendation is not None else None
            ),
            score_matrix=analysis.score_matrix.to_dict() if analysis.score_matrix is not None else None,
        )


class BatchEntryResponse(BaseModel):
    match_id: str
    error: Optional[str] = None
    analysis: Optional[AnalysisResponse] = None


class BatchAnalysisResponse(BaseModel):
    """Response from POST /api/analysis/batch."""
    matches_analyzed: int
    errors: int
    recommendations: int
    rules_loaded: int
    duration_seconds: float
    results: list[BatchEntryResponse]
