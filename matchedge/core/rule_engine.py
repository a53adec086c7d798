"""Rule evaluation — the one canonical engine.

Both the single-match detector and the batch pipeline evaluate rules
through :class:`RuleEngine`; there is no second copy of this logic.

Semantics
---------
* **Units.**  The context and every rule threshold on a vigorish or
  probability field are decimal fractions: 10% is ``0.10``.  Conversion
  from percentages happens once, at the API boundary
  (:mod:`matchedge.schemas`), never here.
* **Field resolution.**  ``vigorish`` means the vigorish of the rule's own
  market; ``vigorish_1x2`` / ``vigorish_btts`` / ``vigorish_ou25`` name a
  market explicitly.  Every other field is the same-named context value.
  An unknown field resolves to ``0.0`` so a typo makes its condition fail
  predictably instead of aborting the other rules.
* **Operators.**  ``=`` / ``!=`` compare within ``equality_tolerance``.
  ``between`` / ``not_between`` are inclusive; a missing ``value_max``
  collapses the range to ``[value, value]``.  An unknown operator, or a
  NaN threshold left by a malformed stored rule, is ``False``.
* **Connectors.**  Results are folded strictly left to right.  There is no
  AND-before-OR precedence: ``a OR b AND c`` is ``(a OR b) AND c``.  A
  :class:`~matchedge.core.rules.ConditionGroup` is folded the same way and
  then enters its parent sequence as a single boolean.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Sequence

from matchedge.core.context import CONTEXT_FIELDS, RuleEvaluationContext
from matchedge.core.rules import Condition, ConditionalRule, ConditionGroup, ConditionItem
from matchedge.core.vocabulary import (
    ActionTag,
    ConditionField,
    Connector,
    Market,
    Operator,
    raw_value,
)

logger = logging.getLogger(__name__)

#: Default absolute tolerance for ``=`` and ``!=`` (one percentage point).
DEFAULT_EQUALITY_TOLERANCE = 0.01


@dataclass(frozen=True, slots=True)
class RuleEvaluationResult:
    """Outcome of evaluating one rule against one match context."""

    rule_id: str
    rule_name: str
    market: Market | str
    action: ActionTag | str
    priority: int
    rule_index: int
    conditions_met: bool
    details: str


class RuleEngine:
    """Evaluates :class:`ConditionalRule` objects against a context."""

    def __init__(self, equality_tolerance: float = DEFAULT_EQUALITY_TOLERANCE):
        self.equality_tolerance = equality_tolerance

    # ------------------------------------------------------------------ #
    #  Field resolution                                                    #
    # ------------------------------------------------------------------ #

    def resolve(
        self,
        field: ConditionField | str,
        context: RuleEvaluationContext,
        market: Market | str,
    ) -> float:
        """Numeric value of ``field`` in ``context``; 0.0 when unknown."""
        name = field.value if isinstance(field, ConditionField) else str(field)
        if name == ConditionField.VIGORISH.value:
            return context.vigorish_for(market)
        if name in CONTEXT_FIELDS:
            return getattr(context, name)
        logger.warning("Unknown condition field %r resolves to 0.0", name)
        return 0.0

    # ------------------------------------------------------------------ #
    #  Evaluation                                                          #
    # ------------------------------------------------------------------ #

    def evaluate_condition(
        self,
        condition: Condition,
        context: RuleEvaluationContext,
        market: Market | str,
    ) -> bool:
        actual = self.resolve(condition.type, context, market)
        return self.compare(actual, condition.operator, condition.value, condition.value_max)

    def compare(
        self,
        actual: float,
        operator: Operator | str,
        value: float,
        value_max: float | None = None,
    ) -> bool:
        if not all(math.isfinite(v) for v in (actual, value, value_max) if v is not None):
            logger.warning("Non-finite comparison %r %s %r evaluates to False", actual, raw_value(operator), value)
            return False
        if operator == Operator.GT:
            return actual > value
        if operator == Operator.LT:
            return actual < value
        if operator == Operator.GTE:
            return actual >= value
        if operator == Operator.LTE:
            return actual <= value
        if operator == Operator.EQ:
            return abs(actual - value) < self.equality_tolerance
        if operator == Operator.NEQ:
            return abs(actual - value) >= self.equality_tolerance
        if operator in (Operator.BETWEEN, Operator.NOT_BETWEEN):
            upper = value if value_max is None else value_max
            inside = value <= actual <= upper
            return inside if operator == Operator.BETWEEN else not inside
        logger.warning("Unknown operator %r evaluates to False", operator)
        return False

    def evaluate_sequence(
        self,
        items: Sequence[ConditionItem],
        connectors: Sequence[Connector | str],
        context: RuleEvaluationContext,
        market: Market | str,
    ) -> bool:
        """Fold ``items`` left to right with ``connectors``."""
        if not items:
            return False
        connectors = _align_connectors(items, connectors)

        result = self._evaluate_item(items[0], context, market)
        for item, connector in zip(items[1:], connectors):
            current = self._evaluate_item(item, context, market)
            if connector == Connector.OR:
                result = result or current
            elif connector == Connector.AND:
                result = result and current
            else:
                logger.warning("Unknown connector %r treated as AND", connector)
                result = result and current
        return result

    def evaluate_rule(self, rule: ConditionalRule, context: RuleEvaluationContext) -> bool:
        return self.evaluate_sequence(rule.conditions, rule.logical_connectors, context, rule.market)

    def evaluate_rules(
        self,
        rules: Iterable[ConditionalRule],
        context: RuleEvaluationContext,
    ) -> list[RuleEvaluationResult]:
        """Evaluate every *enabled* rule, preserving definition order.

        ``rule_index`` on each result is the rule's position in ``rules``
        (disabled rules included), which the prioritizer uses to break ties.
        """
        results: list[RuleEvaluationResult] = []
        for index, rule in enumerate(rules):
            if not rule.enabled:
                continue
            met = self.evaluate_rule(rule, context)
            results.append(RuleEvaluationResult(
                rule_id=rule.id,
                rule_name=rule.name,
                market=rule.market,
                action=rule.action,
                priority=rule.priority,
                rule_index=index,
                conditions_met=met,
                details=self.describe_rule(rule, context, met),
            ))
            logger.debug("Rule %r (%s): %s", rule.name, raw_value(rule.market), "match" if met else "no match")
        return results

    def _evaluate_item(
        self,
        item: ConditionItem,
        context: RuleEvaluationContext,
        market: Market | str,
    ) -> bool:
        if isinstance(item, ConditionGroup):
            return self.evaluate_sequence(item.conditions, item.logical_connectors, context, market)
        return self.evaluate_condition(item, context, market)

    # ------------------------------------------------------------------ #
    #  Provenance                                                          #
    # ------------------------------------------------------------------ #

    def describe_rule(
        self,
        rule: ConditionalRule,
        context: RuleEvaluationContext,
        conditions_met: bool | None = None,
    ) -> str:
        """Human-readable audit trail of a rule against ``context``.

        Example::

            "Vigorish 1X2: 12.0% >= 10.0% ✓ AND Prob. home: 60.0% > 50.0% ✓ → MET"
        """
        if conditions_met is None:
            conditions_met = self.evaluate_rule(rule, context)
        body = self._describe_sequence(rule.conditions, rule.logical_connectors, context, rule.market)
        return f"{body} → {'MET' if conditions_met else 'NOT MET'}"

    def _describe_sequence(
        self,
        items: Sequence[ConditionItem],
        connectors: Sequence[Connector | str],
        context: RuleEvaluationContext,
        market: Market | str,
    ) -> str:
        parts: list[str] = []
        connectors = _align_connectors(items, connectors)
        for position, item in enumerate(items):
            if position > 0:
                parts.append(str(raw_value(connectors[position - 1])))
            if isinstance(item, ConditionGroup):
                inner = self._describe_sequence(item.conditions, item.logical_connectors, context, market)
                parts.append(f"({inner})")
                continue
            actual = self.resolve(item.type, context, market)
            met = self.evaluate_condition(item, context, market)
            expected = _format_value(item.type, item.value)
            if item.operator in (Operator.BETWEEN, Operator.NOT_BETWEEN):
                upper = item.value if item.value_max is None else item.value_max
                expected = f"{expected}..{_format_value(item.type, upper)}"
            parts.append(
                f"{_field_label(item.type, market)}: {_format_value(item.type, actual)} "
                f"{raw_value(item.operator)} {expected} {'✓' if met else '✗'}"
            )
        return " ".join(parts)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _align_connectors(
    items: Sequence[ConditionItem],
    connectors: Sequence[Connector | str],
) -> list[Connector | str]:
    """Pad missing connectors with AND and drop extras.

    A single condition ignores its connectors entirely.
    """
    expected = max(len(items) - 1, 0)
    aligned = list(connectors[:expected])
    if len(connectors) != expected and expected > 0:
        logger.warning(
            "%d connectors for %d conditions (expected %d); padding with AND",
            len(connectors), len(items), expected,
        )
        aligned.extend([Connector.AND] * (expected - len(aligned)))
    return aligned


def _is_fraction(field: ConditionField | str) -> bool:
    if isinstance(field, ConditionField):
        return field.is_fraction
    return not str(field).startswith("odds_")


def _format_value(field: ConditionField | str, value: float) -> str:
    if _is_fraction(field):
        return f"{value * 100:.1f}%"
    return f"{value:.2f}"


def _field_label(field: ConditionField | str, market: Market | str) -> str:
    name = str(raw_value(field))
    if name == ConditionField.VIGORISH.value:
        market_name = market.label if isinstance(market, Market) else str(market).upper()
        return f"Vigorish {market_name}"
    if name.startswith("vigorish_"):
        return f"Vigorish {name.removeprefix('vigorish_').upper()}"
    if name.startswith("max_probability_"):
        return f"Max prob. {name.removeprefix('max_probability_').upper()}"
    if name.startswith("probability_"):
        return "Prob. " + name.removeprefix("probability_").replace("_", " ")
    if name.startswith("odds_"):
        return "Odds " + name.removeprefix("odds_").replace("_", " ")
    return name


_DEFAULT_ENGINE = RuleEngine()


def evaluate_rule(rule: ConditionalRule, context: RuleEvaluationContext) -> bool:
    """Evaluate ``rule`` with the default tolerance."""
    return _DEFAULT_ENGINE.evaluate_rule(rule, context)
