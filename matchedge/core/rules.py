"""Rule definitions as data.

A :class:`ConditionalRule` is an ordered list of conditions joined by
``AND`` / ``OR`` connectors plus the action to take when the whole
expression holds.  Rules are owned by the Rule Store; the engine only reads
them, so every type here is frozen.

Two entry points build rules:

* :meth:`ConditionalRule.from_dict` — **permissive**.  Used on data coming
  back from a store.  Unknown fields, operators, markets or actions are kept
  as raw strings and a non-numeric threshold becomes NaN, so a single bad
  rule evaluates to ``False`` instead of aborting the evaluation of every
  other rule.
* :meth:`ConditionalRule.validate` — **strict**.  Used before a rule is
  saved (and by the API schemas) to reject structurally invalid input.

Both the snake_case keys used by the SQL store and the camelCase keys used
by older JSON exports (``logicalConnectors``, ``valueMax``) are accepted.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Union

from matchedge.core.vocabulary import (
    ACTION_OPTIONS,
    ActionTag,
    ConditionField,
    Connector,
    Market,
    Operator,
    parse_enum,
    raw_value,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Condition:
    """A single comparison of a context field against a threshold.

    Attributes:
        type: Context field to read.  A raw string when not recognised.
        operator: Comparison operator.  A raw string when not recognised.
        value: Threshold, in decimal fractions for vigorish / probability
            fields (0.10 means 10%) and decimal odds for ``odds_*`` fields.
        value_max: Upper bound for ``between`` / ``not_between``.  When
            missing the range degenerates to ``[value, value]``.
        id: Optional identifier carried through from the store.
    """

    type: ConditionField | str
    operator: Operator | str
    value: float
    value_max: float | None = None
    id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Condition:
        value_max = data.get("value_max", data.get("valueMax"))
        return cls(
            type=parse_enum(ConditionField, data.get("type")),
            operator=parse_enum(Operator, data.get("operator")),
            value=_as_float(data.get("value", 0.0)),
            value_max=_as_float(value_max) if value_max is not None else None,
            id=data.get("id"),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "type": raw_value(self.type),
            "operator": raw_value(self.operator),
            "value": self.value,
        }
        if self.value_max is not None:
            out["value_max"] = self.value_max
        if self.id is not None:
            out["id"] = self.id
        return out


@dataclass(frozen=True, slots=True)
class ConditionGroup:
    """A parenthesised sub-expression, evaluated as one boolean in its parent."""

    conditions: tuple[Union[Condition, ConditionGroup], ...]
    logical_connectors: tuple[Connector | str, ...] = ()
    id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConditionGroup:
        return cls(
            conditions=_parse_items(data.get("conditions") or []),
            logical_connectors=_parse_connectors(data),
            id=data.get("id"),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "type": "group",
            "conditions": [c.to_dict() for c in self.conditions],
            "logical_connectors": [raw_value(c) for c in self.logical_connectors],
        }
        if self.id is not None:
            out["id"] = self.id
        return out


ConditionItem = Union[Condition, ConditionGroup]


@dataclass(frozen=True, slots=True)
class ConditionalRule:
    """A user-authored rule: ``conditions → action`` at a given priority.

    Higher ``priority`` wins when several rules fire for the same match;
    equal priorities are resolved by definition order (the order in which
    the Rule Store returns rules).
    """

    id: str
    name: str
    market: Market | str
    conditions: tuple[ConditionItem, ...]
    logical_connectors: tuple[Connector | str, ...] = ()
    action: ActionTag | str = ActionTag.NO_RECOMMENDATION
    priority: int = 0
    enabled: bool = True

    # ------------------------------------------------------------------ #
    #  Serialisation                                                       #
    # ------------------------------------------------------------------ #

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConditionalRule:
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            market=parse_enum(Market, data.get("market")),
            conditions=_parse_items(data.get("conditions") or []),
            logical_connectors=_parse_connectors(data),
            action=parse_enum(ActionTag, data.get("action")),
            priority=_as_int(data.get("priority", 0)),
            enabled=bool(data.get("enabled", True)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "market": raw_value(self.market),
            "conditions": [c.to_dict() for c in self.conditions],
            "logical_connectors": [raw_value(c) for c in self.logical_connectors],
            "action": raw_value(self.action),
            "priority": self.priority,
            "enabled": self.enabled,
        }

    # ------------------------------------------------------------------ #
    #  Validation                                                          #
    # ------------------------------------------------------------------ #

    def problems(self) -> list[str]:
        """Every structural problem with this rule; empty when valid."""
        issues: list[str] = []
        if not self.name.strip():
            issues.append("rule name is empty")
        if not isinstance(self.market, Market):
            issues.append(f"unknown market {self.market!r}")
        if not isinstance(self.action, ActionTag):
            issues.append(f"unknown action {self.action!r}")
        elif isinstance(self.market, Market) and self.action not in ACTION_OPTIONS[self.market]:
            issues.append(
                f"action {self.action.value!r} is not available on market {self.market.value!r}"
            )
        _sequence_problems(self.conditions, self.logical_connectors, "rule", issues)
        return issues

    def validate(self) -> None:
        """Raise ``ValueError`` listing every problem when the rule is malformed."""
        issues = self.problems()
        if issues:
            raise ValueError(f"Invalid rule {self.name or self.id!r}: " + "; ".join(issues))

    @property
    def is_valid(self) -> bool:
        return not self.problems()


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _as_float(raw: Any) -> float:
    """``float(raw)``, or NaN when ``raw`` is not a number."""
    try:
        return float(raw)
    except (TypeError, ValueError):
        logger.warning("Non-numeric condition value %r; the condition will not match", raw)
        return math.nan


def _as_int(raw: Any) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        logger.warning("Non-numeric rule priority %r; using 0", raw)
        return 0


def _parse_items(items: list[dict[str, Any]]) -> tuple[ConditionItem, ...]:
    parsed: list[ConditionItem] = []
    for item in items:
        if item.get("type") == "group":
            parsed.append(ConditionGroup.from_dict(item))
        else:
            parsed.append(Condition.from_dict(item))
    return tuple(parsed)


def _parse_connectors(data: dict[str, Any]) -> tuple[Connector | str, ...]:
    raw = data.get("logical_connectors", data.get("logicalConnectors")) or []
    return tuple(parse_enum(Connector, str(c).upper()) for c in raw)


def _sequence_problems(
    conditions: tuple[ConditionItem, ...],
    connectors: tuple[Connector | str, ...],
    where: str,
    issues: list[str],
) -> None:
    if not conditions:
        issues.append(f"{where} has no conditions")
    elif len(connectors) != len(conditions) - 1:
        issues.append(
            f"{where} has {len(connectors)} connectors for {len(conditions)} conditions "
            f"(expected {len(conditions) - 1})"
        )
    for connector in connectors:
        if not isinstance(connector, Connector):
            issues.append(f"unknown connector {connector!r}")
    for position, item in enumerate(conditions, start=1):
        if isinstance(item, ConditionGroup):
            _sequence_problems(item.conditions, item.logical_connectors, f"group {position}", issues)
            continue
        if not isinstance(item.type, ConditionField):
            issues.append(f"condition {position}: unknown field {item.type!r}")
        if not math.isfinite(item.value) or (item.value_max is not None and not math.isfinite(item.value_max)):
            issues.append(f"condition {position}: value is not a finite number")
        if not isinstance(item.operator, Operator):
            issues.append(f"condition {position}: unknown operator {item.operator!r}")
        elif (
            item.operator in (Operator.BETWEEN, Operator.NOT_BETWEEN)
            and item.value_max is not None
            and item.value_max < item.value
        ):
            issues.append(f"condition {position}: value_max is below value")
