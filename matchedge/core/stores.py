"""Dependency-injection interfaces for the Rule Store and Match Store.

The engine never reaches for a module-level store singleton: every pipeline
entry point receives its stores as arguments.  This enables:

* **Unit testing** — inject :class:`InMemoryRuleStore` /
  :class:`InMemoryMatchStore` with fixed data.
* **Persistence swap** — the SQLAlchemy stores in
  :mod:`matchedge.services.sql_stores` satisfy the same contracts.

Reads are one-shot coroutines: a detection pass awaits ``get_rules()`` and
``get_match()`` / ``list_matches()`` once each, with no streaming or partial
results.  A read that cannot be served raises :class:`StoreUnavailableError`,
the only failure the pipeline propagates to its caller; there is no retry
here.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from datetime import date
from typing import Callable, Iterable

from matchedge.core.match import MatchRecord
from matchedge.core.rules import ConditionalRule

logger = logging.getLogger(__name__)


class StoreUnavailableError(RuntimeError):
    """A Rule Store or Match Store read failed."""


class RuleStore(ABC):
    """Provides and persists :class:`ConditionalRule` definitions.

    ``get_rules`` returns rules in definition order; that order is the
    tie-break between rules of equal priority.
    """

    @abstractmethod
    async def get_rules(self) -> list[ConditionalRule]:
        """All rules, enabled or not, in definition order."""

    @abstractmethod
    async def save_rule(self, rule: ConditionalRule) -> bool:
        """Insert or replace ``rule``.  ``False`` when it could not be stored."""

    @abstractmethod
    async def delete_rule(self, rule_id: str) -> bool:
        """Remove a rule.  ``False`` when nothing was deleted."""


class MatchStore(ABC):
    """Provides match records.  The engine never writes back."""

    @abstractmethod
    async def get_match(self, match_id: str) -> MatchRecord | None:
        """One match, or ``None`` when the id is unknown."""

    @abstractmethod
    async def list_matches(self, match_date: date | None = None) -> list[MatchRecord]:
        """Every match, optionally restricted to a kickoff date (UTC)."""


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------


class InMemoryRuleStore(RuleStore):
    def __init__(self, rules: Iterable[ConditionalRule] = ()):
        self._rules: list[ConditionalRule] = list(rules)

    async def get_rules(self) -> list[ConditionalRule]:
        return list(self._rules)

    async def save_rule(self, rule: ConditionalRule) -> bool:
        for position, existing in enumerate(self._rules):
            if existing.id == rule.id:
                self._rules[position] = rule
                return True
        self._rules.append(rule)
        return True

    async def delete_rule(self, rule_id: str) -> bool:
        before = len(self._rules)
        self._rules = [r for r in self._rules if r.id != rule_id]
        return len(self._rules) < before


class InMemoryMatchStore(MatchStore):
    def __init__(self, matches: Iterable[MatchRecord] = ()):
        self._matches: dict[str, MatchRecord] = {m.match_id: m for m in matches}

    async def get_match(self, match_id: str) -> MatchRecord | None:
        return self._matches.get(match_id)

    async def list_matches(self, match_date: date | None = None) -> list[MatchRecord]:
        matches = list(self._matches.values())
        if match_date is None:
            return matches
        return [
            m for m in matches
            if m.kickoff_utc is not None and m.kickoff_utc.date() == match_date
        ]


# ---------------------------------------------------------------------------
# Caching
# ---------------------------------------------------------------------------


class CachedRuleStore(RuleStore):
    """TTL cache in front of another :class:`RuleStore`.

    Rules change rarely and are read once per match, so a dashboard load of
    many matches would otherwise hit the backing store repeatedly.  Any
    successful mutation through this wrapper clears the cache.
    """

    def __init__(
        self,
        inner: RuleStore,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.inner = inner
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._rules: list[ConditionalRule] | None = None
        self._fetched_at = 0.0

    async def get_rules(self) -> list[ConditionalRule]:
        now = self._clock()
        if self._rules is not None and now - self._fetched_at < self.ttl_seconds:
            return list(self._rules)
        self._rules = await self.inner.get_rules()
        self._fetched_at = now
        logger.debug("Rule cache refreshed: %d rules", len(self._rules))
        return list(self._rules)

    async def save_rule(self, rule: ConditionalRule) -> bool:
        saved = await self.inner.save_rule(rule)
        if saved:
            self.clear_cache()
        return saved

    async def delete_rule(self, rule_id: str) -> bool:
        deleted = await self.inner.delete_rule(rule_id)
        if deleted:
            self.clear_cache()
        return deleted

    def clear_cache(self) -> None:
        self._rules = None
        self._fetched_at = 0.0
