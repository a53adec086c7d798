"""
SQLAlchemy-backed Rule Store and Match Store.

Each call opens its own session from the supplied ``sessionmaker`` and runs
the blocking query in a worker thread (``asyncio.to_thread``) so the event
loop stays free during a batch.

Failure policy:
  - reads (``get_rules``, ``get_match``, ``list_matches``) raise
    :class:`StoreUnavailableError` when the database errors;
  - writes (``save_rule``, ``delete_rule``) roll back and return ``False``.

Precomputed fair columns on a match row are passed through untouched; a
market's fair values are only used when every probability column of that
market is filled.
"""

import asyncio
import logging
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from matchedge.core.match import MatchOdds, MatchRecord, PrecomputedMarket
from matchedge.core.rules import ConditionalRule
from matchedge.core.stores import MatchStore, RuleStore, StoreUnavailableError
from matchedge.core.vocabulary import Market
from matchedge.models import ConditionalRuleRow, Match

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Row ↔ domain conversion
# ---------------------------------------------------------------------------

def rule_from_row(row: ConditionalRuleRow) -> ConditionalRule:
    return ConditionalRule.from_dict({
        "id": row.id,
        "name": row.name,
        "market": row.market,
        "conditions": row.conditions or [],
        "logical_connectors": row.logical_connectors or [],
        "action": row.action,
        "priority": row.priority,
        "enabled": row.enabled,
    })


def _precomputed(row: Match) -> Dict[Market, PrecomputedMarket]:
    columns = {
        Market.ONE_X_TWO: ((row.p_home_fair, row.p_draw_fair, row.p_away_fair), row.vig_1x2),
        Market.BTTS: ((row.p_btts_yes_fair, row.p_btts_no_fair), row.vig_btts),
        Market.OU25: ((row.p_over25_fair, row.p_under25_fair), row.vig_ou25),
    }
    out: Dict[Market, PrecomputedMarket] = {}
    for market, (probs, vig) in columns.items():
        if any(p is None for p in probs):
            continue
        out[market] = PrecomputedMarket(
            probabilities=tuple(float(p) for p in probs),
            vigorish=float(vig) if vig is not None else 0.0,
        )
    return out


def _goal_lines(raw: Optional[dict]) -> Dict[float, tuple]:
    lines: Dict[float, tuple] = {}
    for threshold, prices in (raw or {}).items():
        try:
            over, under = prices
            lines[float(threshold)] = (over, under)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed goal line %r: %r", threshold, prices)
    return lines


def match_from_row(row: Match) -> MatchRecord:
    return MatchRecord(
        match_id=row.external_id,
        home_team=row.home_team,
        away_team=row.away_team,
        league=row.league or "",
        country=row.country,
        kickoff_utc=row.kickoff_utc,
        status=row.status or "scheduled",
        home_score=row.home_score,
        away_score=row.away_score,
        odds=MatchOdds(
            home=row.odds_home,
            draw=row.odds_draw,
            away=row.odds_away,
            btts_yes=row.odds_btts_yes,
            btts_no=row.odds_btts_no,
            over25=row.odds_over25,
            under25=row.odds_under25,
            over_under_lines=_goal_lines(row.extra_goal_lines),
        ),
        precomputed=_precomputed(row),
    )


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------

class SqlRuleStore(RuleStore):
    """Rules in the ``conditional_rules`` table, ordered by ``position``."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    async def get_rules(self) -> List[ConditionalRule]:
        return await asyncio.to_thread(self._get_rules)

    async def save_rule(self, rule: ConditionalRule) -> bool:
        return await asyncio.to_thread(self._save_rule, rule)

    async def delete_rule(self, rule_id: str) -> bool:
        return await asyncio.to_thread(self._delete_rule, rule_id)

    def _get_rules(self) -> List[ConditionalRule]:
        db = self.session_factory()
        try:
            rows = (
                db.query(ConditionalRuleRow)
                .order_by(ConditionalRuleRow.position, ConditionalRuleRow.id)
                .all()
            )
            rules = []
            for row in rows:
                try:
                    rules.append(rule_from_row(row))
                except (TypeError, ValueError, AttributeError) as exc:
                    logger.error("Skipping unreadable rule %r (%s): %s", row.id, row.name, exc)
            return rules
        except SQLAlchemyError as exc:
            logger.error("Rule store read failed: %s", exc)
            raise StoreUnavailableError(f"Rule store read failed: {exc}") from exc
        finally:
            db.close()

    def _save_rule(self, rule: ConditionalRule) -> bool:
        db = self.session_factory()
        try:
            data = rule.to_dict()
            row = db.get(ConditionalRuleRow, rule.id)
            if row is None:
                last = db.query(func.max(ConditionalRuleRow.position)).scalar()
                row = ConditionalRuleRow(id=rule.id, position=(last + 1) if last is not None else 0)
                db.add(row)
            row.name = data["name"]
            row.market = data["market"]
            row.conditions = data["conditions"]
            row.logical_connectors = data["logical_connectors"]
            row.action = data["action"]
            row.priority = data["priority"]
            row.enabled = data["enabled"]
            db.commit()
            logger.info("Saved rule %r (%s)", rule.name, rule.id)
            return True
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Could not save rule %s: %s", rule.id, exc)
            return False
        finally:
            db.close()

    def _delete_rule(self, rule_id: str) -> bool:
        db = self.session_factory()
        try:
            deleted = (
                db.query(ConditionalRuleRow)
                .filter(ConditionalRuleRow.id == rule_id)
                .delete(synchronize_session=False)
            )
            db.commit()
            return deleted > 0
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Could not delete rule %s: %s", rule_id, exc)
            return False
        finally:
            db.close()


class SqlMatchStore(MatchStore):
    """Matches in the ``matches`` table, keyed by ``external_id``."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    async def get_match(self, match_id: str) -> Optional[MatchRecord]:
        return await asyncio.to_thread(self._get_match, match_id)

    async def list_matches(self, match_date: Optional[date] = None) -> List[MatchRecord]:
        return await asyncio.to_thread(self._list_matches, match_date)

    def _get_match(self, match_id: str) -> Optional[MatchRecord]:
        db = self.session_factory()
        try:
            row = db.query(Match).filter(Match.external_id == match_id).first()
            return match_from_row(row) if row is not None else None
        except SQLAlchemyError as exc:
            logger.error("Match store read failed for %s: %s", match_id, exc)
            raise StoreUnavailableError(f"Match store read failed: {exc}") from exc
        finally:
            db.close()

    def _list_matches(self, match_date: Optional[date]) -> List[MatchRecord]:
        db = self.session_factory()
        try:
            query = db.query(Match)
            if match_date is not None:
                start = datetime.combine(match_date, time.min)
                query = query.filter(
                    Match.kickoff_utc >= start,
                    Match.kickoff_utc < start + timedelta(days=1),
                )
            rows = query.order_by(Match.kickoff_utc, Match.id).all()
            return [match_from_row(row) for row in rows]
        except SQLAlchemyError as exc:
            logger.error("Match store read failed: %s", exc)
            raise StoreUnavailableError(f"Match store read failed: {exc}") from exc
        finally:
            db.close()
