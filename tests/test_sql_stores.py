"""
Tests for services/sql_stores.py — SQLAlchemy Rule Store and Match Store

Uses an in-memory SQLite database shared across threads (StaticPool), so
the stores' worker-thread queries see the rows inserted by the test.

Run with: pytest tests/test_sql_stores.py -v
"""

import asyncio
import logging
from datetime import date, datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from matchedge.core.rules import ConditionalRule
from matchedge.core.stores import StoreUnavailableError
from matchedge.core.vocabulary import Market
from matchedge.models import Base, ConditionalRuleRow, Match
from matchedge.services.default_rules import default_rules
from matchedge.services.sql_stores import SqlMatchStore, SqlRuleStore, match_from_row


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


def _add_match(factory, **fields):
    values = dict(
        external_id="m1",
        home_team="Lyon",
        away_team="Nantes",
        league="Ligue 1",
        kickoff_utc=datetime(2026, 3, 14, 20, 0),
        odds_home=1.40, odds_draw=4.50, odds_away=7.00,
    )
    values.update(fields)
    db = factory()
    db.add(Match(**values))
    db.commit()
    db.close()


def _failing_factory(**side_effects):
    session = MagicMock()
    for attr, exc in side_effects.items():
        getattr(session, attr).side_effect = exc
    factory = MagicMock(return_value=session)
    return factory, session


class TestSqlRuleStore:

    def test_round_trip_keeps_definition_order(self, session_factory):
        store = SqlRuleStore(session_factory)
        rules = default_rules()
        for rule in reversed(rules):
            assert asyncio.run(store.save_rule(rule)) is True

        loaded = asyncio.run(store.get_rules())
        assert [r.id for r in loaded] == [r.id for r in reversed(rules)]
        by_id = {r.id: r for r in loaded}
        for rule in rules:
            assert by_id[rule.id].to_dict() == rule.to_dict()

    def test_update_keeps_position(self, session_factory):
        store = SqlRuleStore(session_factory)
        first, second = default_rules()[:2]
        asyncio.run(store.save_rule(first))
        asyncio.run(store.save_rule(second))

        renamed = ConditionalRule.from_dict({**first.to_dict(), "name": "Renamed", "priority": 1})
        asyncio.run(store.save_rule(renamed))

        loaded = asyncio.run(store.get_rules())
        assert [r.id for r in loaded] == [first.id, second.id]
        assert loaded[0].name == "Renamed"
        assert loaded[0].priority == 1

    def test_delete(self, session_factory):
        store = SqlRuleStore(session_factory)
        rule = default_rules()[0]
        asyncio.run(store.save_rule(rule))
        assert asyncio.run(store.delete_rule(rule.id)) is True
        assert asyncio.run(store.delete_rule(rule.id)) is False
        assert asyncio.run(store.get_rules()) == []

    def test_read_failure_raises(self):
        factory, session = _failing_factory(query=SQLAlchemyError("database is locked"))
        with pytest.raises(StoreUnavailableError):
            asyncio.run(SqlRuleStore(factory).get_rules())
        session.close.assert_called_once()

    def test_write_failure_rolls_back(self):
        factory, session = _failing_factory(get=SQLAlchemyError("disk I/O error"))
        assert asyncio.run(SqlRuleStore(factory).save_rule(default_rules()[0])) is False
        session.rollback.assert_called_once()
        session.close.assert_called_once()

    def test_malformed_stored_rules_do_not_abort_load(self, session_factory, caplog):
        good = default_rules()[0]
        store = SqlRuleStore(session_factory)
        asyncio.run(store.save_rule(good))
        db = session_factory()
        db.add(ConditionalRuleRow(
            id="null-value", name="Null threshold", market="1x2",
            conditions=[{"type": "vigorish", "operator": ">=", "value": None}],
            logical_connectors=[], action="recommend_home", priority=5, position=1,
        ))
        db.add(ConditionalRuleRow(
            id="garbled", name="Garbled", market="1x2",
            conditions=["vigorish >= 0.1"],
            logical_connectors=[], action="recommend_home", priority=5, position=2,
        ))
        db.commit()
        db.close()

        with caplog.at_level(logging.ERROR, logger="matchedge.services.sql_stores"):
            loaded = asyncio.run(store.get_rules())

        assert [r.id for r in loaded] == [good.id, "null-value"]
        assert loaded[0].to_dict() == good.to_dict()
        assert loaded[1].problems() == ["condition 1: value is not a finite number"]
        assert "garbled" in caplog.text


class TestSqlMatchStore:

    def test_get_match(self, session_factory):
        _add_match(
            session_factory,
            odds_btts_yes=1.95, odds_btts_no=1.80,
            extra_goal_lines={"3.5": [2.60, 1.50]},
        )
        match = asyncio.run(SqlMatchStore(session_factory).get_match("m1"))
        assert match.match_id == "m1"
        assert match.label == "Lyon vs Nantes"
        assert match.odds.home == 1.40
        assert match.odds.btts_yes == 1.95
        assert match.odds.prices(Market.OU25) is None
        assert match.odds.over_under_lines == {3.5: (2.60, 1.50)}
        assert match.precomputed == {}

    def test_unknown_match(self, session_factory):
        assert asyncio.run(SqlMatchStore(session_factory).get_match("nope")) is None

    def test_precomputed_columns(self, session_factory):
        _add_match(
            session_factory,
            p_home_fair=0.66, p_draw_fair=0.21, p_away_fair=0.13, vig_1x2=0.08,
            # incomplete market → derived from odds instead
            p_btts_yes_fair=0.5,
        )
        match = asyncio.run(SqlMatchStore(session_factory).get_match("m1"))
        assert set(match.precomputed) == {Market.ONE_X_TWO}
        assert match.precomputed[Market.ONE_X_TWO].probabilities == (0.66, 0.21, 0.13)
        assert match.precomputed[Market.ONE_X_TWO].vigorish == 0.08

    def test_list_by_kickoff_date(self, session_factory):
        _add_match(session_factory, external_id="a", kickoff_utc=datetime(2026, 3, 14, 0, 0))
        _add_match(session_factory, external_id="b", kickoff_utc=datetime(2026, 3, 14, 23, 59))
        _add_match(session_factory, external_id="c", kickoff_utc=datetime(2026, 3, 15, 0, 0))
        store = SqlMatchStore(session_factory)

        assert [m.match_id for m in asyncio.run(store.list_matches(date(2026, 3, 14)))] == ["a", "b"]
        assert len(asyncio.run(store.list_matches())) == 3

    def test_read_failure_raises(self):
        factory, _ = _failing_factory(query=SQLAlchemyError("connection refused"))
        with pytest.raises(StoreUnavailableError):
            asyncio.run(SqlMatchStore(factory).list_matches())


class TestMatchFromRow:

    def test_malformed_goal_line_ignored(self):
        row = Match(
            external_id="x", home_team="A", away_team="B",
            extra_goal_lines={"1.5": [1.20, 4.00], "4.5": "junk"},
        )
        match = match_from_row(row)
        assert match.odds.over_under_lines == {1.5: (1.20, 4.00)}

    def test_defaults(self):
        match = match_from_row(Match(external_id="x", home_team="A", away_team="B"))
        assert match.league == ""
        assert match.status == "scheduled"
        assert match.odds.prices(Market.ONE_X_TWO) is None
