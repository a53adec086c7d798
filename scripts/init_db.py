#!/usr/bin/env python3
"""
Database initialization script
Creates all tables and optionally seeds the starter rules and a demo match
"""

import asyncio
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Load .env file
from dotenv import load_dotenv
load_dotenv()

from matchedge.models import Base, engine, SessionLocal, Match
from matchedge.services.default_rules import default_rules
from matchedge.services.sql_stores import SqlRuleStore
from datetime import datetime, timedelta
import logging
from sqlalchemy import text, inspect

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def init_database(drop_existing: bool = False):
    """
    Initialize database tables

    Args:
        drop_existing: If True, drops all tables first (DANGER: data loss!)
    """
    logger.info("Initializing Match Edge database...")

    if drop_existing:
        logger.warning("Dropping all existing tables!")
        response = input("Are you sure? This will delete all data. Type 'yes' to confirm: ")
        if response.lower() != 'yes':
            logger.info("Aborted.")
            return False

        Base.metadata.drop_all(bind=engine)
        logger.info("Existing tables dropped")

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")

    inspector = inspect(engine)
    logger.info("Tables: %s", ", ".join(inspector.get_table_names()))
    return True


async def seed_rules() -> int:
    """Save the starter rules that are not stored yet; returns how many were added"""
    store = SqlRuleStore(SessionLocal)
    existing = {r.id for r in await store.get_rules()}
    added = 0
    for rule in default_rules():
        if rule.id in existing:
            continue
        if await store.save_rule(rule):
            added += 1
        else:
            logger.error("Could not save starter rule %s", rule.id)
    logger.info("Seeded %d starter rules (%d already present)", added, len(existing))
    return added


def seed_demo_match():
    """Add one fully priced match for trying the API"""
    db = SessionLocal()
    try:
        if db.query(Match).filter(Match.external_id == "demo-1").first():
            logger.info("Demo match already present")
            return
        db.add(Match(
            external_id="demo-1",
            kickoff_utc=datetime.utcnow().replace(minute=0, second=0, microsecond=0) + timedelta(days=1),
            league="Ligue 1",
            country="France",
            home_team="Lyon",
            away_team="Nantes",
            odds_home=1.40,
            odds_draw=4.50,
            odds_away=7.00,
            odds_btts_yes=1.95,
            odds_btts_no=1.80,
            odds_over25=1.65,
            odds_under25=2.20,
            extra_goal_lines={"3.5": [2.60, 1.45]},
        ))
        db.commit()
        logger.info("Demo match seeded")
    except Exception as e:
        logger.error("Error seeding demo match: %s", e)
        db.rollback()
    finally:
        db.close()


def check_connection():
    """Test database connection"""
    try:
        db = SessionLocal()
        db.execute(text("SELECT 1"))
        db.close()
        logger.info("Database connection successful")
        return True
    except Exception as e:
        logger.error("Database connection failed: %s", e)
        return False


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Initialize Match Edge database")
    parser.add_argument("--drop", action="store_true", help="Drop existing tables (DANGER!)")
    parser.add_argument("--seed", action="store_true", help="Seed starter rules and a demo match")
    parser.add_argument("--check", action="store_true", help="Only check connection")

    args = parser.parse_args()

    if args.check:
        check_connection()
    else:
        if check_connection():
            if init_database(drop_existing=args.drop) and args.seed:
                asyncio.run(seed_rules())
                seed_demo_match()

            logger.info("Database initialization complete!")
        else:
            logger.error("Cannot initialize database - connection failed")
            sys.exit(1)
