"""
Database models for Match Edge
SQLAlchemy ORM, SQLite by default (any SQLAlchemy URL via DATABASE_URL)
"""

from sqlalchemy import (
    create_engine,
    Column,
    Integer,
    String,
    Float,
    DateTime,
    Boolean,
    JSON,
)
from sqlalchemy.orm import declarative_base, sessionmaker
from datetime import datetime
import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./matchedge.db")


def make_engine(url: str):
    """Engine for ``url``; SQLite connections may be used from worker threads."""
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, pool_pre_ping=True, echo=False, connect_args=connect_args)


engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class Match(Base):
    """One fixture with its bookmaker odds and optional upstream fair values"""

    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(String, unique=True, index=True, nullable=False)
    kickoff_utc = Column(DateTime, index=True)
    league = Column(String, default="")
    country = Column(String)
    home_team = Column(String, nullable=False)
    away_team = Column(String, nullable=False)
    status = Column(String, default="scheduled")

    # Decimal odds (NULL = market not priced)
    odds_home = Column(Float)
    odds_draw = Column(Float)
    odds_away = Column(Float)
    odds_btts_yes = Column(Float)
    odds_btts_no = Column(Float)
    odds_over25 = Column(Float)
    odds_under25 = Column(Float)
    # {"3.5": [over, under], ...}
    extra_goal_lines = Column(JSON)

    # Fair values computed upstream (NULL = derive from odds)
    p_home_fair = Column(Float)
    p_draw_fair = Column(Float)
    p_away_fair = Column(Float)
    vig_1x2 = Column(Float)
    p_btts_yes_fair = Column(Float)
    p_btts_no_fair = Column(Float)
    vig_btts = Column(Float)
    p_over25_fair = Column(Float)
    p_under25_fair = Column(Float)
    vig_ou25 = Column(Float)

    # Actual result (filled after the match)
    home_score = Column(Integer)
    away_score = Column(Integer)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ConditionalRuleRow(Base):
    """Persisted conditional rule; ``position`` is the definition order"""

    __tablename__ = "conditional_rules"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    market = Column(String, nullable=False, index=True)
    conditions = Column(JSON, nullable=False)
    logical_connectors = Column(JSON, nullable=False, default=list)
    action = Column(String, nullable=False)
    priority = Column(Integer, nullable=False, default=0)
    enabled = Column(Boolean, nullable=False, default=True, index=True)
    position = Column(Integer, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


def init_db(bind=None):
    """Initialize database tables"""
    Base.metadata.create_all(bind=bind or engine)
