"""
FastAPI application for Match Edge
Read-only analysis surface over the Match Store and Rule Store
"""

from fastapi import FastAPI, Depends, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text
from contextlib import asynccontextmanager
from datetime import datetime
import asyncio
import logging
import os

from dotenv import load_dotenv

from matchedge import __version__
from matchedge.core.engine_config import EngineConfig
from matchedge.core.stores import CachedRuleStore, MatchStore, RuleStore, StoreUnavailableError
from matchedge.models import get_db, init_db, SessionLocal
from matchedge.services.analysis import (
    MatchNotFoundError,
    analyze_match,
    analyze_match_by_id,
    run_batch_analysis,
)
from matchedge.services.sql_stores import SqlMatchStore, SqlRuleStore
from matchedge.schemas import (
    AnalysisRequest,
    AnalysisResponse,
    BatchAnalysisResponse,
    BatchEntryResponse,
    BatchRequest,
)

load_dotenv()

# Logging setup
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

engine_config = EngineConfig.from_env()
rule_store = CachedRuleStore(SqlRuleStore(SessionLocal), ttl_seconds=engine_config.rule_cache_seconds)
match_store = SqlMatchStore(SessionLocal)


# Dependencies (overridable in tests)
def get_engine_config() -> EngineConfig:
    return engine_config


def get_rule_store() -> RuleStore:
    return rule_store


def get_match_store() -> MatchStore:
    return match_store


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("Starting Match Edge %s", __version__)
    init_db()
    logger.info(
        "Engine config: tolerance=%.3f, matrix N=%d, batch concurrency=%d, rule cache %.0fs",
        engine_config.equality_tolerance, engine_config.matrix_max_goals,
        engine_config.batch_concurrency, engine_config.rule_cache_seconds,
    )
    yield
    logger.info("Match Edge stopped")


app = FastAPI(
    title="Match Edge",
    description="Football odds de-margining, rule-based recommendations and scoreline model",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("ALLOWED_ORIGINS", "*").split(","),
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    """Service banner"""
    return {
        "app": "Match Edge",
        "version": __version__,
        "status": "operational",
        "timestamp": datetime.utcnow().isoformat(),
    }


@app.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """Health check endpoint"""
    health = {"status": "healthy", "database": "connected"}
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Health check database error: %s", e)
        health["status"] = "degraded"
        health["database"] = f"error: {str(e)}"
    return health


# ============================================================================
# RULES
# ============================================================================

@app.get("/api/rules")
async def list_rules(store: RuleStore = Depends(get_rule_store)):
    """Every stored rule in definition order, flagged when malformed"""
    rules = await store.get_rules()
    return {
        "total": len(rules),
        "enabled": sum(1 for r in rules if r.enabled),
        "rules": [
            {**r.to_dict(), "position": i, "problems": r.problems()}
            for i, r in enumerate(rules)
        ],
    }


# ============================================================================
# ANALYSIS
# ============================================================================

@app.get("/api/matches/{match_id}/analysis", response_model=AnalysisResponse)
async def get_match_analysis(
    match_id: str,
    matches: MatchStore = Depends(get_match_store),
    rules: RuleStore = Depends(get_rule_store),
    config: EngineConfig = Depends(get_engine_config),
):
    try:
        analysis = await analyze_match_by_id(match_id, matches, rules, config)
    except MatchNotFoundError:
        raise HTTPException(status_code=404, detail="Match not found")
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return AnalysisResponse.from_analysis(analysis)


@app.post("/api/analysis", response_model=AnalysisResponse)
async def analyze_odds(
    payload: AnalysisRequest,
    store: RuleStore = Depends(get_rule_store),
    config: EngineConfig = Depends(get_engine_config),
):
    """Analyse an ad-hoc odds payload against the stored (or supplied) rules"""
    if payload.rules is not None:
        rules = [r.to_rule() for r in payload.rules]
    else:
        rules = await store.get_rules()
    try:
        analysis = await asyncio.to_thread(analyze_match, payload.to_match(), rules, config)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return AnalysisResponse.from_analysis(analysis)


@app.post("/api/analysis/batch", response_model=BatchAnalysisResponse)
async def analyze_batch(
    payload: BatchRequest,
    matches: MatchStore = Depends(get_match_store),
    rules: RuleStore = Depends(get_rule_store),
    config: EngineConfig = Depends(get_engine_config),
):
    result = await run_batch_analysis(
        matches,
        rules,
        match_ids=payload.match_ids,
        config=config,
        match_date=payload.match_date,
    )
    return BatchAnalysisResponse(
        matches_analyzed=len(result.succeeded),
        errors=len(result.errors),
        recommendations=len(result.recommendations),
        rules_loaded=result.rules_loaded,
        duration_seconds=round(result.elapsed_seconds, 3),
        results=[
            BatchEntryResponse(
                match_id=entry.match_id,
                error=entry.error,
                analysis=AnalysisResponse.from_analysis(entry.analysis) if entry.analysis else None,
            )
            for entry in result.entries.values()
        ],
    )


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request, exc):
    logger.error("Store unavailable: %s", exc)
    return JSONResponse(status_code=503, content={"detail": "Store unavailable"})


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Catch-all exception handler"""
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
