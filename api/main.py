"""
FastAPI application for the AI Trading Arena.

Endpoints:
    GET  /health            Health check with market and ledger stats
    GET  /participants      Participants, optionally by mode
    GET  /leaderboard       Standings with trade and risk analytics
    GET  /trades            Trade log, newest first
    GET  /snapshots         Daily snapshots for one participant
    GET  /providers         AI backend availability
    POST /providers/test    Connectivity check against one or all backends
    POST /session           Run one trading session
    POST /snapshot          Record today's daily snapshot

Usage:
    uvicorn api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from api.models import (
    HealthResponse,
    ProviderTestRequest,
    ProviderTestResult,
    SessionReportResponse,
    SessionRequest,
    SnapshotResponse,
)
from config.settings import settings
from ledger.analytics import LeaderboardEntry, build_leaderboard
from ledger.database import ArenaDatabase
from ledger.models import DailySnapshot, ModeCode, Participant, Trade
from orchestrator.competition import build_aggregator, record_snapshot
from orchestrator.market_hours import MarketHours
from orchestrator.session import TradingSession
from providers.router import ProviderRouter, ProviderStatus, RoutedResponse
from tools.data_aggregator import MarketDataAggregator

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

app = FastAPI(
    title="AI Trading Arena API",
    description="Multi-model trading competition on Bursa Malaysia equities.",
    version=VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Shared instances, created on first request
_db: Optional[ArenaDatabase] = None
_router: Optional[ProviderRouter] = None
_aggregator: Optional[MarketDataAggregator] = None


def get_db() -> ArenaDatabase:
    global _db
    if _db is None:
        _db = ArenaDatabase(settings.db_path)
    return _db


def get_router() -> ProviderRouter:
    global _router
    if _router is None:
        _router = ProviderRouter(settings)
    return _router


def get_aggregator() -> MarketDataAggregator:
    global _aggregator
    if _aggregator is None:
        _aggregator = build_aggregator(settings)
    return _aggregator


def get_market_hours() -> MarketHours:
    return MarketHours.from_settings(settings)


@app.get("/health", response_model=HealthResponse)
def health(
    db: ArenaDatabase = Depends(get_db),
    market_hours: MarketHours = Depends(get_market_hours),
):
    """Health check with market status and ledger stats."""
    now = datetime.now(UTC)
    market = market_hours.status(now)
    config = db.get_config()
    active = bool(
        config and config.is_active and config.start_date <= now <= config.end_date
    )
    return HealthResponse(
        status="ok",
        version=VERSION,
        market_open=market.open,
        market_status=market.reason,
        competition_active=active,
        num_participants=len(db.get_participants()),
        num_trades=db.count_trades(),
    )


@app.get("/participants", response_model=list[Participant])
def list_participants(
    mode: Optional[ModeCode] = Query(None),
    active_only: bool = Query(False),
    db: ArenaDatabase = Depends(get_db),
):
    return db.get_participants(active_only=active_only, mode=mode)


@app.get("/leaderboard", response_model=list[LeaderboardEntry])
def leaderboard(
    mode: Optional[ModeCode] = Query(None),
    db: ArenaDatabase = Depends(get_db),
):
    """Standings per mode, rank order, with win rate, fees, drawdown and Sharpe."""
    return build_leaderboard(db, mode)


@app.get("/trades", response_model=list[Trade])
def list_trades(
    participant_id: Optional[int] = Query(None),
    limit: int = Query(50, ge=1, le=1000),
    db: ArenaDatabase = Depends(get_db),
):
    if participant_id is not None and db.get_participant(participant_id) is None:
        raise HTTPException(404, f"Participant {participant_id} not found")
    return db.get_trades(participant_id, limit=limit)


@app.get("/snapshots", response_model=list[DailySnapshot])
def list_snapshots(
    participant_id: int = Query(...),
    days: int = Query(30, ge=1, le=400),
    db: ArenaDatabase = Depends(get_db),
):
    if db.get_participant(participant_id) is None:
        raise HTTPException(404, f"Participant {participant_id} not found")
    return db.get_snapshots(participant_id, limit=days)


@app.get("/providers", response_model=list[ProviderStatus])
def providers(router: ProviderRouter = Depends(get_router)):
    return router.status()


@app.post("/providers/test", response_model=list[ProviderTestResult])
def test_providers(
    req: ProviderTestRequest,
    router: ProviderRouter = Depends(get_router),
):
    """Send a tiny prompt to one backend, or to every available backend."""
    if req.model_id is not None:
        if req.model_id not in router.model_ids:
            raise HTTPException(404, f"Unknown model id: {req.model_id}")
        provider = router.get(req.model_id)
        routed = [RoutedResponse(
            model_id=provider.config.id,
            model_name=provider.config.name,
            provider=provider.config.provider,
            response=router.test(req.model_id),
        )]
    else:
        routed = router.test_all()

    return [
        ProviderTestResult(
            model_id=r.model_id,
            name=r.model_name,
            success=r.response.success,
            latency_ms=r.response.latency_ms,
            tokens_used=r.response.tokens_used,
            response_preview=r.response.content[:100],
            error=r.response.error,
        )
        for r in routed
    ]


@app.post("/session", response_model=SessionReportResponse)
def run_session(
    req: SessionRequest,
    db: ArenaDatabase = Depends(get_db),
    router: ProviderRouter = Depends(get_router),
    aggregator: MarketDataAggregator = Depends(get_aggregator),
    market_hours: MarketHours = Depends(get_market_hours),
):
    """Run one trading session. Session-level problems are reported in ``errors``."""
    session = TradingSession(db, router, aggregator, settings, market_hours)
    report = session.run(dry_run=req.dry_run, single_model=req.single_model)
    return SessionReportResponse(**report.to_dict())


@app.post("/snapshot", response_model=SnapshotResponse)
def snapshot(
    db: ArenaDatabase = Depends(get_db),
    aggregator: MarketDataAggregator = Depends(get_aggregator),
    market_hours: MarketHours = Depends(get_market_hours),
):
    """Mark to market and record today's snapshot for every participant."""
    now = datetime.now(UTC)
    try:
        snapshots = record_snapshot(db, aggregator, market_hours, now)
    except Exception as e:
        logger.exception("Snapshot failed")
        raise HTTPException(500, f"Snapshot failed: {e}") from e
    return SnapshotResponse(
        snapshot_date=market_hours.market_date(now).isoformat(),
        recorded=len(snapshots),
    )
