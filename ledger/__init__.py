"""
Competition ledger: persistence, trade execution, valuation and analytics.

Provides:
    - Ledger persistence (SQLite)
    - Trade execution with weighted-average cost and leverage accounting
    - Portfolio valuation and per-mode ranking
    - Daily snapshots
    - Leaderboard analytics
"""

from ledger.analytics import LeaderboardEntry, build_leaderboard
from ledger.database import ArenaDatabase
from ledger.executor import ExecutedTrade, TradeExecutor
from ledger.models import (
    AIDecision,
    ArenaError,
    CompetitionConfig,
    DailySnapshot,
    DecisionType,
    Holding,
    ModeCode,
    Participant,
    ParticipantStatus,
    Trade,
    TradeExecutionError,
    TradeType,
)
from ledger.snapshots import SnapshotRecorder
from ledger.valuation import PortfolioValuator, rank_within_modes, value_participant

__all__ = [
    "AIDecision",
    "ArenaDatabase",
    "ArenaError",
    "CompetitionConfig",
    "DailySnapshot",
    "DecisionType",
    "ExecutedTrade",
    "Holding",
    "LeaderboardEntry",
    "ModeCode",
    "Participant",
    "ParticipantStatus",
    "PortfolioValuator",
    "SnapshotRecorder",
    "Trade",
    "TradeExecutionError",
    "TradeExecutor",
    "TradeType",
    "build_leaderboard",
    "rank_within_modes",
    "value_participant",
]
