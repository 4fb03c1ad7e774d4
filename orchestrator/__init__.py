from orchestrator.competition import build_aggregator, init_competition, record_snapshot
from orchestrator.context import ContextBuilder
from orchestrator.market_hours import MarketHours, MarketStatus
from orchestrator.session import ModelSessionResult, SessionReport, TradingSession

__all__ = [
    "ContextBuilder",
    "MarketHours",
    "MarketStatus",
    "ModelSessionResult",
    "SessionReport",
    "TradingSession",
    "build_aggregator",
    "init_competition",
    "record_snapshot",
]
