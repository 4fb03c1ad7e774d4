"""
Data models for the competition ledger: participants, holdings, trades,
competition config, AI decision log and daily snapshots.

All ``*_pct`` fields are percentages (30.0 means 30%).
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from enum import Enum

from pydantic import BaseModel, Field

# Quantities at or below this are treated as zero and the holding is removed.
QUANTITY_EPSILON = 1e-9


class ArenaError(Exception):
    """Base error for ledger and session failures."""


class TradeExecutionError(ArenaError):
    """Raised when a validated action cannot be applied to the ledger."""


class ModeCode(str, Enum):
    NEW_BASELINE = "NEW_BASELINE"
    MONK_MODE = "MONK_MODE"
    SITUATIONAL_AWARENESS = "SITUATIONAL_AWARENESS"
    MAX_LEVERAGE = "MAX_LEVERAGE"


class ParticipantStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    DISQUALIFIED = "disqualified"


class TradeType(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class DecisionType(str, Enum):
    TRADE = "TRADE"
    HOLD = "HOLD"
    PARSE_FAILURE = "PARSE_FAILURE"


class Participant(BaseModel):
    """One AI competitor: a model backend trading under one mode."""

    id: int | None = None
    model_id: str
    display_name: str = ""
    provider_name: str = ""
    mode: ModeCode = ModeCode.NEW_BASELINE
    status: ParticipantStatus = ParticipantStatus.ACTIVE

    initial_capital: float = 10_000.0
    cash: float = 10_000.0
    portfolio_value: float = 10_000.0
    total_pnl: float = 0.0
    pnl_pct: float = 0.0
    realized_pnl: float = 0.0
    rank: int | None = None

    total_trades: int = 0
    winning_trades: int = 0
    last_trade_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status == ParticipantStatus.ACTIVE


class Holding(BaseModel):
    """Open position. Unique per (participant, stock); quantity is always > 0."""

    id: int | None = None
    participant_id: int
    stock_code: str
    stock_name: str = ""
    quantity: float
    avg_buy_price: float
    current_price: float
    leverage: float | None = None
    stop_loss: float | None = None
    entry_time: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def effective_leverage(self) -> float:
        return self.leverage if self.leverage and self.leverage > 1 else 1.0

    @property
    def market_value(self) -> float:
        return self.quantity * self.current_price

    @property
    def margin(self) -> float:
        return self.quantity * self.avg_buy_price

    @property
    def notional_value(self) -> float:
        return self.quantity * self.current_price * self.effective_leverage

    @property
    def unrealized_pnl(self) -> float:
        return (self.current_price - self.avg_buy_price) * self.quantity

    @property
    def unrealized_pnl_pct(self) -> float:
        if self.avg_buy_price <= 0:
            return 0.0
        return (self.current_price - self.avg_buy_price) / self.avg_buy_price * 100


class Trade(BaseModel):
    """Append-only record of one executed action."""

    id: int | None = None
    participant_id: int
    stock_code: str
    stock_name: str = ""
    trade_type: TradeType
    quantity: float
    price: float
    total_value: float
    fees: float = 0.0
    realized_pnl: float | None = None
    reasoning: str = ""
    mode: ModeCode = ModeCode.NEW_BASELINE
    leverage: float | None = None
    stop_loss: float | None = None
    executed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class CompetitionConfig(BaseModel):
    """Competition-wide parameters, read once per session."""

    id: int | None = None
    competition_name: str = "AI Trading Arena"
    start_date: datetime
    end_date: datetime
    initial_capital: float = 10_000.0
    trading_fee_pct: float = 0.15
    min_trade_value: float = 100.0
    max_position_pct: float = 30.0
    is_active: bool = True


class AIDecision(BaseModel):
    """Audit record of one model response, kept even when parsing failed."""

    id: int | None = None
    participant_id: int
    decision_type: DecisionType
    stocks_analyzed: list[str] = Field(default_factory=list)
    market_sentiment: str = ""
    decision_summary: str = ""
    raw_response: str = ""
    tokens_used: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class DailySnapshot(BaseModel):
    """End-of-day portfolio state for one participant."""

    id: int | None = None
    participant_id: int
    snapshot_date: date
    portfolio_value: float
    cash_balance: float
    holdings_value: float
    daily_change: float = 0.0
    daily_change_pct: float = 0.0
    cumulative_return_pct: float = 0.0
