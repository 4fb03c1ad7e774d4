"""
Leaderboard analytics derived from the trade log and daily snapshots.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np
from pydantic import BaseModel

from ledger.database import ArenaDatabase
from ledger.models import DailySnapshot, ModeCode, Participant, Trade, TradeType

logger = logging.getLogger(__name__)

TRADING_DAYS_PER_YEAR = 252


class LeaderboardEntry(BaseModel):
    participant_id: int
    model_id: str
    display_name: str
    mode: ModeCode
    rank: Optional[int] = None
    portfolio_value: float
    cash: float
    total_pnl: float
    pnl_pct: float
    realized_pnl: float
    total_trades: int
    closed_trades: int
    winning_trades: int
    win_rate: float
    total_fees: float
    highest_win: float
    biggest_loss: float
    profit_factor: Optional[float] = None
    max_drawdown_pct: float = 0.0
    sharpe_ratio: Optional[float] = None
    open_positions: int = 0


def max_drawdown_pct(values: list[float]) -> float:
    """Largest peak-to-trough decline of a value series, in percent."""
    if len(values) < 2:
        return 0.0
    series = np.asarray(values, dtype=float)
    peaks = np.maximum.accumulate(series)
    drawdowns = np.where(peaks > 0, (peaks - series) / peaks, 0.0)
    return float(drawdowns.max() * 100)


def sharpe_ratio(daily_returns_pct: list[float]) -> Optional[float]:
    """Annualised Sharpe of daily returns (risk-free rate taken as zero)."""
    if len(daily_returns_pct) < 2:
        return None
    returns = np.asarray(daily_returns_pct, dtype=float) / 100
    std = returns.std(ddof=1)
    if std <= 0:
        return None
    return float(returns.mean() / std * np.sqrt(TRADING_DAYS_PER_YEAR))


def trade_stats(trades: list[Trade]) -> dict[str, float | int | None]:
    """Closed-trade statistics from SELL rows; fees from every row."""
    closed = [t.realized_pnl for t in trades if t.trade_type == TradeType.SELL and t.realized_pnl is not None]
    wins = [p for p in closed if p > 0]
    losses = [p for p in closed if p < 0]
    gross_loss = abs(sum(losses))
    return {
        "closed_trades": len(closed),
        "win_rate": len(wins) / len(closed) * 100 if closed else 0.0,
        "total_fees": sum(t.fees for t in trades),
        "highest_win": max(wins) if wins else 0.0,
        "biggest_loss": min(losses) if losses else 0.0,
        "profit_factor": sum(wins) / gross_loss if gross_loss > 0 else None,
    }


def build_entry(
    participant: Participant,
    trades: list[Trade],
    snapshots: list[DailySnapshot],
    open_positions: int,
) -> LeaderboardEntry:
    stats = trade_stats(trades)
    curve = [participant.initial_capital] + [s.portfolio_value for s in snapshots]
    return LeaderboardEntry(
        participant_id=participant.id,
        model_id=participant.model_id,
        display_name=participant.display_name,
        mode=participant.mode,
        rank=participant.rank,
        portfolio_value=participant.portfolio_value,
        cash=participant.cash,
        total_pnl=participant.total_pnl,
        pnl_pct=participant.pnl_pct,
        realized_pnl=participant.realized_pnl,
        total_trades=participant.total_trades,
        winning_trades=participant.winning_trades,
        max_drawdown_pct=max_drawdown_pct(curve),
        sharpe_ratio=sharpe_ratio([s.daily_change_pct for s in snapshots]),
        open_positions=open_positions,
        **stats,
    )


def build_leaderboard(db: ArenaDatabase, mode: ModeCode | None = None) -> list[LeaderboardEntry]:
    """Leaderboard rows ordered by mode, then rank."""
    entries = []
    for p in db.get_participants(mode=mode):
        trades = db.get_trades(p.id, limit=10_000)
        snapshots = db.get_snapshots(p.id)
        entries.append(build_entry(p, trades, snapshots, len(db.get_holdings(p.id))))
    entries.sort(key=lambda e: (e.mode.value, e.rank if e.rank is not None else 10_000, e.participant_id))
    return entries
