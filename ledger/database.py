"""
SQLite persistence for the competition ledger.

Holds participants, holdings, the append-only trade and AI-decision logs,
the competition config singleton and daily snapshots. Rows are translated
to pydantic models at the boundary; nothing above this module sees
``sqlite3.Row``.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Optional

from ledger.models import (
    AIDecision,
    CompetitionConfig,
    DailySnapshot,
    DecisionType,
    Holding,
    ModeCode,
    Participant,
    ParticipantStatus,
    Trade,
    TradeType,
)

logger = logging.getLogger(__name__)

_DEFAULT_DB_PATH = Path("store/arena.db")
_MEMORY = ":memory:"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS competition_config (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    competition_name TEXT NOT NULL,
    start_date TEXT NOT NULL,
    end_date TEXT NOT NULL,
    initial_capital REAL DEFAULT 10000.0,
    trading_fee_pct REAL DEFAULT 0.15,
    min_trade_value REAL DEFAULT 100.0,
    max_position_pct REAL DEFAULT 30.0,
    is_active INTEGER DEFAULT 1
);

CREATE TABLE IF NOT EXISTS participants (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    model_id TEXT NOT NULL,
    display_name TEXT DEFAULT '',
    provider_name TEXT DEFAULT '',
    mode TEXT NOT NULL,
    status TEXT DEFAULT 'active',
    initial_capital REAL NOT NULL,
    cash REAL NOT NULL,
    portfolio_value REAL NOT NULL,
    total_pnl REAL DEFAULT 0.0,
    pnl_pct REAL DEFAULT 0.0,
    realized_pnl REAL DEFAULT 0.0,
    rank INTEGER,
    total_trades INTEGER DEFAULT 0,
    winning_trades INTEGER DEFAULT 0,
    last_trade_at TEXT,
    UNIQUE (model_id, mode)
);

CREATE TABLE IF NOT EXISTS holdings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    participant_id INTEGER NOT NULL REFERENCES participants(id),
    stock_code TEXT NOT NULL,
    stock_name TEXT DEFAULT '',
    quantity REAL NOT NULL CHECK (quantity > 0),
    avg_buy_price REAL NOT NULL,
    current_price REAL NOT NULL,
    leverage REAL,
    stop_loss REAL,
    entry_time TEXT NOT NULL,
    UNIQUE (participant_id, stock_code)
);

CREATE TABLE IF NOT EXISTS trades (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    participant_id INTEGER NOT NULL REFERENCES participants(id),
    stock_code TEXT NOT NULL,
    stock_name TEXT DEFAULT '',
    trade_type TEXT NOT NULL,
    quantity REAL NOT NULL,
    price REAL NOT NULL,
    total_value REAL NOT NULL,
    fees REAL DEFAULT 0.0,
    realized_pnl REAL,
    reasoning TEXT DEFAULT '',
    mode TEXT NOT NULL,
    leverage REAL,
    stop_loss REAL,
    executed_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS ai_decisions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    participant_id INTEGER NOT NULL REFERENCES participants(id),
    decision_type TEXT NOT NULL,
    stocks_analyzed TEXT DEFAULT '[]',
    market_sentiment TEXT DEFAULT '',
    decision_summary TEXT DEFAULT '',
    raw_response TEXT DEFAULT '',
    tokens_used INTEGER DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS daily_snapshots (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    participant_id INTEGER NOT NULL REFERENCES participants(id),
    snapshot_date TEXT NOT NULL,
    portfolio_value REAL NOT NULL,
    cash_balance REAL NOT NULL,
    holdings_value REAL NOT NULL,
    daily_change REAL DEFAULT 0.0,
    daily_change_pct REAL DEFAULT 0.0,
    cumulative_return_pct REAL DEFAULT 0.0,
    UNIQUE (participant_id, snapshot_date)
);

CREATE INDEX IF NOT EXISTS idx_trades_participant ON trades(participant_id, executed_at);
CREATE INDEX IF NOT EXISTS idx_decisions_participant ON ai_decisions(participant_id, created_at);
CREATE INDEX IF NOT EXISTS idx_snapshots_date ON daily_snapshots(snapshot_date);
"""


def _iso(value: datetime | None) -> str | None:
    """Normalise to a fixed-width UTC ISO string so text ordering is time ordering."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class ArenaDatabase:
    """SQLite-backed storage for the competition ledger."""

    def __init__(self, db_path: str | Path | None = None):
        if str(db_path) == _MEMORY:
            self.db_path = _MEMORY
        else:
            self.db_path = Path(db_path) if db_path else _DEFAULT_DB_PATH
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: Optional[sqlite3.Connection] = None
        self._init_db()

    def _init_db(self) -> None:
        conn = self._get_conn()
        conn.executescript(_SCHEMA)
        conn.commit()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            # The API serves requests from a worker thread pool.
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
        return self._conn

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    # ── Competition config ───────────────────────────────────────

    def get_config(self) -> Optional[CompetitionConfig]:
        """Return the most recent competition config, or None if never created."""
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM competition_config ORDER BY id DESC LIMIT 1"
        ).fetchone()
        return self._row_to_config(row) if row else None

    def save_config(self, config: CompetitionConfig) -> int:
        conn = self._get_conn()
        with conn:
            if config.id is not None:
                conn.execute(
                    """UPDATE competition_config SET
                        competition_name = ?, start_date = ?, end_date = ?,
                        initial_capital = ?, trading_fee_pct = ?, min_trade_value = ?,
                        max_position_pct = ?, is_active = ?
                    WHERE id = ?""",
                    (
                        config.competition_name, _iso(config.start_date), _iso(config.end_date),
                        config.initial_capital, config.trading_fee_pct, config.min_trade_value,
                        config.max_position_pct, int(config.is_active), config.id,
                    ),
                )
                return config.id
            cursor = conn.execute(
                """INSERT INTO competition_config (
                    competition_name, start_date, end_date, initial_capital,
                    trading_fee_pct, min_trade_value, max_position_pct, is_active
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    config.competition_name, _iso(config.start_date), _iso(config.end_date),
                    config.initial_capital, config.trading_fee_pct, config.min_trade_value,
                    config.max_position_pct, int(config.is_active),
                ),
            )
        return cursor.lastrowid

    # ── Participants ─────────────────────────────────────────────

    def add_participant(self, participant: Participant) -> int:
        """Insert a participant and return its ID."""
        conn = self._get_conn()
        with conn:
            cursor = conn.execute(
                """INSERT INTO participants (
                    model_id, display_name, provider_name, mode, status,
                    initial_capital, cash, portfolio_value, total_pnl, pnl_pct,
                    realized_pnl, rank, total_trades, winning_trades, last_trade_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    participant.model_id, participant.display_name,
                    participant.provider_name, participant.mode.value,
                    participant.status.value, participant.initial_capital,
                    participant.cash, participant.portfolio_value,
                    participant.total_pnl, participant.pnl_pct,
                    participant.realized_pnl, participant.rank,
                    participant.total_trades, participant.winning_trades,
                    _iso(participant.last_trade_at),
                ),
            )
        return cursor.lastrowid

    def get_participant(self, participant_id: int) -> Optional[Participant]:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM participants WHERE id = ?", (participant_id,)
        ).fetchone()
        return self._row_to_participant(row) if row else None

    def get_participants(
        self,
        active_only: bool = False,
        mode: ModeCode | None = None,
        model_id: str | None = None,
    ) -> list[Participant]:
        """Participants ordered by id, optionally filtered."""
        clauses, params = [], []
        if active_only:
            clauses.append("status = ?")
            params.append(ParticipantStatus.ACTIVE.value)
        if mode is not None:
            clauses.append("mode = ?")
            params.append(mode.value)
        if model_id is not None:
            clauses.append("model_id = ?")
            params.append(model_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        conn = self._get_conn()
        rows = conn.execute(
            f"SELECT * FROM participants {where} ORDER BY id", params
        ).fetchall()
        return [self._row_to_participant(r) for r in rows]

    def set_status(self, participant_id: int, status: ParticipantStatus) -> None:
        conn = self._get_conn()
        with conn:
            conn.execute(
                "UPDATE participants SET status = ? WHERE id = ?",
                (status.value, participant_id),
            )

    def update_valuations(self, participants: list[Participant]) -> None:
        """Persist valuation and rank fields for many participants in one transaction."""
        conn = self._get_conn()
        with conn:
            conn.executemany(
                """UPDATE participants SET
                    portfolio_value = ?, total_pnl = ?, pnl_pct = ?, rank = ?
                WHERE id = ?""",
                [
                    (p.portfolio_value, p.total_pnl, p.pnl_pct, p.rank, p.id)
                    for p in participants
                ],
            )

    # ── Holdings ─────────────────────────────────────────────────

    def get_holdings(self, participant_id: int | None = None) -> list[Holding]:
        conn = self._get_conn()
        if participant_id is None:
            rows = conn.execute(
                "SELECT * FROM holdings ORDER BY participant_id, stock_code"
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT * FROM holdings WHERE participant_id = ? ORDER BY stock_code",
                (participant_id,),
            ).fetchall()
        return [self._row_to_holding(r) for r in rows]

    def get_holding(self, participant_id: int, stock_code: str) -> Optional[Holding]:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM holdings WHERE participant_id = ? AND stock_code = ?",
            (participant_id, stock_code),
        ).fetchone()
        return self._row_to_holding(row) if row else None

    def update_holding_prices(self, prices: dict[str, float]) -> int:
        """Mark holdings to the given prices. Returns the number of rows touched."""
        usable = [(price, code) for code, price in prices.items() if price and price > 0]
        if not usable:
            return 0
        conn = self._get_conn()
        with conn:
            cursor = conn.executemany(
                "UPDATE holdings SET current_price = ? WHERE stock_code = ?", usable
            )
        return cursor.rowcount

    # ── Trades (atomic ledger mutation) ──────────────────────────

    def commit_trade(
        self,
        participant: Participant,
        trade: Trade,
        holding: Holding | None,
    ) -> int:
        """Apply one executed action atomically.

        Writes the participant's cash and counters, upserts ``holding``
        (or deletes the (participant, stock) row when ``holding`` is None)
        and appends ``trade``. Either all of it lands or none of it does.
        Returns the new trade ID.
        """
        conn = self._get_conn()
        with conn:
            conn.execute(
                """UPDATE participants SET
                    cash = ?, realized_pnl = ?, total_trades = ?,
                    winning_trades = ?, last_trade_at = ?
                WHERE id = ?""",
                (
                    participant.cash, participant.realized_pnl,
                    participant.total_trades, participant.winning_trades,
                    _iso(participant.last_trade_at), participant.id,
                ),
            )
            if holding is None:
                conn.execute(
                    "DELETE FROM holdings WHERE participant_id = ? AND stock_code = ?",
                    (trade.participant_id, trade.stock_code),
                )
            else:
                conn.execute(
                    """INSERT INTO holdings (
                        participant_id, stock_code, stock_name, quantity,
                        avg_buy_price, current_price, leverage, stop_loss, entry_time
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT (participant_id, stock_code) DO UPDATE SET
                        stock_name = excluded.stock_name,
                        quantity = excluded.quantity,
                        avg_buy_price = excluded.avg_buy_price,
                        current_price = excluded.current_price,
                        leverage = excluded.leverage,
                        stop_loss = excluded.stop_loss""",
                    (
                        holding.participant_id, holding.stock_code, holding.stock_name,
                        holding.quantity, holding.avg_buy_price, holding.current_price,
                        holding.leverage, holding.stop_loss, _iso(holding.entry_time),
                    ),
                )
            cursor = conn.execute(
                """INSERT INTO trades (
                    participant_id, stock_code, stock_name, trade_type, quantity,
                    price, total_value, fees, realized_pnl, reasoning, mode,
                    leverage, stop_loss, executed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    trade.participant_id, trade.stock_code, trade.stock_name,
                    trade.trade_type.value, trade.quantity, trade.price,
                    trade.total_value, trade.fees, trade.realized_pnl,
                    trade.reasoning, trade.mode.value, trade.leverage,
                    trade.stop_loss, _iso(trade.executed_at),
                ),
            )
        return cursor.lastrowid

    def get_trades(
        self,
        participant_id: int | None = None,
        limit: int = 100,
    ) -> list[Trade]:
        """Most recent trades first."""
        conn = self._get_conn()
        if participant_id is None:
            rows = conn.execute(
                "SELECT * FROM trades ORDER BY executed_at DESC, id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        else:
            rows = conn.execute(
                """SELECT * FROM trades WHERE participant_id = ?
                ORDER BY executed_at DESC, id DESC LIMIT ?""",
                (participant_id, limit),
            ).fetchall()
        return [self._row_to_trade(r) for r in rows]

    def realized_pnl_since(self, participant_id: int, since: datetime) -> float:
        """Sum of realized P&L on SELL trades executed at or after ``since``."""
        conn = self._get_conn()
        value = conn.execute(
            """SELECT COALESCE(SUM(realized_pnl), 0.0) FROM trades
            WHERE participant_id = ? AND trade_type = ? AND executed_at >= ?""",
            (participant_id, TradeType.SELL.value, _iso(since)),
        ).fetchone()[0]
        return float(value)

    def count_trades(self) -> int:
        conn = self._get_conn()
        return conn.execute("SELECT COUNT(*) FROM trades").fetchone()[0]

    # ── AI decisions ─────────────────────────────────────────────

    def log_decision(self, decision: AIDecision) -> int:
        conn = self._get_conn()
        with conn:
            cursor = conn.execute(
                """INSERT INTO ai_decisions (
                    participant_id, decision_type, stocks_analyzed,
                    market_sentiment, decision_summary, raw_response,
                    tokens_used, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    decision.participant_id, decision.decision_type.value,
                    json.dumps(decision.stocks_analyzed), decision.market_sentiment,
                    decision.decision_summary, decision.raw_response,
                    decision.tokens_used, _iso(decision.created_at),
                ),
            )
        return cursor.lastrowid

    def get_decisions(self, participant_id: int, limit: int = 20) -> list[AIDecision]:
        conn = self._get_conn()
        rows = conn.execute(
            """SELECT * FROM ai_decisions WHERE participant_id = ?
            ORDER BY created_at DESC, id DESC LIMIT ?""",
            (participant_id, limit),
        ).fetchall()
        return [self._row_to_decision(r) for r in rows]

    # ── Daily snapshots ──────────────────────────────────────────

    def upsert_snapshot(self, snapshot: DailySnapshot) -> None:
        conn = self._get_conn()
        with conn:
            conn.execute(
                """INSERT INTO daily_snapshots (
                    participant_id, snapshot_date, portfolio_value, cash_balance,
                    holdings_value, daily_change, daily_change_pct, cumulative_return_pct
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (participant_id, snapshot_date) DO UPDATE SET
                    portfolio_value = excluded.portfolio_value,
                    cash_balance = excluded.cash_balance,
                    holdings_value = excluded.holdings_value,
                    daily_change = excluded.daily_change,
                    daily_change_pct = excluded.daily_change_pct,
                    cumulative_return_pct = excluded.cumulative_return_pct""",
                (
                    snapshot.participant_id, snapshot.snapshot_date.isoformat(),
                    snapshot.portfolio_value, snapshot.cash_balance,
                    snapshot.holdings_value, snapshot.daily_change,
                    snapshot.daily_change_pct, snapshot.cumulative_return_pct,
                ),
            )

    def get_snapshots(
        self,
        participant_id: int,
        before: date | None = None,
        limit: int = 400,
    ) -> list[DailySnapshot]:
        """Snapshots in ascending date order, optionally strictly before ``before``."""
        conn = self._get_conn()
        if before is None:
            rows = conn.execute(
                """SELECT * FROM (
                    SELECT * FROM daily_snapshots WHERE participant_id = ?
                    ORDER BY snapshot_date DESC LIMIT ?
                ) ORDER BY snapshot_date""",
                (participant_id, limit),
            ).fetchall()
        else:
            rows = conn.execute(
                """SELECT * FROM (
                    SELECT * FROM daily_snapshots
                    WHERE participant_id = ? AND snapshot_date < ?
                    ORDER BY snapshot_date DESC LIMIT ?
                ) ORDER BY snapshot_date""",
                (participant_id, before.isoformat(), limit),
            ).fetchall()
        return [self._row_to_daily_snapshot(r) for r in rows]

    # ── Row translation ──────────────────────────────────────────

    @staticmethod
    def _row_to_config(row: sqlite3.Row) -> CompetitionConfig:
        return CompetitionConfig(
            id=row["id"],
            competition_name=row["competition_name"],
            start_date=_parse_dt(row["start_date"]),
            end_date=_parse_dt(row["end_date"]),
            initial_capital=row["initial_capital"],
            trading_fee_pct=row["trading_fee_pct"],
            min_trade_value=row["min_trade_value"],
            max_position_pct=row["max_position_pct"],
            is_active=bool(row["is_active"]),
        )

    @staticmethod
    def _row_to_participant(row: sqlite3.Row) -> Participant:
        return Participant(
            id=row["id"],
            model_id=row["model_id"],
            display_name=row["display_name"] or "",
            provider_name=row["provider_name"] or "",
            mode=ModeCode(row["mode"]),
            status=ParticipantStatus(row["status"]),
            initial_capital=row["initial_capital"],
            cash=row["cash"],
            portfolio_value=row["portfolio_value"],
            total_pnl=row["total_pnl"] or 0.0,
            pnl_pct=row["pnl_pct"] or 0.0,
            realized_pnl=row["realized_pnl"] or 0.0,
            rank=row["rank"],
            total_trades=row["total_trades"] or 0,
            winning_trades=row["winning_trades"] or 0,
            last_trade_at=_parse_dt(row["last_trade_at"]),
        )

    @staticmethod
    def _row_to_holding(row: sqlite3.Row) -> Holding:
        return Holding(
            id=row["id"],
            participant_id=row["participant_id"],
            stock_code=row["stock_code"],
            stock_name=row["stock_name"] or "",
            quantity=row["quantity"],
            avg_buy_price=row["avg_buy_price"],
            current_price=row["current_price"],
            leverage=row["leverage"],
            stop_loss=row["stop_loss"],
            entry_time=_parse_dt(row["entry_time"]),
        )

    @staticmethod
    def _row_to_trade(row: sqlite3.Row) -> Trade:
        return Trade(
            id=row["id"],
            participant_id=row["participant_id"],
            stock_code=row["stock_code"],
            stock_name=row["stock_name"] or "",
            trade_type=TradeType(row["trade_type"]),
            quantity=row["quantity"],
            price=row["price"],
            total_value=row["total_value"],
            fees=row["fees"] or 0.0,
            realized_pnl=row["realized_pnl"],
            reasoning=row["reasoning"] or "",
            mode=ModeCode(row["mode"]),
            leverage=row["leverage"],
            stop_loss=row["stop_loss"],
            executed_at=_parse_dt(row["executed_at"]),
        )

    @staticmethod
    def _row_to_decision(row: sqlite3.Row) -> AIDecision:
        return AIDecision(
            id=row["id"],
            participant_id=row["participant_id"],
            decision_type=DecisionType(row["decision_type"]),
            stocks_analyzed=json.loads(row["stocks_analyzed"] or "[]"),
            market_sentiment=row["market_sentiment"] or "",
            decision_summary=row["decision_summary"] or "",
            raw_response=row["raw_response"] or "",
            tokens_used=row["tokens_used"] or 0,
            created_at=_parse_dt(row["created_at"]),
        )

    @staticmethod
    def _row_to_daily_snapshot(row: sqlite3.Row) -> DailySnapshot:
        return DailySnapshot(
            id=row["id"],
            participant_id=row["participant_id"],
            snapshot_date=date.fromisoformat(row["snapshot_date"]),
            portfolio_value=row["portfolio_value"],
            cash_balance=row["cash_balance"],
            holdings_value=row["holdings_value"],
            daily_change=row["daily_change"] or 0.0,
            daily_change_pct=row["daily_change_pct"] or 0.0,
            cumulative_return_pct=row["cumulative_return_pct"] or 0.0,
        )
