"""
Tests for portfolio valuation, per-mode ranking, daily snapshots and the
leaderboard analytics.
"""

from __future__ import annotations

from datetime import UTC, date, datetime

import pytest

from agents.base import TradeAction
from conftest import add_participant
from ledger.analytics import build_leaderboard, max_drawdown_pct, sharpe_ratio, trade_stats
from ledger.executor import TradeExecutor
from ledger.models import ModeCode, Participant, Trade, TradeType
from ledger.snapshots import SnapshotRecorder
from ledger.valuation import PortfolioValuator, rank_within_modes, value_participant


def _buy(executor, p, code, qty, price):
    return executor.execute(p, TradeAction(action="BUY", stock_code=code, quantity=qty), price, p.mode)


def _sell(executor, p, code, qty, price):
    return executor.execute(p, TradeAction(action="SELL", stock_code=code, quantity=qty), price, p.mode)


class TestValuation:
    def test_value_participant(self, db):
        p = add_participant(db)
        executor = TradeExecutor(db, trading_fee_pct=0.15)
        _buy(executor, p, "1155.KL", 1000, 2.00)

        valued = value_participant(db.get_participant(p.id), db.get_holdings(p.id))
        assert valued.portfolio_value == pytest.approx(6997.00 + 2000.00)
        assert valued.total_pnl == pytest.approx(-3.00)
        assert valued.pnl_pct == pytest.approx(-0.03)

    def test_portfolio_equals_cash_plus_holdings(self, db):
        p = add_participant(db)
        executor = TradeExecutor(db, trading_fee_pct=0.15)
        _buy(executor, p, "1155.KL", 1000, 2.00)
        _buy(executor, p, "5347.KL", 100, 13.50)

        PortfolioValuator(db).update_all({"1155.KL": 2.10, "5347.KL": 13.00})

        stored = db.get_participant(p.id)
        holdings_value = sum(h.quantity * h.current_price for h in db.get_holdings(p.id))
        assert stored.portfolio_value == pytest.approx(stored.cash + holdings_value)
        assert holdings_value == pytest.approx(1000 * 2.10 + 100 * 13.00)

    def test_update_is_idempotent(self, db):
        p = add_participant(db)
        add_participant(db, model_id="chatgpt")
        _buy(TradeExecutor(db, trading_fee_pct=0.15), p, "1155.KL", 500, 2.00)
        valuator = PortfolioValuator(db)

        first = valuator.update_all({"1155.KL": 2.20})
        second = valuator.update_all()

        assert [(x.portfolio_value, x.rank) for x in first] == [(x.portfolio_value, x.rank) for x in second]

    def test_codes_without_price_keep_last_mark(self, db):
        p = add_participant(db)
        _buy(TradeExecutor(db, trading_fee_pct=0.15), p, "1155.KL", 500, 2.00)
        PortfolioValuator(db).update_all({"9999.KL": 5.0})
        assert db.get_holding(p.id, "1155.KL").current_price == 2.00


class TestRanking:
    def test_ranks_per_mode(self):
        participants = [
            Participant(id=1, model_id="a", mode=ModeCode.NEW_BASELINE, portfolio_value=9_000),
            Participant(id=2, model_id="b", mode=ModeCode.NEW_BASELINE, portfolio_value=11_000),
            Participant(id=3, model_id="c", mode=ModeCode.MONK_MODE, portfolio_value=9_500),
            Participant(id=4, model_id="d", mode=ModeCode.MONK_MODE, portfolio_value=10_500),
            Participant(id=5, model_id="e", mode=ModeCode.NEW_BASELINE, portfolio_value=10_000),
        ]
        ranks = {p.id: p.rank for p in rank_within_modes(participants)}
        assert ranks == {1: 3, 2: 1, 3: 2, 4: 1, 5: 2}

    def test_ties_broken_by_id(self):
        participants = [
            Participant(id=7, model_id="a", portfolio_value=10_000),
            Participant(id=3, model_id="b", portfolio_value=10_000),
        ]
        ranks = {p.id: p.rank for p in rank_within_modes(participants)}
        assert ranks == {3: 1, 7: 2}

    def test_ranks_are_contiguous(self, db):
        for model in ("claude", "chatgpt", "gemini"):
            add_participant(db, model_id=model)
        add_participant(db, model_id="claude", mode=ModeCode.MAX_LEVERAGE)

        ranked = PortfolioValuator(db).update_all()
        baseline = sorted(p.rank for p in ranked if p.mode == ModeCode.NEW_BASELINE)
        leverage = [p.rank for p in ranked if p.mode == ModeCode.MAX_LEVERAGE]
        assert baseline == [1, 2, 3]
        assert leverage == [1]


class TestSnapshots:
    def test_first_snapshot_measures_against_initial_capital(self, db):
        p = add_participant(db)
        _buy(TradeExecutor(db, trading_fee_pct=0.0), p, "1155.KL", 1000, 2.00)

        snaps = SnapshotRecorder(db).record(date(2026, 3, 4), {"1155.KL": 2.10})

        assert len(snaps) == 1
        assert snaps[0].portfolio_value == pytest.approx(10_100.0)
        assert snaps[0].daily_change == pytest.approx(100.0)
        assert snaps[0].daily_change_pct == pytest.approx(1.0)
        assert snaps[0].holdings_value == pytest.approx(2_100.0)

    def test_second_day_measures_against_previous(self, db):
        p = add_participant(db)
        _buy(TradeExecutor(db, trading_fee_pct=0.0), p, "1155.KL", 1000, 2.00)
        recorder = SnapshotRecorder(db)
        recorder.record(date(2026, 3, 4), {"1155.KL": 2.10})

        snaps = recorder.record(date(2026, 3, 5), {"1155.KL": 2.00})

        assert snaps[0].daily_change == pytest.approx(-100.0)
        assert snaps[0].cumulative_return_pct == pytest.approx(0.0)

    def test_rerun_same_day_overwrites(self, db):
        p = add_participant(db)
        recorder = SnapshotRecorder(db)
        recorder.record(date(2026, 3, 4))
        recorder.record(date(2026, 3, 4))
        assert len(db.get_snapshots(p.id)) == 1


class TestAnalytics:
    def test_max_drawdown(self):
        assert max_drawdown_pct([100, 120, 90, 130]) == pytest.approx(25.0)
        assert max_drawdown_pct([100]) == 0.0
        assert max_drawdown_pct([100, 110, 120]) == 0.0

    def test_sharpe_needs_variation(self):
        assert sharpe_ratio([1.0]) is None
        assert sharpe_ratio([0.5, 0.5, 0.5]) is None
        assert sharpe_ratio([1.0, -0.5, 0.8, 0.2]) > 0

    def test_trade_stats(self):
        now = datetime(2026, 3, 4, tzinfo=UTC)

        def trade(kind, pnl, fees=1.0):
            return Trade(participant_id=1, stock_code="1155.KL", trade_type=kind, quantity=1,
                         price=1, total_value=1, fees=fees, realized_pnl=pnl, executed_at=now)

        stats = trade_stats([
            trade(TradeType.BUY, None),
            trade(TradeType.SELL, 30.0),
            trade(TradeType.SELL, -10.0),
            trade(TradeType.SELL, 10.0),
        ])
        assert stats["closed_trades"] == 3
        assert stats["win_rate"] == pytest.approx(200 / 3)
        assert stats["total_fees"] == pytest.approx(4.0)
        assert stats["highest_win"] == 30.0
        assert stats["biggest_loss"] == -10.0
        assert stats["profit_factor"] == pytest.approx(4.0)

    def test_no_closed_trades(self):
        stats = trade_stats([])
        assert stats["win_rate"] == 0.0
        assert stats["profit_factor"] is None

    def test_build_leaderboard(self, db):
        winner = add_participant(db, model_id="claude")
        add_participant(db, model_id="chatgpt")
        monk = add_participant(db, model_id="gemini", mode=ModeCode.MONK_MODE)
        executor = TradeExecutor(db, trading_fee_pct=0.15)
        _buy(executor, winner, "1155.KL", 1000, 2.00)
        _sell(executor, winner, "1155.KL", 1000, 2.50)
        PortfolioValuator(db).update_all()

        board = build_leaderboard(db)

        assert [(e.mode, e.rank) for e in board] == [
            (ModeCode.MONK_MODE, 1), (ModeCode.NEW_BASELINE, 1), (ModeCode.NEW_BASELINE, 2),
        ]
        top = board[1]
        assert top.participant_id == winner.id
        assert top.closed_trades == 1
        assert top.win_rate == 100.0
        assert top.open_positions == 0

        monk_only = build_leaderboard(db, ModeCode.MONK_MODE)
        assert [e.participant_id for e in monk_only] == [monk.id]
