"""
Per-participant decision context.

Reads the ledger once per participant and produces the two views the mode
strategies consume: a ``TradingContext`` for prompt building and an
``AccountState`` for validation. Holdings are marked to the session's
snapshot prices in memory only; the ledger is not written here.
"""

from __future__ import annotations

import logging
from datetime import datetime

from agents.base import AccountState, CompetitorView, TradingContext
from agents.modes import ModeRuleSet, get_rules
from config.settings import Settings
from ledger.database import ArenaDatabase
from ledger.models import CompetitionConfig, Holding, Participant
from ledger.valuation import value_participant
from orchestrator.market_hours import MarketHours
from tools.models import MarketSnapshot

logger = logging.getLogger(__name__)

COMPETITOR_TOP_HOLDINGS = 3


def mark_holdings(holdings: list[Holding], prices: dict[str, float]) -> list[Holding]:
    """Copies of ``holdings`` priced at ``prices`` where a price is known."""
    return [
        h.model_copy(update={"current_price": prices[h.stock_code]})
        if prices.get(h.stock_code) else h
        for h in holdings
    ]


class ContextBuilder:
    """Assembles prompt and validation views of one participant's ledger."""

    def __init__(
        self,
        db: ArenaDatabase,
        app_settings: Settings,
        market_hours: MarketHours | None = None,
    ):
        self.db = db
        self.settings = app_settings
        self.market_hours = market_hours or MarketHours.from_settings(app_settings)

    def today_realized_pnl(self, participant: Participant, now: datetime) -> float:
        return self.db.realized_pnl_since(participant.id, self.market_hours.day_start(now))

    def build(
        self,
        participant: Participant,
        config: CompetitionConfig,
        snapshot: MarketSnapshot,
        now: datetime,
    ) -> TradingContext:
        rules = get_rules(participant.mode)
        holdings = mark_holdings(self.db.get_holdings(participant.id), snapshot.prices)
        valued = value_participant(participant, holdings)
        peers = self.db.get_participants(active_only=True, mode=participant.mode)

        recent = []
        if rules.memory_enabled:
            recent = self.db.get_trades(participant.id, limit=self.settings.recent_trades_limit)

        return TradingContext(
            mode=participant.mode,
            as_of=now,
            currency=self.settings.currency,
            market=snapshot,
            initial_capital=participant.initial_capital,
            cash=participant.cash,
            portfolio_value=valued.portfolio_value,
            total_pnl=valued.total_pnl,
            pnl_pct=valued.pnl_pct,
            rank=participant.rank,
            participant_count=max(len(peers), 1),
            holdings=holdings,
            recent_trades=recent,
            today_realized_pnl=self.today_realized_pnl(participant, now),
            trading_fee_pct=config.trading_fee_pct,
            min_trade_value=config.min_trade_value,
            news_limit=self.settings.news_limit if rules.news_access else 0,
            competitors=self.competitors(participant, rules, snapshot.prices),
        )

    def account(
        self,
        participant: Participant,
        config: CompetitionConfig,
        prices: dict[str, float],
        now: datetime,
    ) -> AccountState:
        """Current account view; re-read before every action so it reflects earlier fills."""
        holdings = mark_holdings(self.db.get_holdings(participant.id), prices)
        return AccountState.from_ledger(
            participant,
            holdings,
            trading_fee_pct=config.trading_fee_pct,
            min_trade_value=config.min_trade_value,
            today_realized_pnl=self.today_realized_pnl(participant, now),
            max_position_pct=config.max_position_pct,
            currency=self.settings.currency,
        )

    def competitors(
        self,
        participant: Participant,
        rules: ModeRuleSet,
        prices: dict[str, float],
    ) -> list[CompetitorView]:
        """Same-mode rivals by rank, anonymised. Empty unless the mode grants visibility."""
        if not rules.can_see_competitors or self.settings.competitor_limit <= 0:
            return []

        rivals = [
            p for p in self.db.get_participants(active_only=True, mode=participant.mode)
            if p.id != participant.id
        ]
        rivals.sort(key=lambda p: (p.rank if p.rank is not None else 10_000, p.id))

        views = []
        for position, rival in enumerate(rivals[: self.settings.competitor_limit], start=1):
            holdings = mark_holdings(self.db.get_holdings(rival.id), prices)
            p = value_participant(rival, holdings)
            largest = sorted(holdings, key=lambda h: h.market_value, reverse=True)
            top = [
                (h.stock_code, h.market_value / p.portfolio_value * 100 if p.portfolio_value > 0 else 0.0)
                for h in largest[:COMPETITOR_TOP_HOLDINGS]
            ]
            views.append(CompetitorView(
                rank=p.rank if p.rank is not None else position,
                portfolio_value=p.portfolio_value,
                pnl_pct=p.pnl_pct,
                cash_pct=p.cash / p.portfolio_value * 100 if p.portfolio_value > 0 else 100.0,
                top_holdings=top,
            ))
        return views
