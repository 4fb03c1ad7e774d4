"""
Portfolio valuation and per-mode ranking.

Recomputes every participant's portfolio value from the ledger
(cash + Σ quantity × current_price), derives total P&L and P&L%, then
ranks participants 1..N within each mode by descending portfolio value
(ties broken by id). Running it twice with no ledger change in between
yields identical results.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from ledger.database import ArenaDatabase
from ledger.models import Holding, ModeCode, Participant

logger = logging.getLogger(__name__)


def value_participant(participant: Participant, holdings: list[Holding]) -> Participant:
    """Return a copy of ``participant`` with valuation fields recomputed."""
    holdings_value = sum(h.market_value for h in holdings)
    portfolio_value = participant.cash + holdings_value
    total_pnl = portfolio_value - participant.initial_capital
    pnl_pct = (
        total_pnl / participant.initial_capital * 100 if participant.initial_capital else 0.0
    )
    return participant.model_copy(update={
        "portfolio_value": portfolio_value,
        "total_pnl": total_pnl,
        "pnl_pct": pnl_pct,
    })


def rank_within_modes(participants: list[Participant]) -> list[Participant]:
    """Assign rank 1..N per mode by descending portfolio value, ties by ascending id."""
    by_mode: dict[ModeCode, list[Participant]] = defaultdict(list)
    for p in participants:
        by_mode[p.mode].append(p)

    ranked: list[Participant] = []
    for group in by_mode.values():
        ordered = sorted(group, key=lambda p: (-p.portfolio_value, p.id or 0))
        ranked.extend(
            p.model_copy(update={"rank": i}) for i, p in enumerate(ordered, start=1)
        )
    return sorted(ranked, key=lambda p: p.id or 0)


class PortfolioValuator:
    """Marks holdings to market and persists valuations and ranks."""

    def __init__(self, db: ArenaDatabase):
        self.db = db

    def update_all(self, prices: dict[str, float] | None = None) -> list[Participant]:
        """Revalue and rank every participant. Returns the updated participants.

        Args:
            prices: Optional latest prices by stock code; holdings are marked
                to these before valuing. Codes without a price keep their last
                ``current_price``.
        """
        if prices:
            touched = self.db.update_holding_prices(prices)
            logger.info(f"Marked {touched} holdings to latest prices")

        holdings_by_participant: dict[int, list[Holding]] = defaultdict(list)
        for h in self.db.get_holdings():
            holdings_by_participant[h.participant_id].append(h)

        valued = [
            value_participant(p, holdings_by_participant.get(p.id, []))
            for p in self.db.get_participants()
        ]
        ranked = rank_within_modes(valued)
        self.db.update_valuations(ranked)

        logger.info(f"Valued and ranked {len(ranked)} participants")
        return ranked
