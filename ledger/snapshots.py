"""
End-of-day portfolio snapshots.

One row per participant per market date, upserted so re-running the
snapshot job on the same day overwrites rather than duplicates. Daily change
is measured against the most recent earlier snapshot, or against initial
capital on the first day.
"""

from __future__ import annotations

import logging
from datetime import date

from ledger.database import ArenaDatabase
from ledger.models import DailySnapshot
from ledger.valuation import PortfolioValuator

logger = logging.getLogger(__name__)


class SnapshotRecorder:
    """Revalues the ledger and records a daily snapshot for every participant."""

    def __init__(self, db: ArenaDatabase):
        self.db = db
        self.valuator = PortfolioValuator(db)

    def record(
        self,
        snapshot_date: date,
        prices: dict[str, float] | None = None,
    ) -> list[DailySnapshot]:
        participants = self.valuator.update_all(prices)
        snapshots: list[DailySnapshot] = []

        for p in participants:
            previous = self.db.get_snapshots(p.id, before=snapshot_date, limit=1)
            prev_value = previous[-1].portfolio_value if previous else p.initial_capital
            daily_change = p.portfolio_value - prev_value
            snap = DailySnapshot(
                participant_id=p.id,
                snapshot_date=snapshot_date,
                portfolio_value=p.portfolio_value,
                cash_balance=p.cash,
                holdings_value=p.portfolio_value - p.cash,
                daily_change=daily_change,
                daily_change_pct=daily_change / prev_value * 100 if prev_value > 0 else 0.0,
                cumulative_return_pct=p.pnl_pct,
            )
            self.db.upsert_snapshot(snap)
            snapshots.append(snap)

        logger.info(f"Recorded {len(snapshots)} daily snapshots for {snapshot_date.isoformat()}")
        return snapshots
