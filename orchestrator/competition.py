"""
Competition setup and the jobs that run alongside trading sessions.

    init_competition   create the config and one participant per (model, mode)
    build_aggregator   market data aggregator wired from settings
    record_snapshot    end-of-day revaluation plus daily snapshot rows
"""

from __future__ import annotations

import logging
from datetime import datetime

from agents.modes import ModeCode
from config.settings import Settings
from ledger.database import ArenaDatabase
from ledger.models import CompetitionConfig, DailySnapshot, Participant
from ledger.snapshots import SnapshotRecorder
from orchestrator.market_hours import MarketHours
from providers.router import ProviderRouter
from tools.data_aggregator import MarketDataAggregator
from tools.data_providers.factory import get_provider

logger = logging.getLogger(__name__)


def build_aggregator(s: Settings) -> MarketDataAggregator:
    provider = get_provider(
        s.market_data_provider,
        index_symbol=s.index_symbol,
        index_name=s.index_name,
        names=s.stock_names,
        news_feed_url=s.news_feed_url,
    )
    return MarketDataAggregator(
        provider,
        s.stock_universe,
        index_name=s.index_name,
        default_index_level=s.default_index_level,
        news_limit=s.news_limit,
    )


def init_competition(
    db: ArenaDatabase,
    s: Settings,
    router: ProviderRouter,
    model_ids: list[str] | None = None,
    modes: list[ModeCode] | None = None,
) -> tuple[CompetitionConfig, list[Participant]]:
    """Create the competition config (if missing) and any missing participants.

    Safe to re-run: existing participants are left untouched. Raises KeyError
    for a model id the router does not know.
    """
    config = db.get_config()
    if config is None:
        config = CompetitionConfig(
            competition_name=s.competition_name,
            start_date=s.competition_start,
            end_date=s.competition_end,
            initial_capital=s.initial_capital,
            trading_fee_pct=s.trading_fee_pct,
            min_trade_value=s.min_trade_value,
            max_position_pct=s.max_position_pct,
        )
        config.id = db.save_config(config)
        logger.info(f"Created competition config '{config.competition_name}'")

    created: list[Participant] = []
    for model_id in model_ids or router.model_ids:
        model = router.config(model_id)
        for mode in modes or list(ModeCode):
            if db.get_participants(mode=mode, model_id=model_id):
                continue
            participant = Participant(
                model_id=model_id,
                display_name=model.name,
                provider_name=model.provider,
                mode=mode,
                initial_capital=config.initial_capital,
                cash=config.initial_capital,
                portfolio_value=config.initial_capital,
            )
            participant.id = db.add_participant(participant)
            created.append(participant)

    logger.info(f"Registered {len(created)} new participants")
    return config, created


def record_snapshot(
    db: ArenaDatabase,
    aggregator: MarketDataAggregator | None,
    market_hours: MarketHours,
    now: datetime | None = None,
) -> list[DailySnapshot]:
    """Mark holdings to the latest prices (if an aggregator is given) and snapshot."""
    prices = aggregator.build_snapshot().prices if aggregator is not None else None
    return SnapshotRecorder(db).record(market_hours.market_date(now), prices)
