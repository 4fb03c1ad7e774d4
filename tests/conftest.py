"""Shared fixtures: a throwaway ledger and a small, fixed market snapshot."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from config.settings import LLMProvider, Settings
from ledger.database import ArenaDatabase
from ledger.models import CompetitionConfig, ModeCode, Participant
from providers.base import AIProvider, ModelConfig
from providers.router import ProviderRouter
from tools.models import (
    IndexLevel,
    MarketBreadth,
    MarketSnapshot,
    NewsItem,
    NewsSentiment,
    Sentiment,
    StockFundamentals,
    StockQuote,
)

# Wednesday 2026-03-04 10:00 in Kuala Lumpur (UTC+8), inside the morning session
SESSION_NOW = datetime(2026, 3, 4, 2, 0, tzinfo=UTC)


@pytest.fixture
def db(tmp_path):
    database = ArenaDatabase(tmp_path / "arena.db")
    yield database
    database.close()


@pytest.fixture
def config(db):
    cfg = CompetitionConfig(
        competition_name="Test Arena",
        start_date=datetime(2026, 1, 1, tzinfo=UTC),
        end_date=datetime(2026, 12, 31, tzinfo=UTC),
        initial_capital=10_000.0,
        trading_fee_pct=0.15,
        min_trade_value=100.0,
        max_position_pct=30.0,
    )
    cfg.id = db.save_config(cfg)
    return cfg


def add_participant(
    db: ArenaDatabase,
    model_id: str = "claude",
    mode: ModeCode = ModeCode.NEW_BASELINE,
    cash: float = 10_000.0,
) -> Participant:
    p = Participant(
        model_id=model_id,
        display_name=model_id.title(),
        provider_name="Test",
        mode=mode,
        initial_capital=10_000.0,
        cash=cash,
        portfolio_value=cash,
    )
    p.id = db.add_participant(p)
    return p


def make_snapshot(prices: dict[str, float] | None = None) -> MarketSnapshot:
    prices = prices if prices is not None else {"1155.KL": 2.00, "5347.KL": 13.50, "7113.KL": 1.05}
    quotes = {
        code: StockQuote(
            code=code,
            name=code.split(".")[0],
            price=price,
            previous_close=round(price * 0.98, 4),
            volume=1_000_000,
        )
        for code, price in prices.items()
    }
    movers = sorted(quotes.values(), key=lambda q: q.code)
    return MarketSnapshot(
        as_of=datetime(2026, 3, 4, 2, 0, tzinfo=UTC),
        index=IndexLevel(name="FBM KLCI", value=1600.0, change=8.0, change_pct=0.5),
        quotes=quotes,
        gainers=movers,
        losers=[],
        volume_leaders=movers,
        breadth=MarketBreadth(advances=len(movers), sentiment=Sentiment.BULLISH),
        news=[
            NewsItem(title="Bursa rallies on strong bank earnings", sentiment=NewsSentiment.POSITIVE),
        ],
        fundamentals=[
            StockFundamentals(code=code, name=code, yoy_category=1) for code in sorted(quotes)
        ],
    )


@pytest.fixture
def snapshot():
    return make_snapshot()


class FakeProvider(AIProvider):
    """Scripted backend: returns ``reply`` or raises ``error``, recording every call."""

    def __init__(
        self,
        model_id: str = "claude",
        reply: str = "",
        tokens: int = 100,
        error: Exception | None = None,
        available: bool = True,
    ):
        super().__init__(
            ModelConfig(
                id=model_id,
                name=model_id.title(),
                provider="Test",
                backend=LLMProvider.OPENAI,
                model="fake-1",
                api_key_env=f"{model_id.upper()}_API_KEY",
            ),
            api_key="test-key" if available else None,
            timeout_seconds=0,
        )
        self.reply = reply
        self.tokens = tokens
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def _create_client(self):
        return None

    def _complete(self, system_prompt: str, user_prompt: str) -> tuple[str, int]:
        self.calls.append((system_prompt, user_prompt))
        if self.error is not None:
            raise self.error
        return self.reply, self.tokens


def make_router(*providers: AIProvider) -> ProviderRouter:
    """A router holding only the given providers, in the given order."""
    router = ProviderRouter(app_settings=Settings(_env_file=None), configs={})
    for p in providers:
        router.register(p)
    return router
