"""
Market data aggregator: single entry point for the shared session snapshot.

All market data is pre-fetched once per session, before any participant
runs, so every model decides from the same view of the market. The four
sub-fetches (quotes, index, news, fundamentals) are independent and run in
parallel; any one of them failing is replaced by a conservative default so
``build_snapshot`` never raises.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from typing import Optional, TypeVar

from tools.data_providers.base import MarketDataProvider
from tools.models import (
    IndexLevel,
    MarketBreadth,
    MarketSnapshot,
    NewsItem,
    Sentiment,
    StockFundamentals,
    StockQuote,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

TOP_MOVERS = 10
BULLISH_ADVANCE_RATIO = 0.6
BEARISH_ADVANCE_RATIO = 0.4


class MarketDataAggregator:
    """Builds one consistent ``MarketSnapshot`` from a data provider."""

    def __init__(
        self,
        provider: MarketDataProvider,
        universe: list[str],
        *,
        index_name: str = "FBM KLCI",
        default_index_level: float = 1580.0,
        news_limit: int = 10,
    ):
        self.provider = provider
        self.universe = list(universe)
        self.index_name = index_name
        self.default_index_level = default_index_level
        self.news_limit = news_limit
        self._last_snapshot: Optional[MarketSnapshot] = None

    def build_snapshot(self, stock_codes: list[str] | None = None) -> MarketSnapshot:
        """Gather quotes, index, news and fundamentals in parallel.

        Args:
            stock_codes: Optional filter; defaults to the configured universe.
        """
        codes = list(stock_codes) if stock_codes else self.universe
        logger.info(f"Building market snapshot for {len(codes)} stocks via {self.provider.name}...")

        with ThreadPoolExecutor(max_workers=4, thread_name_prefix="market-data") as pool:
            quotes_f = pool.submit(self.provider.get_quotes, codes)
            index_f = pool.submit(self.provider.get_index)
            news_f = pool.submit(self.provider.get_news, self.news_limit)
            fund_f = pool.submit(self.provider.get_fundamentals, codes)

            quotes: dict[str, StockQuote] = _result_or(quotes_f.result, {}, "quotes")
            index: IndexLevel = _result_or(index_f.result, self._default_index(), "index")
            news: list[NewsItem] = _result_or(news_f.result, [], "news")
            fundamentals: list[StockFundamentals] = _result_or(fund_f.result, [], "fundamentals")

        movers = list(quotes.values())
        snapshot = MarketSnapshot(
            as_of=datetime.now(UTC),
            index=index,
            quotes=quotes,
            gainers=sorted(
                (q for q in movers if q.change_pct > 0), key=lambda q: q.change_pct, reverse=True,
            )[:TOP_MOVERS],
            losers=sorted(
                (q for q in movers if q.change_pct < 0), key=lambda q: q.change_pct,
            )[:TOP_MOVERS],
            volume_leaders=sorted(movers, key=lambda q: q.volume, reverse=True)[:TOP_MOVERS],
            breadth=compute_breadth(movers),
            news=news[: self.news_limit],
            fundamentals=fundamentals,
        )
        self._last_snapshot = snapshot

        logger.info(
            f"Snapshot ready: {len(quotes)} quotes, {len(news)} headlines, "
            f"{len(fundamentals)} fundamentals, sentiment={snapshot.breadth.sentiment.value}"
        )
        return snapshot

    def get_price(self, code: str) -> Optional[float]:
        """Price from the latest snapshot, else a single-quote fetch. None if unavailable."""
        if self._last_snapshot is not None:
            price = self._last_snapshot.price(code)
            if price is not None:
                return price
        try:
            quote = self.provider.get_quote(code)
        except Exception as e:
            logger.warning(f"Price lookup failed for {code}: {e}")
            return None
        return quote.price if quote and quote.price > 0 else None

    def _default_index(self) -> IndexLevel:
        return IndexLevel(name=self.index_name, value=self.default_index_level)


def compute_breadth(quotes: list[StockQuote]) -> MarketBreadth:
    """Advances/declines, bid-size buy pressure and the overall sentiment label."""
    advances = sum(1 for q in quotes if q.change > 0)
    declines = sum(1 for q in quotes if q.change < 0)
    unchanged = len(quotes) - advances - declines

    bid_total = sum(q.bid_size or 0 for q in quotes)
    ask_total = sum(q.ask_size or 0 for q in quotes)
    depth = bid_total + ask_total
    buy_pressure = bid_total / depth * 100 if depth > 0 else 50.0

    moving = advances + declines
    ratio = advances / moving if moving else 0.5
    if ratio > BULLISH_ADVANCE_RATIO:
        sentiment = Sentiment.BULLISH
    elif ratio < BEARISH_ADVANCE_RATIO:
        sentiment = Sentiment.BEARISH
    else:
        sentiment = Sentiment.NEUTRAL

    return MarketBreadth(
        advances=advances,
        declines=declines,
        unchanged=unchanged,
        buy_pressure=round(buy_pressure, 1),
        sentiment=sentiment,
    )


def _result_or(fetch: Callable[[], T], default: T, label: str) -> T:
    try:
        return fetch()
    except Exception as e:
        logger.warning(f"Market data sub-fetch '{label}' failed, using default: {e}")
        return default
