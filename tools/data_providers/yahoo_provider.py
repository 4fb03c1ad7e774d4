"""Yahoo Finance data provider (default).

Wraps yfinance to implement the MarketDataProvider interface for Bursa
Malaysia (``.KL``) tickers. Headlines come from an RSS feed via
``NewsRetrievalTool``. No special requirements beyond ``pip install yfinance``.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Optional

import pandas as pd
import yfinance as yf

from tools.data_providers.base import MarketDataProvider
from tools.fundamentals import categorize_yoy
from tools.models import IndexLevel, NewsItem, StockFundamentals, StockQuote
from tools.news_retrieval import DEFAULT_FEED_URL, NewsRetrievalTool

logger = logging.getLogger(__name__)

AVG_VOLUME_DAYS = 20


def is_available() -> bool:
    """Yahoo Finance is always available if yfinance is installed."""
    return True


class YahooProvider(MarketDataProvider):
    """Fetch Bursa market data from Yahoo Finance via yfinance."""

    def __init__(
        self,
        index_symbol: str = "^KLSE",
        index_name: str = "FBM KLCI",
        names: dict[str, str] | None = None,
        news_feed_url: str = DEFAULT_FEED_URL,
    ):
        self.index_symbol = index_symbol
        self.index_name = index_name
        self.names = names or {}
        self._news = NewsRetrievalTool(news_feed_url)

    @property
    def name(self) -> str:
        return "Yahoo Finance"

    def get_quotes(self, codes: list[str]) -> dict[str, StockQuote]:
        quotes: dict[str, StockQuote] = {}
        for code in codes:
            try:
                hist = yf.Ticker(code).history(period="1y")
            except Exception as e:
                logger.warning(f"Quote fetch failed for {code}: {e}")
                continue
            quote = self._quote_from_history(code, hist)
            if quote is not None:
                quotes[code] = quote
        return quotes

    def get_index(self) -> IndexLevel:
        hist = yf.Ticker(self.index_symbol).history(period="5d")
        if hist.empty:
            raise ValueError(f"No index data for {self.index_symbol}")
        closes = hist["Close"].dropna()
        value = float(closes.iloc[-1])
        prev = float(closes.iloc[-2]) if len(closes) > 1 else value
        change = value - prev
        return IndexLevel(
            name=self.index_name,
            value=round(value, 2),
            change=round(change, 2),
            change_pct=round(change / prev * 100, 2) if prev else 0.0,
        )

    def get_news(self, limit: int = 10) -> list[NewsItem]:
        return self._news.get_news(max_articles=limit)

    def get_fundamentals(self, codes: list[str]) -> list[StockFundamentals]:
        results: list[StockFundamentals] = []
        for code in codes:
            try:
                ticker = yf.Ticker(code)
                stmt = ticker.income_stmt
            except Exception as e:
                logger.warning(f"Income statement fetch failed for {code}: {e}")
                continue
            if stmt is None or stmt.empty or stmt.shape[1] < 2:
                continue
            revenue, revenue_prev = _latest_pair(stmt, "Total Revenue")
            profit, profit_prev = _latest_pair(stmt, "Net Income")
            info = _info(ticker, code)
            dividend = _num(info.get("trailingAnnualDividendYield"))
            results.append(StockFundamentals(
                code=code,
                name=self.names.get(code, ""),
                sector=str(info.get("sector") or ""),
                pe_ratio=_num(info.get("trailingPE")),
                dividend_yield=dividend * 100 if dividend is not None else None,
                revenue=revenue,
                revenue_prev=revenue_prev,
                profit=profit,
                profit_prev=profit_prev,
                yoy_category=categorize_yoy(revenue, revenue_prev, profit, profit_prev),
            ))
        return results

    def _quote_from_history(self, code: str, hist: pd.DataFrame) -> Optional[StockQuote]:
        if hist is None or hist.empty:
            return None
        last = hist.iloc[-1]
        price = _num(last.get("Close"))
        if price is None or price <= 0:
            return None
        prev_close = _num(hist["Close"].iloc[-2]) if len(hist) > 1 else None
        # Average volume excludes the latest session
        prior_volume = hist["Volume"].iloc[-AVG_VOLUME_DAYS - 1:-1].dropna()
        return StockQuote(
            code=code,
            name=self.names.get(code, ""),
            price=round(price, 4),
            previous_close=prev_close,
            open=_num(last.get("Open")),
            high=_num(last.get("High")),
            low=_num(last.get("Low")),
            volume=int(_num(last.get("Volume")) or 0),
            week52_high=_num(hist["High"].max()),
            week52_low=_num(hist["Low"].min()),
            avg_volume=_num(prior_volume.mean()) if len(prior_volume) else None,
        )


def _num(value: Any) -> Optional[float]:
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(f) else f


def _latest_pair(stmt: pd.DataFrame, row: str) -> tuple[Optional[float], Optional[float]]:
    """Most recent and prior-year values of one income statement line."""
    if row not in stmt.index:
        return None, None
    values = stmt.loc[row]
    return _num(values.iloc[0]), _num(values.iloc[1])


def _info(ticker: Any, code: str) -> dict[str, Any]:
    """Valuation fields are optional; a failed info lookup leaves them unset."""
    try:
        info = ticker.info
    except Exception as e:
        logger.warning(f"Info fetch failed for {code}: {e}")
        return {}
    return info if isinstance(info, dict) else {}
