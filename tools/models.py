"""
Market data models shared by the data providers, the aggregator and the
prompt builders.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Sentiment(str, Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


class NewsSentiment(str, Enum):
    POSITIVE = "POSITIVE"
    NEGATIVE = "NEGATIVE"
    NEUTRAL = "NEUTRAL"


class StockQuote(BaseModel):
    code: str
    name: str = ""
    price: float
    previous_close: Optional[float] = None
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    volume: int = 0
    bid: Optional[float] = None
    ask: Optional[float] = None
    bid_size: Optional[int] = None
    ask_size: Optional[int] = None
    week52_high: Optional[float] = None
    week52_low: Optional[float] = None
    avg_volume: Optional[float] = None

    @property
    def change(self) -> float:
        if not self.previous_close:
            return 0.0
        return self.price - self.previous_close

    @property
    def change_pct(self) -> float:
        if not self.previous_close:
            return 0.0
        return self.change / self.previous_close * 100


class IndexLevel(BaseModel):
    name: str = "FBM KLCI"
    value: float
    change: float = 0.0
    change_pct: float = 0.0


class NewsItem(BaseModel):
    title: str
    source: str = ""
    url: str = ""
    published: Optional[datetime] = None
    sentiment: NewsSentiment = NewsSentiment.NEUTRAL


class StockFundamentals(BaseModel):
    """Latest vs prior-year revenue and profit, with the derived YoY category (1-6).

    ``dividend_yield`` is a percentage (4.5 means 4.5%).
    """

    code: str
    name: str = ""
    sector: str = ""
    revenue: Optional[float] = None
    revenue_prev: Optional[float] = None
    profit: Optional[float] = None
    profit_prev: Optional[float] = None
    yoy_category: int = 2
    pe_ratio: Optional[float] = None
    dividend_yield: Optional[float] = None


class MarketBreadth(BaseModel):
    advances: int = 0
    declines: int = 0
    unchanged: int = 0
    buy_pressure: float = 50.0
    sentiment: Sentiment = Sentiment.NEUTRAL


class MarketSnapshot(BaseModel):
    """One consistent view of the market shared by every participant in a session."""

    as_of: datetime = Field(default_factory=lambda: datetime.now(UTC))
    index: IndexLevel
    quotes: dict[str, StockQuote] = Field(default_factory=dict)
    gainers: list[StockQuote] = Field(default_factory=list)
    losers: list[StockQuote] = Field(default_factory=list)
    volume_leaders: list[StockQuote] = Field(default_factory=list)
    breadth: MarketBreadth = Field(default_factory=MarketBreadth)
    news: list[NewsItem] = Field(default_factory=list)
    fundamentals: list[StockFundamentals] = Field(default_factory=list)

    def price(self, code: str) -> Optional[float]:
        quote = self.quotes.get(code)
        return quote.price if quote and quote.price > 0 else None

    def name(self, code: str) -> str:
        quote = self.quotes.get(code)
        return quote.name if quote and quote.name else code

    @property
    def prices(self) -> dict[str, float]:
        return {code: q.price for code, q in self.quotes.items() if q.price > 0}
