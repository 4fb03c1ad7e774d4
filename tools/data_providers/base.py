"""Abstract market data provider interface.

Defines the contract the market data aggregator consumes. Each method
returns the typed models from ``tools.models`` regardless of the underlying
source, so the aggregator and prompt builders can switch providers without
code changes.

Concrete implementations:
    - yahoo_provider.py   (default, quotes/fundamentals via yfinance, news via RSS)

Providers may raise on failure; the aggregator is responsible for falling
back to conservative defaults.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from tools.models import IndexLevel, NewsItem, StockFundamentals, StockQuote


class MarketDataProvider(ABC):
    """Abstract interface for market data providers."""

    @property
    def name(self) -> str:
        """Human-readable provider name (override in subclasses)."""
        return type(self).__name__

    @abstractmethod
    def get_quotes(self, codes: list[str]) -> dict[str, StockQuote]:
        """Latest quote per stock code. Codes with no data are omitted."""
        ...

    @abstractmethod
    def get_index(self) -> IndexLevel:
        """Current level and daily change of the benchmark index."""
        ...

    @abstractmethod
    def get_news(self, limit: int = 10) -> list[NewsItem]:
        """Recent market headlines, newest first, sentiment-tagged."""
        ...

    @abstractmethod
    def get_fundamentals(self, codes: list[str]) -> list[StockFundamentals]:
        """Latest annual revenue / profit vs the prior year, per stock."""
        ...

    def get_quote(self, code: str) -> StockQuote | None:
        """Single-stock convenience wrapper around ``get_quotes``."""
        return self.get_quotes([code]).get(code)
