"""
Stock screening: score every quoted stock and sort the universe into tiers.

Fundamental score (0-100) weights the YoY category first, then valuation
(PE), profitability and dividend yield. Technical score (0-100) starts
neutral at 50 and moves with volume activity, momentum and the position in
the 52-week range. The overall score blends them 60/40.

Stocks with a fundamental score of at least 40, or at least two signals,
pass screening and are split into tiers by overall score:

    Tier 1  top opportunities   (first 20)
    Tier 2  watchlist           (next 30)
    Tier 3  remaining universe  (next 50)

Pure functions over a ``MarketSnapshot``: same snapshot, same result.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from tools.fundamentals import UNKNOWN_CATEGORY
from tools.models import MarketSnapshot, StockFundamentals, StockQuote

TIER1_SIZE = 20
TIER2_SIZE = 30
TIER3_SIZE = 50

FUNDAMENTAL_WEIGHT = 0.6
TECHNICAL_WEIGHT = 0.4
QUALITY_MIN_FUNDAMENTAL = 40.0
QUALITY_MIN_SIGNALS = 2

NEAR_SUPPORT_POSITION = 15.0
NEAR_RESISTANCE_POSITION = 85.0

UNKNOWN_SECTOR = "Unknown"

# Growth and turnaround lead; efficiency (revenue down, profit up) beats
# growth under margin pressure; declines trail.
CATEGORY_POINTS: dict[int, float] = {
    1: 45,
    5: 40,
    4: 30,
    3: 20,
    2: 12,
    6: 10,
}


class ScreenedStock(BaseModel):
    code: str
    name: str = ""
    sector: str = UNKNOWN_SECTOR
    price: float
    change_pct: float = 0.0
    volume: int = 0
    volume_ratio: float = 1.0
    pe_ratio: Optional[float] = None
    dividend_yield: Optional[float] = None
    week52_high: Optional[float] = None
    week52_low: Optional[float] = None
    price_position: float = 50.0
    near_support: bool = False
    near_resistance: bool = False
    yoy_category: int = UNKNOWN_CATEGORY
    profit_growth_pct: Optional[float] = None
    is_profitable: bool = False
    fundamental_score: float = 0.0
    technical_score: float = 50.0
    overall_score: float = 0.0
    signals: list[str] = Field(default_factory=list)


class MarketHealth(BaseModel):
    advancing: int = 0
    declining: int = 0
    unchanged: int = 0
    avg_pe: Optional[float] = None
    sector_strength: dict[str, float] = Field(default_factory=dict)

    @property
    def advancing_pct(self) -> float:
        total = self.advancing + self.declining + self.unchanged
        return self.advancing / total * 100 if total else 0.0

    @property
    def declining_pct(self) -> float:
        total = self.advancing + self.declining + self.unchanged
        return self.declining / total * 100 if total else 0.0


class ScreeningResult(BaseModel):
    total_analyzed: int = 0
    tier1: list[ScreenedStock] = Field(default_factory=list)
    tier2: list[ScreenedStock] = Field(default_factory=list)
    tier3: list[ScreenedStock] = Field(default_factory=list)
    health: MarketHealth = Field(default_factory=MarketHealth)
    category_distribution: dict[int, int] = Field(default_factory=dict)
    sector_leaders: dict[str, ScreenedStock] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

def fundamental_score(
    yoy_category: int,
    pe_ratio: Optional[float],
    is_profitable: bool,
    profit_growth_pct: Optional[float],
    dividend_yield: Optional[float],
) -> float:
    """Score fundamentals out of 100. ``dividend_yield`` is a percentage."""
    score = CATEGORY_POINTS.get(yoy_category, CATEGORY_POINTS[UNKNOWN_CATEGORY])

    if pe_ratio is not None and pe_ratio > 0:
        if pe_ratio < 8:
            score += 25
        elif pe_ratio < 12:
            score += 22
        elif pe_ratio < 15:
            score += 18
        elif pe_ratio < 20:
            score += 12
        elif pe_ratio < 30:
            score += 5

    if is_profitable:
        score += 15
        growth = profit_growth_pct or 0.0
        if growth > 20:
            score += 5
        elif growth > 10:
            score += 3
        elif growth > 0:
            score += 1

    if dividend_yield is not None and dividend_yield > 0:
        if dividend_yield > 6:
            score += 15
        elif dividend_yield > 4:
            score += 12
        elif dividend_yield > 2:
            score += 8
        else:
            score += 4

    return min(100.0, float(score))


def technical_score(
    price_position: float,
    volume_ratio: float,
    change_pct: float,
    near_support: bool,
    near_resistance: bool,
) -> float:
    """Score price action out of 100, starting from a neutral 50."""
    score = 50.0

    if volume_ratio > 3:
        score += 30
    elif volume_ratio > 2:
        score += 25
    elif volume_ratio > 1.5:
        score += 15
    elif volume_ratio > 1:
        score += 5
    elif volume_ratio < 0.5:
        score -= 10

    if change_pct > 3:
        score += 20
    elif change_pct > 1:
        score += 10
    elif change_pct > 0:
        score += 5
    elif change_pct < -3:
        score -= 10

    if near_support and change_pct >= 0:
        score += 15
    if near_resistance and change_pct > 0:
        score += 10

    # Extremes of the range: expensive at the top, falling knife at the bottom
    if price_position > 95:
        score -= 5
    if price_position < 5:
        score -= 10

    return max(0.0, min(100.0, score))


def stock_signals(stock: ScreenedStock) -> list[str]:
    signals = []
    if stock.yoy_category == 1:
        signals.append("Strong Growth (Rev+Profit UP)")
    if stock.yoy_category == 4:
        signals.append("Improving Margins")
    if stock.yoy_category == 5:
        signals.append("Turnaround")
    if stock.profit_growth_pct is not None and stock.profit_growth_pct > 50:
        signals.append("Profit Surge (+50%)")
    if stock.pe_ratio is not None and 0 < stock.pe_ratio < 10:
        signals.append("Low PE (<10)")
    if stock.dividend_yield is not None and stock.dividend_yield > 5:
        signals.append("High Dividend (>5%)")
    if stock.volume_ratio > 2:
        signals.append("Unusual Volume (2x+)")
    if stock.near_support and stock.change_pct >= 0:
        signals.append("Support Bounce")
    if stock.near_resistance and stock.change_pct > 1:
        signals.append("Breakout")
    if stock.change_pct > 5:
        signals.append("Strong Momentum")
    return signals


def _price_position(quote: StockQuote) -> float:
    high = quote.week52_high if quote.week52_high is not None else quote.price
    low = quote.week52_low if quote.week52_low is not None else quote.price
    span = high - low
    if span <= 0:
        return 50.0
    return max(0.0, min(100.0, (quote.price - low) / span * 100))


def _profit_growth_pct(f: Optional[StockFundamentals]) -> Optional[float]:
    if f is None or f.profit is None or not f.profit_prev:
        return None
    return (f.profit - f.profit_prev) / abs(f.profit_prev) * 100


def screen_stock(quote: StockQuote, fundamentals: Optional[StockFundamentals] = None) -> ScreenedStock:
    """Score one stock. Missing fundamentals score as the unknown category."""
    f = fundamentals
    position = _price_position(quote)
    volume_ratio = quote.volume / quote.avg_volume if quote.avg_volume else 1.0

    stock = ScreenedStock(
        code=quote.code,
        name=quote.name or (f.name if f else ""),
        sector=(f.sector if f and f.sector else UNKNOWN_SECTOR),
        price=quote.price,
        change_pct=quote.change_pct,
        volume=quote.volume,
        volume_ratio=volume_ratio,
        pe_ratio=f.pe_ratio if f else None,
        dividend_yield=f.dividend_yield if f else None,
        week52_high=quote.week52_high,
        week52_low=quote.week52_low,
        price_position=position,
        near_support=position < NEAR_SUPPORT_POSITION,
        near_resistance=position > NEAR_RESISTANCE_POSITION,
        yoy_category=f.yoy_category if f else UNKNOWN_CATEGORY,
        profit_growth_pct=_profit_growth_pct(f),
        is_profitable=bool(f and f.profit is not None and f.profit > 0),
    )
    fund = fundamental_score(
        stock.yoy_category, stock.pe_ratio, stock.is_profitable,
        stock.profit_growth_pct, stock.dividend_yield,
    )
    tech = technical_score(
        stock.price_position, stock.volume_ratio, stock.change_pct,
        stock.near_support, stock.near_resistance,
    )
    return stock.model_copy(update={
        "fundamental_score": fund,
        "technical_score": tech,
        "overall_score": fund * FUNDAMENTAL_WEIGHT + tech * TECHNICAL_WEIGHT,
        "signals": stock_signals(stock),
    })


def passes_screen(stock: ScreenedStock) -> bool:
    return (
        stock.fundamental_score >= QUALITY_MIN_FUNDAMENTAL
        or len(stock.signals) >= QUALITY_MIN_SIGNALS
    )


# ---------------------------------------------------------------------------
# Universe screen
# ---------------------------------------------------------------------------

def _market_health(stocks: Iterable[ScreenedStock]) -> MarketHealth:
    health = MarketHealth()
    pes: list[float] = []
    sector_scores: dict[str, list[float]] = defaultdict(list)
    for s in stocks:
        if s.change_pct > 0:
            health.advancing += 1
        elif s.change_pct < 0:
            health.declining += 1
        else:
            health.unchanged += 1
        if s.pe_ratio is not None and 0 < s.pe_ratio < 100:
            pes.append(s.pe_ratio)
        sector_scores[s.sector].append(s.overall_score)
    health.avg_pe = sum(pes) / len(pes) if pes else None
    health.sector_strength = {
        sector: sum(scores) / len(scores) for sector, scores in sorted(sector_scores.items())
    }
    return health


def screen_snapshot(snapshot: MarketSnapshot) -> ScreeningResult:
    """Screen every quoted stock in the snapshot into tiers."""
    by_code = {f.code: f for f in snapshot.fundamentals}
    screened = [
        screen_stock(snapshot.quotes[code], by_code.get(code))
        for code in sorted(snapshot.quotes)
        if snapshot.quotes[code].price > 0
    ]
    screened.sort(key=lambda s: (-s.overall_score, s.code))

    distribution = {category: 0 for category in CATEGORY_POINTS}
    for s in screened:
        distribution[s.yoy_category] = distribution.get(s.yoy_category, 0) + 1

    quality = [s for s in screened if passes_screen(s)]
    leaders: dict[str, ScreenedStock] = {}
    for s in quality:
        leaders.setdefault(s.sector, s)

    return ScreeningResult(
        total_analyzed=len(screened),
        tier1=quality[:TIER1_SIZE],
        tier2=quality[TIER1_SIZE:TIER1_SIZE + TIER2_SIZE],
        tier3=quality[TIER1_SIZE + TIER2_SIZE:TIER1_SIZE + TIER2_SIZE + TIER3_SIZE],
        health=_market_health(screened),
        category_distribution=dict(sorted(distribution.items())),
        sector_leaders=dict(sorted(leaders.items())),
    )
