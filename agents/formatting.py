"""
Plain-text section renderers shared by the mode prompt builders.

Every function is pure and deterministic: same inputs, same text. None of
them render participant identity.
"""

from __future__ import annotations

from collections import defaultdict

from agents.base import TradingContext
from agents.modes import ModeRuleSet
from ledger.models import Holding, Trade
from tools.fundamentals import YOY_CATEGORY_LABELS
from tools.models import MarketSnapshot, StockQuote
from tools.screening import ScreeningResult


def money(value: float, currency: str = "RM") -> str:
    sign = "-" if value < 0 else ""
    return f"{sign}{currency}{abs(value):,.2f}"


def signed_pct(value: float) -> str:
    return f"{value:+.2f}%"


def format_header(ctx: TradingContext, title: str) -> str:
    return f"=== {title} ===\nSession time: {ctx.as_of.strftime('%Y-%m-%d %H:%M %Z').strip()}"


def format_account(ctx: TradingContext) -> str:
    cur = ctx.currency
    holdings_value = sum(h.market_value for h in ctx.holdings)
    cash_pct = ctx.cash / ctx.portfolio_value * 100 if ctx.portfolio_value > 0 else 100.0
    lines = [
        "## YOUR ACCOUNT",
        f"Cash available: {money(ctx.cash, cur)} ({cash_pct:.1f}% of portfolio)",
        f"Holdings value: {money(holdings_value, cur)}",
        f"Portfolio value: {money(ctx.portfolio_value, cur)}",
        f"Total P&L: {money(ctx.total_pnl, cur)} ({signed_pct(ctx.pnl_pct)}) "
        f"on starting capital {money(ctx.initial_capital, cur)}",
    ]
    if ctx.rank is not None:
        lines.append(f"Current rank: #{ctx.rank} of {ctx.participant_count}")
    return "\n".join(lines)


def format_rules(ctx: TradingContext, rules: ModeRuleSet) -> str:
    cur = ctx.currency
    lines = [
        "## TRADING RULES",
        f"- Maximum {rules.max_trades_per_session} actions this session (extra actions are ignored)",
        f"- Maximum position size: {rules.max_position_pct:.0f}% of portfolio value per stock",
        f"- Minimum trade value: {money(ctx.min_trade_value, cur)}",
        f"- Trading fee: {ctx.trading_fee_pct:.2f}% of gross value on every buy and sell",
        "- Long only: you may only SELL shares you hold",
    ]
    if rules.mandatory_stop_loss:
        lines.append("- Every BUY must include a stop_loss price")
    if rules.max_daily_loss_pct is not None:
        lines.append(
            f"- Daily loss limit: {rules.max_daily_loss_pct:.1f}% of starting capital; "
            "trading stops for the day once reached"
        )
    if rules.min_leverage is not None and rules.max_leverage is not None:
        lines.append(
            f"- Every position uses leverage between {rules.min_leverage:.1f}x "
            f"and {rules.max_leverage:.1f}x"
        )
    return "\n".join(lines)


def format_market_overview(snapshot: MarketSnapshot) -> str:
    idx = snapshot.index
    b = snapshot.breadth
    return "\n".join([
        "## MARKET OVERVIEW",
        f"{idx.name}: {idx.value:,.2f} ({idx.change:+,.2f}, {signed_pct(idx.change_pct)})",
        f"Breadth: {b.advances} advancing, {b.declines} declining, {b.unchanged} unchanged",
        f"Buy pressure: {b.buy_pressure:.1f}%",
        f"Overall sentiment: {b.sentiment.value}",
    ])


def _quote_line(q: StockQuote, currency: str) -> str:
    name = f" {q.name}" if q.name else ""
    return (
        f"- {q.code}{name}: {money(q.price, currency)} "
        f"({signed_pct(q.change_pct)}, vol {q.volume:,})"
    )


def format_movers(snapshot: MarketSnapshot, currency: str = "RM", limit: int = 5) -> str:
    sections = ["## TOP MOVERS"]
    for title, quotes in (
        ("Gainers", snapshot.gainers),
        ("Losers", snapshot.losers),
        ("Volume leaders", snapshot.volume_leaders),
    ):
        sections.append(f"{title}:")
        if quotes:
            sections.extend(_quote_line(q, currency) for q in quotes[:limit])
        else:
            sections.append("- none")
    return "\n".join(sections)


def format_prices(snapshot: MarketSnapshot, currency: str = "RM") -> str:
    lines = ["## TRADABLE STOCKS (latest prices)"]
    if not snapshot.quotes:
        lines.append("- Price data unavailable this session")
    for code in sorted(snapshot.quotes):
        lines.append(_quote_line(snapshot.quotes[code], currency))
    return "\n".join(lines)


def format_news(snapshot: MarketSnapshot, limit: int) -> str:
    lines = ["## MARKET NEWS"]
    items = snapshot.news[:limit]
    if not items:
        lines.append("- No recent headlines")
    for item in items:
        source = f" ({item.source})" if item.source else ""
        lines.append(f"- [{item.sentiment.value}] {item.title}{source}")
    return "\n".join(lines)


def format_fundamentals(snapshot: MarketSnapshot) -> str:
    lines = ["## EARNINGS TRENDS (YoY)"]
    if not snapshot.fundamentals:
        lines.append("- Fundamentals unavailable this session")
        return "\n".join(lines)
    by_category: dict[int, list[str]] = defaultdict(list)
    for f in snapshot.fundamentals:
        by_category[f.yoy_category].append(f.code)
    for category in sorted(by_category):
        codes = ", ".join(sorted(by_category[category]))
        lines.append(f"- Category {category} ({YOY_CATEGORY_LABELS[category]}): {codes}")
    return "\n".join(lines)


def format_holdings(holdings: list[Holding], currency: str = "RM") -> str:
    lines = ["## CURRENT HOLDINGS"]
    if not holdings:
        lines.append("- No open positions")
    for h in sorted(holdings, key=lambda h: h.stock_code):
        stop = f", stop {money(h.stop_loss, currency)}" if h.stop_loss else ""
        lines.append(
            f"- {h.stock_code}: {h.quantity:g} shares @ avg {money(h.avg_buy_price, currency)}, "
            f"now {money(h.current_price, currency)}, value {money(h.market_value, currency)}, "
            f"P&L {money(h.unrealized_pnl, currency)} ({signed_pct(h.unrealized_pnl_pct)}){stop}"
        )
    return "\n".join(lines)


def format_recent_trades(trades: list[Trade], currency: str = "RM", limit: int = 5) -> str:
    lines = ["## RECENT TRADES"]
    if not trades:
        lines.append("- No trades yet")
    for t in trades[:limit]:
        pnl = ""
        if t.realized_pnl is not None:
            pnl = f", realized {money(t.realized_pnl, currency)}"
        lines.append(
            f"- {t.executed_at.strftime('%Y-%m-%d %H:%M')} {t.trade_type.value} "
            f"{t.quantity:g} {t.stock_code} @ {money(t.price, currency)}{pnl}"
        )
    return "\n".join(lines)


def format_screening(result: ScreeningResult, currency: str = "RM", tier1_limit: int = 10) -> str:
    h = result.health
    avg_pe = f"{h.avg_pe:.1f}" if h.avg_pe is not None else "n/a"
    lines = [
        "## STOCK SCREENING",
        f"Stocks analysed: {result.total_analyzed}",
        f"Advancing: {h.advancing} ({h.advancing_pct:.1f}%) | "
        f"Declining: {h.declining} ({h.declining_pct:.1f}%) | Average PE: {avg_pe}",
        "YoY categories: " + " | ".join(
            f"Cat {category}: {count}" for category, count in result.category_distribution.items()
        ),
    ]
    strongest = sorted(h.sector_strength.items(), key=lambda kv: (-kv[1], kv[0]))[:5]
    if strongest:
        lines.append(
            "Sector strength: " + ", ".join(f"{sector} {score:.1f}" for sector, score in strongest)
        )

    lines.append("")
    lines.append(f"### Tier 1 opportunities ({len(result.tier1)})")
    if not result.tier1:
        lines.append("- No stocks passed screening this session")
    for s in result.tier1[:tier1_limit]:
        name = f" {s.name}" if s.name else ""
        parts = [f"{money(s.price, currency)} ({signed_pct(s.change_pct)})"]
        if s.week52_low is not None and s.week52_high is not None:
            parts.append(
                f"52W {money(s.week52_low, currency)}-{money(s.week52_high, currency)}, "
                f"position {s.price_position:.0f}%"
            )
        parts.append(f"PE {s.pe_ratio:.1f}" if s.pe_ratio else "PE n/a")
        if s.dividend_yield:
            parts.append(f"Div {s.dividend_yield:.1f}%")
        parts.append(f"YoY Cat {s.yoy_category}")
        parts.append(
            f"Score {s.overall_score:.0f} (fund {s.fundamental_score:.0f}, tech {s.technical_score:.0f})"
        )
        signals = f"\n  Signals: {'; '.join(s.signals)}" if s.signals else ""
        lines.append(f"- {s.code}{name} [{s.sector}]: " + " | ".join(parts) + signals)

    if result.tier2:
        lines.append("")
        lines.append(f"### Tier 2 watchlist ({len(result.tier2)})")
        lines.append(" | ".join(
            f"{s.code} {money(s.price, currency)} Cat{s.yoy_category} Score {s.overall_score:.0f}"
            for s in result.tier2
        ))

    if result.sector_leaders:
        lines.append("")
        lines.append("### Sector leaders")
        for sector, s in result.sector_leaders.items():
            lines.append(f"- {sector}: {s.code} (score {s.overall_score:.0f}, Cat {s.yoy_category})")
    return "\n".join(lines)
