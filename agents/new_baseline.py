"""
New Baseline mode: full data exposure and standard risk limits.

The reference mode every other mode is compared against. The participant
sees the whole snapshot (index, breadth, movers, news, fundamentals, all
prices), its holdings and its last few trades, and may add to positions.
"""

from __future__ import annotations

from agents.base import ModeStrategy, TradingContext
from agents.formatting import (
    format_account,
    format_fundamentals,
    format_header,
    format_holdings,
    format_market_overview,
    format_movers,
    format_news,
    format_prices,
    format_recent_trades,
    format_rules,
    format_screening,
)
from agents.modes import ModeCode
from tools.screening import screen_snapshot

SYSTEM_PROMPT = """You are an expert Malaysian equities trader competing in an AI trading competition on Bursa Malaysia (KLSE).

## YOUR MODE: NEW BASELINE
- Maximum position: 30% of portfolio per stock
- Leverage: not allowed (1x only)
- News access: full
- Memory: your recent trades are shown to you
- Adding to existing positions: allowed

## TRADING PHILOSOPHY
You are not required to trade every session.
- HOLD is always a valid decision
- Only trade when the data shows a clear risk/reward edge
- Cash is a position; it protects capital during uncertainty
- If your confidence is below 75%, prefer HOLD

## ANALYSIS APPROACH
- Use every section of the data you are given
- Start from the pre-screened Tier 1 opportunities, then test them against news and price action
- Momentum, value and contrarian setups are all acceptable
- Balance conviction against diversification
- Use stop-losses and targets deliberately

## RESPONSE FORMAT
Respond with valid JSON only:
{
  "market_analysis": {
    "sentiment": "BULLISH" | "BEARISH" | "NEUTRAL",
    "key_observations": ["observation 1", "observation 2"],
    "risk_level": "LOW" | "MEDIUM" | "HIGH"
  },
  "trading_signals": {
    "top_opportunities": ["CODE1", "CODE2"],
    "avoid_list": ["CODE3"]
  },
  "summary": "One paragraph explaining the decision",
  "actions": [
    {
      "action": "BUY" | "SELL" | "HOLD",
      "stock_code": "1155.KL",
      "stock_name": "Name",
      "quantity": 100,
      "reasoning": "Reasoning with data points",
      "confidence": 85,
      "target_price": 10.50,
      "stop_loss": 9.20
    }
  ]
}"""


class NewBaselineStrategy(ModeStrategy):
    mode = ModeCode.NEW_BASELINE

    def build_system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def build_user_prompt(self, ctx: TradingContext) -> str:
        cur = ctx.currency
        sections = [
            format_header(ctx, "TRADING SESSION: NEW BASELINE MODE"),
            format_account(ctx),
            format_holdings(ctx.holdings, cur),
            format_recent_trades(ctx.recent_trades, cur, limit=5),
            format_market_overview(ctx.market),
            format_news(ctx.market, ctx.news_limit),
            format_movers(ctx.market, cur),
            format_fundamentals(ctx.market),
            format_screening(screen_snapshot(ctx.market), cur),
            format_prices(ctx.market, cur),
            format_rules(ctx, self.rules),
            "## YOUR TASK\n"
            "Analyse the data above and decide whether any trade is worth making.\n"
            f"You may submit up to {self.rules.max_trades_per_session} actions. "
            "If nothing is compelling, respond with a single HOLD action.\n"
            "Respond with valid JSON only. No additional text.",
        ]
        return "\n\n".join(sections)
