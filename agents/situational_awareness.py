"""
Situational Awareness mode: trading with visibility into rivals.

Adds a ranked table of same-mode competitors (anonymised by rank), crowded
trade detection and the participant's standing to the baseline data set.
Validation uses the default checks only.
"""

from __future__ import annotations

from collections import Counter

from agents.base import CompetitorView, ModeStrategy, TradingContext
from agents.formatting import (
    format_account,
    format_fundamentals,
    format_header,
    format_holdings,
    format_market_overview,
    format_movers,
    format_news,
    format_prices,
    format_rules,
    money,
    signed_pct,
)
from agents.modes import ModeCode

SYSTEM_PROMPT = """You are a STRATEGIC trader in an AI trading competition on Bursa Malaysia, with visibility into your competitors' positions.

## SITUATIONAL AWARENESS MODE
Your goal is to WIN THE COMPETITION: finish with the highest portfolio value in your mode.

## YOUR ADVANTAGES
- You see every competitor's portfolio value, return, cash level and largest holdings
- You can spot crowded trades and contrarian opportunities
- You can adapt your risk to your standing

## STRATEGIC CONSIDERATIONS
1. LEADING: protect the lead; do not overtrade. HOLD is often best.
2. TRAILING: look for differentiated positions, but only with high conviction.
3. MIDDLE: look for opportunities the others are missing, or wait patiently.

HOLD is always a valid decision. If your confidence is below 75%, prefer HOLD.

## RESPONSE FORMAT (JSON only)
{
  "competition_analysis": {
    "my_position": "LEADING" | "MIDDLE" | "TRAILING",
    "gap_to_leader": 5.2,
    "strategy_mode": "PROTECT" | "ATTACK" | "DIFFERENTIATE",
    "sentiment": "BULLISH" | "BEARISH" | "NEUTRAL"
  },
  "competitor_insights": {
    "crowded_stocks": ["CODE1"],
    "contrarian_opportunities": ["CODE2"]
  },
  "summary": "One paragraph explaining the decision",
  "actions": [
    {
      "action": "BUY" | "SELL" | "HOLD",
      "stock_code": "1155.KL",
      "quantity": 100,
      "reasoning": "Must reference competitive positioning",
      "confidence": 80
    }
  ]
}"""


def standing(rank: int | None, count: int) -> str:
    """LEADING for the top two, TRAILING for the bottom two, MIDDLE otherwise."""
    if rank is None:
        return "MIDDLE"
    if rank <= 2:
        return "LEADING"
    if rank >= count - 1:
        return "TRAILING"
    return "MIDDLE"


def crowded_stocks(competitors: list[CompetitorView]) -> list[str]:
    """Stocks appearing in the top holdings of two or more competitors."""
    counts = Counter(code for c in competitors for code, _pct in c.top_holdings)
    return sorted(code for code, n in counts.items() if n >= 2)


class SituationalAwarenessStrategy(ModeStrategy):
    mode = ModeCode.SITUATIONAL_AWARENESS

    def build_system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def build_user_prompt(self, ctx: TradingContext) -> str:
        cur = ctx.currency
        competitors = sorted(ctx.competitors, key=lambda c: c.rank)
        leader_pnl = max([c.pnl_pct for c in competitors] + [ctx.pnl_pct])
        gap = leader_pnl - ctx.pnl_pct

        standing_lines = [
            "## YOUR STANDING",
            f"Rank: #{ctx.rank if ctx.rank is not None else '-'} of {ctx.participant_count} "
            f"| Position: {standing(ctx.rank, ctx.participant_count)}",
            f"Portfolio: {money(ctx.portfolio_value, cur)} | P&L: {signed_pct(ctx.pnl_pct)}",
            f"Gap to leader: {gap:.2f} percentage points",
        ]

        table = ["## COMPETITOR POSITIONS (same mode, ranked)"]
        if not competitors:
            table.append("- Competitor data not available")
        for c in competitors:
            held = ", ".join(f"{code} ({pct:.0f}%)" for code, pct in c.top_holdings) or "All cash"
            table.append(
                f"- #{c.rank} Competitor: {money(c.portfolio_value, cur)} "
                f"({signed_pct(c.pnl_pct)}) | Cash {c.cash_pct:.0f}% | Top holdings: {held}"
            )

        crowded = crowded_stocks(competitors)
        crowded_section = "## CROWDED TRADES (held by 2+ competitors)\n" + (
            ", ".join(crowded) if crowded else "No crowded positions detected"
        )

        sections = [
            format_header(ctx, "TRADING SESSION: SITUATIONAL AWARENESS MODE"),
            "\n".join(standing_lines),
            "\n".join(table),
            crowded_section,
            format_account(ctx),
            format_holdings(ctx.holdings, cur),
            format_market_overview(ctx.market),
            format_news(ctx.market, ctx.news_limit),
            format_movers(ctx.market, cur),
            format_fundamentals(ctx.market),
            format_prices(ctx.market, cur),
            format_rules(ctx, self.rules),
            "## YOUR TASK\n"
            "Decide how to win the competition from your current standing.\n"
            "1. Is there a genuine opportunity with clear risk/reward?\n"
            "2. Should you follow the leader or differentiate?\n"
            "3. Are the crowded stocks opportunities or traps?\n"
            f"You may submit up to {self.rules.max_trades_per_session} actions. "
            "HOLD is a valid answer.\n"
            "Respond with JSON only.",
        ]
        return "\n\n".join(sections)
