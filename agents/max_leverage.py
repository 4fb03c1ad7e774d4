"""
Max Leverage mode: every position is opened with 2.5x to 3x leverage.

Holdings are rendered with their notional exposure, margin, leveraged P&L
and an approximate liquidation price. The validator coerces any missing or
out-of-band leverage to the band's lower bound rather than rejecting.
"""

from __future__ import annotations

import logging
from typing import Optional

from agents.base import AccountState, ModeStrategy, TradeAction, TradingContext
from agents.formatting import (
    format_header,
    format_market_overview,
    format_movers,
    format_news,
    format_prices,
    format_rules,
    money,
    signed_pct,
)
from agents.modes import ModeCode
from ledger.models import Holding

logger = logging.getLogger(__name__)

# Fraction of margin that may be lost before a position is liquidated.
LIQUIDATION_MARGIN_FRACTION = 0.8

SYSTEM_PROMPT = """You are a HIGH-LEVERAGE trader in an AI trading competition on Bursa Malaysia. Every position you open uses 2.5x to 3x leverage.

## MAX LEVERAGE MODE
- Each BUY must specify "leverage" between 2.5 and 3.0 (anything else is treated as 2.5)
- Gains AND losses on a position are multiplied by its leverage
- Quantity is the number of shares paid for with your own cash (the margin)
- At most 2 actions per session

## LEVERAGE MECHANICS
- 2.5x: RM1,000 of margin controls RM2,500 of stock
- 3.0x: RM1,000 of margin controls RM3,000 of stock
- A 10% move is a 25-30% gain or loss on the margin
- A position is liquidated if it loses 80% of its margin

## RISK MANAGEMENT
- Use tight stop-losses (2-3%)
- Size positions smaller to account for leverage
- HOLD is always valid; only trade setups with confidence above 80%

## RESPONSE FORMAT (JSON only)
{
  "leverage_strategy": {
    "selected_leverage": 2.5,
    "risk_per_trade_pct": 2,
    "sentiment": "BULLISH" | "BEARISH" | "NEUTRAL"
  },
  "summary": "One paragraph explaining the decision",
  "actions": [
    {
      "action": "BUY" | "SELL" | "HOLD",
      "stock_code": "1155.KL",
      "quantity": 50,
      "leverage": 2.5,
      "reasoning": "Must include a leverage risk assessment",
      "confidence": 90,
      "stop_loss": 9.70,
      "take_profit": 10.40
    }
  ]
}"""


def liquidation_price(avg_price: float, leverage: float) -> float:
    """Price at which losses consume 80% of the position's margin."""
    return avg_price * (1 - LIQUIDATION_MARGIN_FRACTION / leverage)


def _holding_block(h: Holding, cur: str) -> str:
    lev = h.effective_leverage
    return "\n".join([
        f"- {h.stock_code}: {h.quantity:g} shares",
        f"  Entry {money(h.avg_buy_price, cur)} | Current {money(h.current_price, cur)}",
        f"  Leverage {lev:.1f}x | Notional {money(h.notional_value, cur)} "
        f"| Margin {money(h.margin, cur)}",
        f"  P&L {signed_pct(h.unrealized_pnl_pct * lev)} leveraged "
        f"({money(h.unrealized_pnl * lev, cur)})",
        f"  Liquidation price {money(liquidation_price(h.avg_buy_price, lev), cur)}",
    ])


class MaxLeverageStrategy(ModeStrategy):
    mode = ModeCode.MAX_LEVERAGE

    def build_system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def build_user_prompt(self, ctx: TradingContext) -> str:
        cur = ctx.currency
        margin_used = sum(h.margin for h in ctx.holdings)
        notional = sum(h.notional_value for h in ctx.holdings)
        utilisation = margin_used / ctx.portfolio_value * 100 if ctx.portfolio_value > 0 else 0.0

        positions = ["## LEVERAGED POSITIONS"]
        if ctx.holdings:
            positions += [_holding_block(h, cur) for h in sorted(ctx.holdings, key=lambda h: h.stock_code)]
        else:
            positions.append("- No leveraged positions")

        sections = [
            format_header(ctx, "TRADING SESSION: MAX LEVERAGE MODE"),
            "\n".join([
                "## PORTFOLIO STATUS",
                f"Portfolio value: {money(ctx.portfolio_value, cur)}",
                f"Available cash: {money(ctx.cash, cur)}",
                f"Total P&L: {signed_pct(ctx.pnl_pct)}",
                f"Margin utilisation: {utilisation:.1f}%",
                f"Total notional exposure: {money(notional, cur)}",
            ]),
            "\n".join(positions),
            format_market_overview(ctx.market),
            format_movers(ctx.market, cur),
            format_news(ctx.market, ctx.news_limit),
            format_prices(ctx.market, cur),
            format_rules(ctx, self.rules),
            "## YOUR TASK\n"
            "First assess whether a high-conviction setup exists.\n"
            "If yes, size for amplified risk and include \"leverage\" (2.5 to 3.0) on every action.\n"
            "If no, respond with a single HOLD action.\n"
            "Respond with JSON only.",
        ]
        return "\n\n".join(sections)

    def _prepare(
        self,
        action: TradeAction,
        account: AccountState,
    ) -> tuple[TradeAction, Optional[str]]:
        # Sells still carry a leverage here; the executor closes at the holding's own.
        low, high = self.rules.min_leverage, self.rules.max_leverage
        lev = action.leverage
        if lev is None or not (low <= lev <= high):
            if lev is not None:
                logger.info(f"Leverage {lev} outside [{low}, {high}], using {low}")
            action = action.model_copy(update={"leverage": low})
        return action, None
