"""
Monk mode: capital preservation first.

A deliberately compressed prompt. Once today's realized loss reaches the
daily cap the prompt stops offering a choice and demands a HOLD; the
validator enforces the same cap independently, so a model that ignores
the instruction still cannot trade.
"""

from __future__ import annotations

from typing import Optional

from agents.base import AccountState, ActionType, ModeStrategy, TradeAction, TradingContext
from agents.formatting import money, signed_pct
from agents.modes import ModeCode
from tools.screening import screen_snapshot

SYSTEM_PROMPT = """You are a DEFENSIVE trader in an AI trading competition on Bursa Malaysia. Capital preservation is your primary objective.

## MONK MODE RULES
- Max position: 15% per stock
- Max daily loss: 2% of starting capital (trading stops for the day once reached)
- Every BUY must carry a stop_loss price
- At most 2 actions per session
- HOLD is your default action

## MINDSET
Before any trade ask: "Can I afford to lose this?" If uncertain, do nothing.

## RESPONSE FORMAT (JSON only)
{
  "risk_assessment": "LOW" | "MEDIUM" | "HIGH",
  "proceed_with_trading": true | false,
  "reasoning": "Why trade or not trade",
  "actions": [
    {
      "action": "BUY" | "SELL" | "HOLD",
      "stock_code": "1155.KL",
      "quantity": 50,
      "reasoning": "Must include the risk justification",
      "confidence": 90,
      "stop_loss": 9.50
    }
  ]
}"""

FORCED_HOLD = '{"proceed_with_trading": false, "actions": [{"action": "HOLD"}]}'


class MonkModeStrategy(ModeStrategy):
    mode = ModeCode.MONK_MODE

    def build_system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def build_user_prompt(self, ctx: TradingContext) -> str:
        cur = ctx.currency
        cap = self.rules.max_daily_loss_pct
        loss = ctx.daily_loss_pct
        lines = [f"MONK MODE: CAPITAL PRESERVATION ({ctx.as_of.strftime('%Y-%m-%d %H:%M')})"]

        if cap is not None and loss >= cap:
            lines += [
                "",
                f"DAILY LOSS LIMIT REACHED ({loss:.2f}% of {cap:.0f}%)",
                "NO TRADES ALLOWED TODAY.",
                f"YOU MUST RESPOND WITH: {FORCED_HOLD}",
            ]
            return "\n".join(lines)

        if cap is not None and loss >= self.rules.daily_loss_warning_pct:
            lines += [
                "",
                f"WARNING: approaching daily loss limit: {loss:.2f}% / {cap:.0f}%",
                "Extreme caution required. Consider HOLDING.",
            ]

        cash_pct = ctx.cash / ctx.portfolio_value * 100 if ctx.portfolio_value > 0 else 100.0
        lines += [
            "",
            f"PORTFOLIO: {money(ctx.portfolio_value, cur)} | P&L: {signed_pct(ctx.pnl_pct)}",
            f"CASH: {money(ctx.cash, cur)} ({cash_pct:.0f}% safe)",
            f"TODAY'S REALIZED P&L: {money(ctx.today_realized_pnl, cur)} "
            f"(loss {loss:.2f}% of {cap:.0f}% limit)",
            "",
            "HOLDINGS:",
        ]
        if ctx.holdings:
            for h in sorted(ctx.holdings, key=lambda h: h.stock_code):
                stop = f" stop {money(h.stop_loss, cur)}" if h.stop_loss else " NO STOP"
                lines.append(
                    f"- {h.stock_code}: {h.quantity:g} @ {money(h.avg_buy_price, cur)} -> "
                    f"{money(h.current_price, cur)} ({signed_pct(h.unrealized_pnl_pct)}){stop}"
                )
        else:
            lines.append("- Cash only (safest position)")

        snap = ctx.market
        picks = ", ".join(
            f"{q.code} {money(q.price, cur)} ({signed_pct(q.change_pct)})"
            for q in snap.gainers[:3]
        )
        screening = screen_snapshot(snap)
        screened = ", ".join(
            f"{s.code} Score {s.overall_score:.0f}" for s in screening.tier1[:3]
        )
        avg_pe = screening.health.avg_pe
        pe_text = f"{avg_pe:.1f}" if avg_pe is not None else "n/a"
        category_1_5 = sorted(
            f.code for f in snap.fundamentals if f.yoy_category in (1, 5)
        )
        lines += [
            "",
            f"MARKET: {snap.breadth.sentiment.value} | {snap.index.name} {snap.index.value:,.2f} "
            f"({signed_pct(snap.index.change_pct)}) | "
            f"{snap.breadth.advances} up / {snap.breadth.declines} down",
            f"Top gainers: {picks or 'None'}",
            f"Top screened: {screened or 'None'} | "
            f"Avg PE: {pe_text} | "
            f"Stocks analysed: {screening.total_analyzed}",
            f"Growth / turnaround names (YoY category 1 or 5): {', '.join(category_1_5) or 'None'}",
            "",
            "PRICES:",
        ]
        lines += [
            f"- {code}: {money(snap.quotes[code].price, cur)}" for code in sorted(snap.quotes)
        ] or ["- unavailable"]
        lines += [
            "",
            "RULES:",
            f"- Max {self.rules.max_position_pct:.0f}% per position",
            "- stop_loss is MANDATORY on every BUY",
            f"- {cap:.0f}% daily loss limit",
            f"- Minimum trade {money(ctx.min_trade_value, cur)}, fee {ctx.trading_fee_pct:.2f}%",
            "",
            "Question: should you trade at all today?",
            f"If yes, at most {self.rules.max_trades_per_session} actions with tight stops.",
            "Respond JSON only.",
        ]
        return "\n".join(lines)

    def _prepare(
        self,
        action: TradeAction,
        account: AccountState,
    ) -> tuple[TradeAction, Optional[str]]:
        action, error = super()._prepare(action, account)
        cap = self.rules.max_daily_loss_pct
        if cap is not None and account.daily_loss_pct >= cap:
            return action, (
                f"Daily loss limit reached ({account.daily_loss_pct:.2f}% >= {cap:.2f}%)"
            )
        if (
            self.rules.mandatory_stop_loss
            and action.action_type == ActionType.BUY
            and not (action.stop_loss and action.stop_loss > 0)
        ):
            return action, "Stop-loss is mandatory for every BUY in Monk Mode"
        return action, error
