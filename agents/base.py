"""
Base mode strategy for the trading arena.

Every mode follows the same two-step contract:
    build_prompts(ctx) → (system, user)       pure, no I/O, no clock reads
    validate(action, account, price) → ValidationResult   pure, never raises

Shared checks (minimum trade value, cash, position cap, sell clamping) live
here; each mode adds its own constraints through ``_prepare``.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from agents.modes import MODE_RULES, ModeCode, ModeRuleSet
from ledger.models import QUANTITY_EPSILON, Holding, Participant, Trade
from tools.models import MarketSnapshot

logger = logging.getLogger(__name__)

LOSS_PCT_DECIMALS = 6


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ActionType(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


# ---------------------------------------------------------------------------
# Model output
# ---------------------------------------------------------------------------

class TradeAction(BaseModel):
    """One proposed action as returned by a model, after normalisation."""

    action: str
    stock_code: str = ""
    stock_name: str = ""
    quantity: float = 0.0
    reasoning: str = ""
    confidence: Optional[float] = None
    stop_loss: Optional[float] = None
    target_price: Optional[float] = None
    leverage: Optional[float] = None

    @property
    def action_type(self) -> Optional[ActionType]:
        try:
            return ActionType(self.action.strip().upper())
        except ValueError:
            return None


class MarketAnalysis(BaseModel):
    """Parsed decision: the model's market view plus its proposed actions."""

    sentiment: str = "NEUTRAL"
    top_picks: list[str] = Field(default_factory=list)
    summary: str = ""
    proceed_with_trading: Optional[bool] = None
    actions: list[TradeAction] = Field(default_factory=list)

    @property
    def executable_actions(self) -> list[TradeAction]:
        return [
            a for a in self.actions
            if a.action_type in (ActionType.BUY, ActionType.SELL)
        ]


# ---------------------------------------------------------------------------
# Decision context
# ---------------------------------------------------------------------------

class CompetitorView(BaseModel):
    """What an awareness-mode participant may see about a rival."""

    rank: int
    portfolio_value: float
    pnl_pct: float
    cash_pct: float
    top_holdings: list[tuple[str, float]] = Field(default_factory=list)


class TradingContext(BaseModel):
    """Everything a prompt builder may render. Carries no participant identity."""

    mode: ModeCode
    as_of: datetime
    currency: str = "RM"
    market: MarketSnapshot

    initial_capital: float
    cash: float
    portfolio_value: float
    total_pnl: float = 0.0
    pnl_pct: float = 0.0
    rank: Optional[int] = None
    participant_count: int = 1
    holdings: list[Holding] = Field(default_factory=list)
    recent_trades: list[Trade] = Field(default_factory=list)
    today_realized_pnl: float = 0.0

    trading_fee_pct: float = 0.15
    min_trade_value: float = 100.0
    news_limit: int = 5
    competitors: list[CompetitorView] = Field(default_factory=list)

    @property
    def daily_loss_pct(self) -> float:
        return daily_loss_pct(self.today_realized_pnl, self.initial_capital)


class AccountState(BaseModel):
    """Ledger view the validator checks an action against."""

    cash: float
    portfolio_value: float
    initial_capital: float
    holdings: dict[str, Holding] = Field(default_factory=dict)
    trading_fee_pct: float = 0.15
    min_trade_value: float = 100.0
    max_position_pct: Optional[float] = None
    daily_loss_pct: float = 0.0
    currency: str = "RM"

    @classmethod
    def from_ledger(
        cls,
        participant: Participant,
        holdings: list[Holding],
        *,
        trading_fee_pct: float,
        min_trade_value: float,
        today_realized_pnl: float = 0.0,
        max_position_pct: Optional[float] = None,
        currency: str = "RM",
    ) -> "AccountState":
        portfolio_value = participant.cash + sum(h.market_value for h in holdings)
        return cls(
            cash=participant.cash,
            portfolio_value=portfolio_value,
            initial_capital=participant.initial_capital,
            holdings={h.stock_code: h for h in holdings},
            trading_fee_pct=trading_fee_pct,
            min_trade_value=min_trade_value,
            max_position_pct=max_position_pct,
            daily_loss_pct=daily_loss_pct(today_realized_pnl, participant.initial_capital),
            currency=currency,
        )


class ValidationResult(BaseModel):
    """Outcome of validating one action. ``action`` carries any clamping applied."""

    valid: bool
    error: Optional[str] = None
    action: Optional[TradeAction] = None

    @classmethod
    def ok(cls, action: TradeAction) -> "ValidationResult":
        return cls(valid=True, action=action)

    @classmethod
    def reject(cls, error: str, action: TradeAction | None = None) -> "ValidationResult":
        return cls(valid=False, error=error, action=action)


def daily_loss_pct(today_realized_pnl: float, initial_capital: float) -> float:
    """Today's realized loss as a percent of initial capital (0 when flat or up).

    Rounded to ``LOSS_PCT_DECIMALS`` places: P&L summed from float fills lands a
    hair off the cap (2% can come back as 1.9999999999999998).
    """
    if initial_capital <= 0:
        return 0.0
    return round(max(0.0, -today_realized_pnl) / initial_capital * 100, LOSS_PCT_DECIMALS)


# ---------------------------------------------------------------------------
# Strategy base
# ---------------------------------------------------------------------------

class ModeStrategy(ABC):
    """Prompt builder and validator for one competition mode."""

    mode: ModeCode

    def __init__(self) -> None:
        self.rules: ModeRuleSet = MODE_RULES[self.mode]

    # ── Prompts ──

    def build_prompts(self, ctx: TradingContext) -> tuple[str, str]:
        """Return (system_prompt, user_prompt) for this mode."""
        return self.build_system_prompt(), self.build_user_prompt(ctx)

    @abstractmethod
    def build_system_prompt(self) -> str:
        ...

    @abstractmethod
    def build_user_prompt(self, ctx: TradingContext) -> str:
        ...

    # ── Validation ──

    def validate(
        self,
        action: TradeAction,
        account: AccountState,
        price: Optional[float],
    ) -> ValidationResult:
        """Check one action against mode and account constraints."""
        kind = action.action_type
        if kind == ActionType.HOLD:
            return ValidationResult.reject("HOLD is not an executable action", action)
        if kind is None:
            return ValidationResult.reject(f"Unknown action type: {action.action!r}", action)
        if not action.stock_code:
            return ValidationResult.reject("Missing stock code", action)
        for field in ("quantity", "stop_loss", "target_price", "leverage"):
            value = getattr(action, field)
            if value is not None and not math.isfinite(value):
                return ValidationResult.reject(f"{field} must be a finite number, got {value}", action)
        if action.quantity <= 0:
            return ValidationResult.reject(
                f"Quantity must be positive, got {action.quantity}", action
            )
        if price is None or price <= 0:
            return ValidationResult.reject(f"No price available for {action.stock_code}", action)

        action, error = self._prepare(action, account)
        if error:
            return ValidationResult.reject(error, action)

        if kind == ActionType.BUY:
            return self._validate_buy(action, account, price)
        return self._validate_sell(action, account, price)

    def _prepare(
        self,
        action: TradeAction,
        account: AccountState,
    ) -> tuple[TradeAction, Optional[str]]:
        """Mode hook: normalise the action or return an error. Default drops leverage."""
        if action.leverage is not None:
            action = action.model_copy(update={"leverage": None})
        return action, None

    def _max_position_pct(self, account: AccountState) -> float:
        if account.max_position_pct is None:
            return self.rules.max_position_pct
        return min(self.rules.max_position_pct, account.max_position_pct)

    def _validate_buy(
        self,
        action: TradeAction,
        account: AccountState,
        price: float,
    ) -> ValidationResult:
        cur = account.currency
        notional = action.quantity * price
        if notional < account.min_trade_value:
            return ValidationResult.reject(
                f"Trade value {cur}{notional:,.2f} is below the minimum "
                f"{cur}{account.min_trade_value:,.2f}",
                action,
            )

        cost = notional * (1 + account.trading_fee_pct / 100)
        if cost > account.cash + 1e-9:
            return ValidationResult.reject(
                f"Insufficient cash: need {cur}{cost:,.2f}, have {cur}{account.cash:,.2f}",
                action,
            )

        cap = self._max_position_pct(account)
        held = account.holdings.get(action.stock_code)
        existing = held.quantity * price if held else 0.0
        if account.portfolio_value > 0:
            position_pct = (existing + notional) / account.portfolio_value * 100
            if position_pct > cap + 1e-9:
                return ValidationResult.reject(
                    f"Position in {action.stock_code} would be {position_pct:.1f}% "
                    f"of portfolio, above the {cap:.0f}% limit",
                    action,
                )
        return ValidationResult.ok(action)

    def _validate_sell(
        self,
        action: TradeAction,
        account: AccountState,
        price: float,
    ) -> ValidationResult:
        held = account.holdings.get(action.stock_code)
        if held is None or held.quantity <= QUANTITY_EPSILON:
            return ValidationResult.reject(f"No position in {action.stock_code} to sell", action)

        if action.quantity > held.quantity:
            logger.info(
                f"Clamping SELL {action.stock_code} from {action.quantity:g} "
                f"to held {held.quantity:g}"
            )
            action = action.model_copy(update={"quantity": held.quantity})

        closes_position = held.quantity - action.quantity <= QUANTITY_EPSILON
        notional = action.quantity * price
        if not closes_position and notional < account.min_trade_value:
            cur = account.currency
            return ValidationResult.reject(
                f"Trade value {cur}{notional:,.2f} is below the minimum "
                f"{cur}{account.min_trade_value:,.2f}",
                action,
            )
        return ValidationResult.ok(action)
