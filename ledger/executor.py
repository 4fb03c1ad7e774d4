"""
Trade executor: applies validated actions to the ledger.

Each action is one SQLite transaction touching the participant row, the
(participant, stock) holding and the trade log. Accounting rules:

BUY
    cash    -= qty * price * (1 + fee_pct / 100)
    holding  weighted-average cost; leverage recorded on the holding
SELL
    realized = (price - avg) * qty * leverage
    cash    += qty * price - fee + (leverage - 1) * (price - avg) * qty
    holding  removed once the remaining quantity is zero

Realized P&L is gross of fees. ``quantity`` is always the margin quantity
(shares paid for with cash), so leverage scales P&L exactly once, at sell.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Callable, Optional

from pydantic import BaseModel

from ledger.database import ArenaDatabase
from ledger.models import (
    QUANTITY_EPSILON,
    Holding,
    ModeCode,
    Participant,
    Trade,
    TradeExecutionError,
    TradeType,
)

if TYPE_CHECKING:
    from agents.base import TradeAction, ValidationResult

logger = logging.getLogger(__name__)


class ExecutedTrade(BaseModel):
    """Summary of one applied action, as reported in the session report."""

    trade_id: int
    stock_code: str
    trade_type: TradeType
    quantity: float
    price: float
    total_value: float
    fees: float
    realized_pnl: Optional[float] = None
    leverage: Optional[float] = None
    cash_after: float


class TradeExecutor:
    """Applies one validated action at a time to the ledger."""

    def __init__(self, db: ArenaDatabase, trading_fee_pct: float):
        self.db = db
        self.trading_fee_pct = trading_fee_pct

    def fee(self, gross: float) -> float:
        return gross * self.trading_fee_pct / 100

    def execute(
        self,
        participant: Participant,
        action: TradeAction,
        price: float,
        mode: ModeCode,
        now: datetime | None = None,
    ) -> ExecutedTrade:
        """Apply a validated action. Raises TradeExecutionError if it cannot be applied."""
        if participant.id is None:
            raise TradeExecutionError("Participant has no id")
        if price <= 0:
            raise TradeExecutionError(f"Invalid execution price {price} for {action.stock_code}")
        if action.quantity <= 0:
            raise TradeExecutionError(f"Invalid quantity {action.quantity} for {action.stock_code}")

        now = now or datetime.now(UTC)
        holding = self.db.get_holding(participant.id, action.stock_code)

        try:
            kind = TradeType(action.action.strip().upper())
        except ValueError:
            raise TradeExecutionError(f"Action {action.action!r} is not executable") from None

        if kind == TradeType.BUY:
            updated, new_holding, trade = self._buy(participant, holding, action, price, mode, now)
        else:
            if holding is None:
                raise TradeExecutionError(f"No position in {action.stock_code} to sell")
            updated, new_holding, trade = self._sell(participant, holding, action, price, mode, now)

        try:
            trade_id = self.db.commit_trade(updated, trade, new_holding)
        except sqlite3.Error as e:
            raise TradeExecutionError(f"Ledger write failed for {action.stock_code}: {e}") from e

        # Keep the caller's object in step with the committed row.
        participant.cash = updated.cash
        participant.realized_pnl = updated.realized_pnl
        participant.total_trades = updated.total_trades
        participant.winning_trades = updated.winning_trades
        participant.last_trade_at = updated.last_trade_at

        logger.info(
            f"{trade.trade_type.value} {trade.quantity:g} {trade.stock_code} @ {price:.4f} "
            f"(fee {trade.fees:.2f}"
            f"{f', realized {trade.realized_pnl:+.2f}' if trade.realized_pnl is not None else ''}"
            f") cash now {updated.cash:.2f}"
        )
        return ExecutedTrade(
            trade_id=trade_id,
            stock_code=trade.stock_code,
            trade_type=trade.trade_type,
            quantity=trade.quantity,
            price=trade.price,
            total_value=trade.total_value,
            fees=trade.fees,
            realized_pnl=trade.realized_pnl,
            leverage=trade.leverage,
            cash_after=updated.cash,
        )

    def execute_actions(
        self,
        participant: Participant,
        actions: list[TradeAction],
        prices: dict[str, float],
        mode: ModeCode,
        validate: Callable[[TradeAction, float | None], ValidationResult] | None = None,
        now: datetime | None = None,
    ) -> list[ExecutedTrade]:
        """Apply actions in order, skipping any that fail.

        ``validate`` is called just before each action with the action and its
        price, so it sees the ledger as left by the previous action. It returns
        a result with ``valid``, ``error`` and the (possibly clamped) ``action``.
        """
        executed: list[ExecutedTrade] = []
        for action in actions:
            price = prices.get(action.stock_code)

            if validate is not None:
                result = validate(action, price)
                if not result.valid:
                    logger.warning(
                        f"Skipping {action.action} {action.stock_code} for "
                        f"participant {participant.id}: {result.error}"
                    )
                    continue
                action = result.action or action

            if price is None:
                logger.warning(f"Skipping {action.action} {action.stock_code}: no live price")
                continue

            try:
                executed.append(self.execute(participant, action, price, mode, now=now))
            except TradeExecutionError as e:
                logger.warning(f"Skipping {action.action} {action.stock_code}: {e}")
        return executed

    # ── Accounting ──

    def _buy(
        self,
        participant: Participant,
        holding: Holding | None,
        action: TradeAction,
        price: float,
        mode: ModeCode,
        now: datetime,
    ) -> tuple[Participant, Holding, Trade]:
        qty = action.quantity
        gross = qty * price
        fee = self.fee(gross)
        if gross + fee > participant.cash + 1e-9:
            raise TradeExecutionError(
                f"Insufficient cash for {action.stock_code}: need {gross + fee:.2f}, "
                f"have {participant.cash:.2f}"
            )

        leverage = action.leverage if action.leverage and action.leverage > 1 else None
        if holding is None:
            new_holding = Holding(
                participant_id=participant.id,
                stock_code=action.stock_code,
                stock_name=action.stock_name,
                quantity=qty,
                avg_buy_price=price,
                current_price=price,
                leverage=leverage,
                stop_loss=action.stop_loss,
                entry_time=now,
            )
        else:
            total_qty = holding.quantity + qty
            avg = (holding.quantity * holding.avg_buy_price + qty * price) / total_qty
            new_holding = holding.model_copy(update={
                "quantity": total_qty,
                "avg_buy_price": avg,
                "current_price": price,
                "leverage": leverage if leverage is not None else holding.leverage,
                "stop_loss": action.stop_loss if action.stop_loss else holding.stop_loss,
                "stock_name": holding.stock_name or action.stock_name,
            })

        updated = participant.model_copy(update={
            "cash": participant.cash - gross - fee,
            "total_trades": participant.total_trades + 1,
            "last_trade_at": now,
        })
        trade = Trade(
            participant_id=participant.id,
            stock_code=action.stock_code,
            stock_name=new_holding.stock_name,
            trade_type=TradeType.BUY,
            quantity=qty,
            price=price,
            total_value=gross,
            fees=fee,
            realized_pnl=None,
            reasoning=action.reasoning,
            mode=mode,
            leverage=leverage,
            stop_loss=action.stop_loss,
            executed_at=now,
        )
        return updated, new_holding, trade

    def _sell(
        self,
        participant: Participant,
        holding: Holding,
        action: TradeAction,
        price: float,
        mode: ModeCode,
        now: datetime,
    ) -> tuple[Participant, Optional[Holding], Trade]:
        qty = min(action.quantity, holding.quantity)
        lev = holding.effective_leverage
        gross = qty * price
        fee = self.fee(gross)
        move = (price - holding.avg_buy_price) * qty
        realized = move * lev

        remaining = holding.quantity - qty
        if remaining <= QUANTITY_EPSILON:
            new_holding = None
        else:
            new_holding = holding.model_copy(update={
                "quantity": remaining,
                "current_price": price,
            })

        updated = participant.model_copy(update={
            "cash": participant.cash + gross - fee + (lev - 1) * move,
            "realized_pnl": participant.realized_pnl + realized,
            "total_trades": participant.total_trades + 1,
            "winning_trades": participant.winning_trades + (1 if realized > 0 else 0),
            "last_trade_at": now,
        })
        trade = Trade(
            participant_id=participant.id,
            stock_code=holding.stock_code,
            stock_name=holding.stock_name,
            trade_type=TradeType.SELL,
            quantity=qty,
            price=price,
            total_value=gross,
            fees=fee,
            realized_pnl=realized,
            reasoning=action.reasoning,
            mode=mode,
            leverage=holding.leverage if lev > 1 else None,
            executed_at=now,
        )
        return updated, new_holding, trade
