"""
Trading session orchestrator.

Drives one session end to end:
    1. Market window check (skipped for dry runs)
    2. Competition config: present, active, inside [start, end]
    3. Market snapshot, fetched once and shared by every participant
    4. Active participants, optionally narrowed to one model
    5. Per participant, sequentially: context → prompts → provider call →
       parse → decision log → validate & execute (unless dry run)
    6. Valuation and ranking, only if this session executed a trade

Steps 1, 2 and 4 are the only ways a session aborts. Everything that goes
wrong for one participant is recorded in that participant's result and the
loop moves on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Optional

from agents import get_strategy
from agents.base import MarketAnalysis, TradeAction, ValidationResult
from agents.parsing import parse_ai_response
from config.settings import Settings, settings
from ledger.database import ArenaDatabase
from ledger.executor import ExecutedTrade, TradeExecutor
from ledger.models import AIDecision, CompetitionConfig, DecisionType, ModeCode, Participant
from ledger.valuation import PortfolioValuator
from orchestrator.context import ContextBuilder
from orchestrator.market_hours import MarketHours
from providers.base import ProviderResponse
from providers.router import ProviderRouter
from tools.data_aggregator import MarketDataAggregator
from tools.models import MarketSnapshot

logger = logging.getLogger(__name__)

PARSE_FAILURE = "parse failure"


@dataclass
class ModelSessionResult:
    """Outcome for one participant in one session."""

    model_id: str
    model_name: str
    mode: ModeCode
    participant_id: Optional[int] = None
    success: bool = False
    sentiment: Optional[str] = None
    trades: list[ExecutedTrade] = field(default_factory=list)
    tokens_used: int = 0
    latency_ms: int = 0
    error: Optional[str] = None

    @property
    def trades_executed(self) -> int:
        return len(self.trades)

    def to_dict(self) -> dict[str, Any]:
        return {
            "model_id": self.model_id,
            "model_name": self.model_name,
            "mode": self.mode.value,
            "participant_id": self.participant_id,
            "success": self.success,
            "sentiment": self.sentiment,
            "trades_executed": self.trades_executed,
            "trades": [t.model_dump(mode="json") for t in self.trades],
            "tokens_used": self.tokens_used,
            "latency_ms": self.latency_ms,
            "error": self.error,
        }


@dataclass
class SessionReport:
    """Everything one session did, for the CLI, the API and the logs."""

    timestamp: datetime
    dry_run: bool = False
    market_hours: bool = False
    competition_active: bool = False
    models_processed: int = 0
    trades_executed: int = 0
    total_tokens_used: int = 0
    results: list[ModelSessionResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def add(self, result: ModelSessionResult) -> None:
        self.results.append(result)
        self.total_tokens_used += result.tokens_used
        if result.success:
            self.models_processed += 1
            self.trades_executed += result.trades_executed

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "dry_run": self.dry_run,
            "market_hours": self.market_hours,
            "competition_active": self.competition_active,
            "models_processed": self.models_processed,
            "trades_executed": self.trades_executed,
            "total_tokens_used": self.total_tokens_used,
            "results": [r.to_dict() for r in self.results],
            "errors": list(self.errors),
        }


class TradingSession:
    """One trading session over the shared ledger."""

    def __init__(
        self,
        db: ArenaDatabase,
        router: ProviderRouter,
        aggregator: MarketDataAggregator,
        app_settings: Settings | None = None,
        market_hours: MarketHours | None = None,
    ):
        self.db = db
        self.router = router
        self.aggregator = aggregator
        self.settings = app_settings or settings
        self.market_hours = market_hours or MarketHours.from_settings(self.settings)
        self.contexts = ContextBuilder(db, self.settings, self.market_hours)

    def run(
        self,
        dry_run: bool = False,
        single_model: str | None = None,
        now: datetime | None = None,
    ) -> SessionReport:
        """Run one session. Never raises; failures land in the report."""
        now = now or datetime.now(UTC)
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        report = SessionReport(timestamp=now, dry_run=dry_run)

        try:
            market = self.market_hours.status(now)
            report.market_hours = market.open
            if not market.open and not dry_run:
                report.errors.append(market.reason)
                logger.info(f"Session skipped: {market.reason}")
                return report

            config = self.db.get_config()
            error = self._check_competition(config, now)
            if error:
                report.errors.append(error)
                logger.info(f"Session skipped: {error}")
                return report
            report.competition_active = True

            logger.info("Fetching market snapshot...")
            snapshot = self.aggregator.build_snapshot()
            logger.info(
                f"Market snapshot: {len(snapshot.quotes)} quotes, "
                f"{len(snapshot.gainers)} gainers, {len(snapshot.losers)} losers, "
                f"{len(snapshot.news)} news items"
            )

            participants = self.db.get_participants(active_only=True, model_id=single_model)
            if not participants:
                report.errors.append("No active participants found")
                return report

            logger.info(f"Processing {len(participants)} participants (dry_run={dry_run})")
            executor = TradeExecutor(self.db, config.trading_fee_pct)
            for participant in participants:
                report.add(
                    self._process(participant, config, snapshot, executor, dry_run, now)
                )

            if not dry_run and report.trades_executed > 0:
                logger.info("Updating portfolios and rankings...")
                PortfolioValuator(self.db).update_all(snapshot.prices)

            logger.info(
                f"Session complete: {report.models_processed} participants, "
                f"{report.trades_executed} trades, {report.total_tokens_used} tokens"
            )
        except Exception as e:
            logger.exception("Trading session failed")
            report.errors.append(str(e) or type(e).__name__)

        return report

    @staticmethod
    def _check_competition(config: CompetitionConfig | None, now: datetime) -> str | None:
        if config is None:
            return "Competition config not found"
        if not config.is_active:
            return "Competition is not active"
        if now < config.start_date:
            return f"Competition starts on {config.start_date.isoformat()}"
        if now > config.end_date:
            return f"Competition ended on {config.end_date.isoformat()}"
        return None

    # ── Per participant ──

    def _process(
        self,
        participant: Participant,
        config: CompetitionConfig,
        snapshot: MarketSnapshot,
        executor: TradeExecutor,
        dry_run: bool,
        now: datetime,
    ) -> ModelSessionResult:
        result = ModelSessionResult(
            model_id=participant.model_id,
            model_name=participant.display_name or participant.model_id,
            mode=participant.mode,
            participant_id=participant.id,
        )

        try:
            model = self.router.config(participant.model_id)
        except KeyError:
            result.error = "Model configuration not found"
            logger.error(f"{participant.model_id}: {result.error}")
            return result
        result.model_name = model.name

        provider = self.router.get(participant.model_id)
        if not provider.is_available():
            result.error = f"API key not configured: {provider.credential_name}"
            logger.error(f"{participant.model_id}: {result.error}")
            return result

        try:
            logger.info(f"Processing {result.model_name} ({participant.mode.value})")
            strategy = get_strategy(participant.mode)
            ctx = self.contexts.build(participant, config, snapshot, now)
            system_prompt, user_prompt = strategy.build_prompts(ctx)

            response = provider.chat(system_prompt, user_prompt)
            result.tokens_used = response.tokens_used
            result.latency_ms = response.latency_ms
            if not response.success:
                result.error = response.error or "provider error"
                logger.error(f"{result.model_name} provider error: {result.error}")
                return result

            analysis = parse_ai_response(response.content)
            self._log_decision(participant, analysis, response)
            if analysis is None:
                result.error = PARSE_FAILURE
                logger.error(f"{result.model_name}: could not parse response")
                return result
            result.sentiment = analysis.sentiment

            actions = analysis.executable_actions[: strategy.rules.max_trades_per_session]
            if dry_run:
                logger.info(f"{result.model_name}: dry run, {len(actions)} actions not executed")
            elif analysis.proceed_with_trading is False:
                logger.info(f"{result.model_name}: chose not to trade this session")
            elif actions:
                prices = self._action_prices(snapshot, actions)

                def validate(action: TradeAction, price: float | None) -> ValidationResult:
                    account = self.contexts.account(participant, config, prices, now)
                    return strategy.validate(action, account, price)

                result.trades = executor.execute_actions(
                    participant, actions, prices, participant.mode,
                    validate=validate, now=now,
                )

            result.success = True
            logger.info(f"{result.model_name}: {result.trades_executed} trades executed")
        except Exception as e:
            logger.exception(f"Error processing {result.model_name}")
            result.error = str(e) or type(e).__name__

        return result

    def _action_prices(self, snapshot: MarketSnapshot, actions: list[TradeAction]) -> dict[str, float]:
        """Snapshot prices, plus a live lookup for any action stock the snapshot lacks."""
        prices = dict(snapshot.prices)
        for code in sorted({a.stock_code for a in actions if a.stock_code} - prices.keys()):
            price = self.aggregator.get_price(code)
            if price is not None:
                prices[code] = price
        return prices

    def _log_decision(
        self,
        participant: Participant,
        analysis: MarketAnalysis | None,
        response: ProviderResponse,
    ) -> None:
        if analysis is None:
            decision = AIDecision(
                participant_id=participant.id,
                decision_type=DecisionType.PARSE_FAILURE,
                raw_response=response.content,
                tokens_used=response.tokens_used,
            )
        else:
            decision = AIDecision(
                participant_id=participant.id,
                decision_type=(
                    DecisionType.TRADE if analysis.executable_actions else DecisionType.HOLD
                ),
                stocks_analyzed=analysis.top_picks,
                market_sentiment=analysis.sentiment,
                decision_summary=analysis.summary,
                raw_response=response.content,
                tokens_used=response.tokens_used,
            )
        self.db.log_decision(decision)
