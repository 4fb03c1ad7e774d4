from agents.base import (
    AccountState,
    ActionType,
    CompetitorView,
    MarketAnalysis,
    ModeStrategy,
    TradeAction,
    TradingContext,
    ValidationResult,
)
from agents.max_leverage import MaxLeverageStrategy
from agents.modes import MODE_RULES, ModeCode, ModeRuleSet, get_rules
from agents.monk_mode import MonkModeStrategy
from agents.new_baseline import NewBaselineStrategy
from agents.parsing import extract_json, parse_ai_response
from agents.situational_awareness import SituationalAwarenessStrategy

STRATEGIES: dict[ModeCode, type[ModeStrategy]] = {
    ModeCode.NEW_BASELINE: NewBaselineStrategy,
    ModeCode.MONK_MODE: MonkModeStrategy,
    ModeCode.SITUATIONAL_AWARENESS: SituationalAwarenessStrategy,
    ModeCode.MAX_LEVERAGE: MaxLeverageStrategy,
}

_missing = set(ModeCode) - set(STRATEGIES)
if _missing:
    raise KeyError(f"No strategy registered for modes: {sorted(m.value for m in _missing)}")

_instances: dict[ModeCode, ModeStrategy] = {}


def get_strategy(mode: ModeCode | str) -> ModeStrategy:
    """Return the (stateless, shared) strategy for a mode."""
    code = ModeCode(mode)
    if code not in _instances:
        _instances[code] = STRATEGIES[code]()
    return _instances[code]


__all__ = [
    "AccountState",
    "ActionType",
    "CompetitorView",
    "MODE_RULES",
    "MarketAnalysis",
    "ModeCode",
    "ModeRuleSet",
    "ModeStrategy",
    "STRATEGIES",
    "TradeAction",
    "TradingContext",
    "ValidationResult",
    "extract_json",
    "get_rules",
    "get_strategy",
    "parse_ai_response",
]
