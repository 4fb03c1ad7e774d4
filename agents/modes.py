"""
Static rule sets for the four competition modes.

A participant's mode decides what it sees in its prompt and which extra
constraints the validator applies to its actions. Rule sets are frozen;
changing a mode's rules is a code change, not a runtime setting.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from ledger.models import ModeCode

__all__ = ["MODE_RULES", "ModeCode", "ModeRuleSet", "get_rules"]


class ModeRuleSet(BaseModel):
    """Trading constraints for one mode. Percentages are percent of portfolio / capital."""

    model_config = ConfigDict(frozen=True)

    code: ModeCode
    name: str
    description: str
    max_position_pct: float
    min_leverage: float | None = None
    max_leverage: float | None = None
    max_daily_loss_pct: float | None = None
    mandatory_stop_loss: bool = False
    can_see_competitors: bool = False
    max_trades_per_session: int = 3
    news_access: bool = True
    memory_enabled: bool = True

    @property
    def default_leverage(self) -> float | None:
        return self.min_leverage

    @property
    def daily_loss_warning_pct(self) -> float | None:
        """Loss level at which the prompt starts warning (75% of the cap)."""
        if self.max_daily_loss_pct is None:
            return None
        return self.max_daily_loss_pct * 0.75


MODE_RULES: dict[ModeCode, ModeRuleSet] = {
    ModeCode.NEW_BASELINE: ModeRuleSet(
        code=ModeCode.NEW_BASELINE,
        name="New Baseline",
        description="Full market data, standard risk limits, up to 3 trades per session.",
        max_position_pct=30.0,
        max_trades_per_session=3,
    ),
    ModeCode.MONK_MODE: ModeRuleSet(
        code=ModeCode.MONK_MODE,
        name="Monk Mode",
        description=(
            "Capital preservation first: 15% position cap, 2% daily loss limit, "
            "stop-loss required on every buy."
        ),
        max_position_pct=15.0,
        max_daily_loss_pct=2.0,
        mandatory_stop_loss=True,
        max_trades_per_session=2,
        memory_enabled=False,
    ),
    ModeCode.SITUATIONAL_AWARENESS: ModeRuleSet(
        code=ModeCode.SITUATIONAL_AWARENESS,
        name="Situational Awareness",
        description="Sees the positions and returns of competitors in the same mode.",
        max_position_pct=30.0,
        can_see_competitors=True,
        max_trades_per_session=3,
    ),
    ModeCode.MAX_LEVERAGE: ModeRuleSet(
        code=ModeCode.MAX_LEVERAGE,
        name="Max Leverage",
        description="Every position is opened with 2.5x to 3x leverage.",
        max_position_pct=30.0,
        min_leverage=2.5,
        max_leverage=3.0,
        max_trades_per_session=2,
    ),
}

_missing = set(ModeCode) - set(MODE_RULES)
if _missing:
    raise KeyError(f"No rule set defined for modes: {sorted(m.value for m in _missing)}")


def get_rules(mode: ModeCode | str) -> ModeRuleSet:
    """Return the rule set for a mode code (enum or its string value)."""
    return MODE_RULES[ModeCode(mode)]
