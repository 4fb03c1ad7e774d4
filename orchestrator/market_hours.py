"""
Bursa Malaysia trading window.

Two sessions Monday to Friday in local time: morning 09:00–12:30 and
afternoon 14:30–17:00. Public holidays are not modelled.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from zoneinfo import ZoneInfo

from config.settings import Settings


@dataclass(frozen=True)
class MarketStatus:
    open: bool
    reason: str


class MarketHours:
    """Answers "is the market open?" and "when did today start?" in market time."""

    def __init__(
        self,
        timezone: str = "Asia/Kuala_Lumpur",
        market_open: time = time(9, 0),
        lunch_start: time = time(12, 30),
        lunch_end: time = time(14, 30),
        market_close: time = time(17, 0),
    ):
        self.tz = ZoneInfo(timezone)
        self.market_open = market_open
        self.lunch_start = lunch_start
        self.lunch_end = lunch_end
        self.market_close = market_close

    @classmethod
    def from_settings(cls, s: Settings) -> "MarketHours":
        return cls(
            timezone=s.market_timezone,
            market_open=s.market_open,
            lunch_start=s.lunch_start,
            lunch_end=s.lunch_end,
            market_close=s.market_close,
        )

    def local(self, now: datetime | None = None) -> datetime:
        now = now or datetime.now(UTC)
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        return now.astimezone(self.tz)

    def status(self, now: datetime | None = None) -> MarketStatus:
        local = self.local(now)
        t = local.time()

        if local.weekday() >= 5:
            return MarketStatus(False, "Weekend - market closed")
        if t < self.market_open:
            return MarketStatus(False, f"Pre-market (opens at {self.market_open:%H:%M} local time)")
        if t >= self.market_close:
            return MarketStatus(False, f"After hours (closed at {self.market_close:%H:%M} local time)")
        if self.lunch_start <= t < self.lunch_end:
            return MarketStatus(
                False,
                f"Lunch break ({self.lunch_start:%H:%M} - {self.lunch_end:%H:%M} local time)",
            )
        return MarketStatus(True, "Market is open")

    def is_open(self, now: datetime | None = None) -> bool:
        return self.status(now).open

    def market_date(self, now: datetime | None = None) -> date:
        return self.local(now).date()

    def day_start(self, now: datetime | None = None) -> datetime:
        """Local midnight of the current market date, as an aware UTC datetime."""
        local = self.local(now)
        midnight = datetime.combine(local.date(), time(0, 0), tzinfo=self.tz)
        return midnight.astimezone(UTC)
