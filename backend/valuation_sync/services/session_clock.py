"""Exchange session clock and YTD baseline calendar.

The clock only decides polling cadence. Whether the market is open *for
display* comes from the price endpoint's own ``marketOpen`` flag.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from valuation_sync.config import AppSettings

# MM-DD of fixed-date US market holidays used for the baseline calendar only
FIXED_HOLIDAYS = {"01-01", "07-04", "12-25"}
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


class MarketSessionClock:
    """Regular-session hours for one exchange, Monday to Friday, no holidays."""

    def __init__(
        self,
        timezone_name: str = "America/New_York",
        open_time: time = time(9, 30),
        close_time: time = time(16, 0),
    ) -> None:
        if open_time >= close_time:
            raise ValueError("Session open must be before session close")
        self.tz = ZoneInfo(timezone_name)
        self.open_time = open_time
        self.close_time = close_time

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "MarketSessionClock":
        return cls(settings.exchange_timezone, settings.session_open, settings.session_close)

    def _local(self, now: datetime) -> datetime:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(self.tz)

    def is_open(self, now: datetime) -> bool:
        local = self._local(now)
        if local.weekday() >= 5:
            return False
        return self.open_time <= local.time() < self.close_time

    def next_transition(self, now: datetime) -> datetime:
        """Return the next instant at which ``is_open`` changes value."""

        local = self._local(now)
        if self.is_open(local):
            return datetime.combine(local.date(), self.close_time, tzinfo=self.tz)

        day = local.date()
        if local.weekday() < 5 and local.time() < self.open_time:
            return datetime.combine(day, self.open_time, tzinfo=self.tz)
        day += timedelta(days=1)
        while day.weekday() >= 5:
            day += timedelta(days=1)
        return datetime.combine(day, self.open_time, tzinfo=self.tz)

    def poll_interval(
        self,
        now: datetime,
        open_seconds: float = 30.0,
        closed_seconds: float = 300.0,
    ) -> float:
        return open_seconds if self.is_open(now) else closed_seconds


def is_market_holiday(day: date) -> bool:
    return day.strftime("%m-%d") in FIXED_HOLIDAYS


def last_trading_day_of_year(year: int) -> date:
    day = date(year, 12, 31)
    while day.weekday() >= 5 or is_market_holiday(day):
        day -= timedelta(days=1)
    return day


def ytd_baseline_date(today: date | None = None) -> date:
    """Last trading day of the previous year; YTD returns are measured from it."""

    today = today or date.today()
    return last_trading_day_of_year(today.year - 1)


def baseline_label(day: date) -> str:
    return f"vs {_MONTHS[day.month - 1]} {day.day}, {day.year}"


__all__ = [
    "FIXED_HOLIDAYS",
    "MarketSessionClock",
    "baseline_label",
    "is_market_holiday",
    "last_trading_day_of_year",
    "ytd_baseline_date",
]
