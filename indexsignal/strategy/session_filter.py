"""Session filter — pure functions over market-local wall-clock time."""

from datetime import date, datetime, time
from typing import Iterable
from zoneinfo import ZoneInfo

MARKET_TIMEZONE = "Asia/Kolkata"
MARKET_OPEN = time(9, 15)
MARKET_CLOSE = time(15, 30)


def parse_hhmm(value: str) -> time:
    """Parse ``"HH:MM"`` into a ``time``.  Raises ``ValueError`` if malformed."""
    hour, _, minute = str(value).strip().partition(":")
    return time(int(hour), int(minute or 0))


def to_market_time(moment: datetime, tz_name: str = MARKET_TIMEZONE) -> datetime:
    """Convert *moment* to the market timezone.  Naive datetimes are taken as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=ZoneInfo("UTC"))
    return moment.astimezone(ZoneInfo(tz_name))


def is_trading_day(day: date, holidays: Iterable[date] = ()) -> bool:
    """Weekdays that are not listed holidays."""
    return day.weekday() < 5 and day not in set(holidays)


def is_in_session(
    local_time: time,
    session_start: time = MARKET_OPEN,
    session_end: time = MARKET_CLOSE,
) -> bool:
    """Return True if *local_time* is inside the cash session.

    Default window: 09:15–15:30 (inclusive start, exclusive end).
    """
    return session_start <= local_time < session_end


def in_time_window(local_time: time, start: time, end: time) -> bool:
    """Inclusive ``start <= local_time <= end`` on the same day."""
    return start <= local_time <= end
