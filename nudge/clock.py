"""Calendar-date helpers for Nudge.

Instants are epoch timestamps in milliseconds; calendar dates are ISO
``YYYY-MM-DD`` strings. ISO dates sort lexicographically in calendar order,
so everything above this module compares dates as plain strings.

Nothing here reads the wall clock. Callers pass ``now`` explicitly.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta, tzinfo

MS_PER_DAY = 24 * 60 * 60 * 1000


def to_local_datetime(ts: int, tz: tzinfo | None = None) -> datetime:
    """Convert an epoch-ms timestamp to a datetime in *tz* (host local if None)."""
    if tz is None:
        return datetime.fromtimestamp(ts / 1000)
    return datetime.fromtimestamp(ts / 1000, tz)


def timestamp_to_local_date(ts: int, tz: tzinfo | None = None) -> str:
    """Local calendar date of *ts*, with no day-start offset."""
    return to_local_datetime(ts, tz).date().isoformat()


def today_iso(now: int, day_start_hour: int = 0, tz: tzinfo | None = None) -> str:
    """Logical "today" for *now*.

    A day starts at ``day_start_hour`` local time, so at 01:30 with a
    day start of 3 the logical today is still the previous calendar date.
    """
    local = to_local_datetime(now, tz)
    if local.hour < day_start_hour:
        local -= timedelta(days=1)
    return local.date().isoformat()


def parse_date(s: str) -> date:
    return date.fromisoformat(s)


def is_valid_date(s: object) -> bool:
    if not isinstance(s, str) or len(s) != 10:
        return False
    try:
        date.fromisoformat(s)
    except ValueError:
        return False
    return True


def add_days(s: str, n: int) -> str:
    return date.fromordinal(parse_date(s).toordinal() + n).isoformat()


def days_between(start: str, end: str) -> int:
    """Whole calendar days from *start* to *end* (negative if end is earlier)."""
    return parse_date(end).toordinal() - parse_date(start).toordinal()


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def js_weekday(d: date) -> int:
    """Weekday with 0 = Sunday .. 6 = Saturday."""
    return (d.weekday() + 1) % 7


def days_since(ts: int, now: int) -> float:
    return (now - ts) / MS_PER_DAY


def date_range(start: str, end: str) -> list[str]:
    """Inclusive list of ISO dates from *start* to *end*."""
    first = parse_date(start).toordinal()
    last = parse_date(end).toordinal()
    return [date.fromordinal(o).isoformat() for o in range(first, last + 1)]
