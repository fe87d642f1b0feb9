"""Recurrence pattern matching for recurring tasks.

A rule matches a candidate date when the date lies inside the rule's
``[start_date, end_date]`` window, falls on an interval boundary counted in
the rule's own unit (days, weeks, calendar months, years) and satisfies the
frequency-specific selector. Rules that fail validation never match.
"""

from __future__ import annotations

import logging
import re
from datetime import date

from nudge.clock import add_days, days_in_month, is_valid_date, js_weekday, parse_date
from nudge.models import FREQUENCIES, RecurrenceRule

logger = logging.getLogger(__name__)

DAY_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]
WEEK_NAMES = ["First", "Second", "Third", "Fourth", "Last"]
LAST_WEEK = 5

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


# ── Validation ────────────────────────────────────────────────


def validate_rule(rule: RecurrenceRule) -> list[str]:
    """Return a list of problems with *rule* (empty if well formed)."""
    errors = []
    if rule.frequency not in FREQUENCIES:
        errors.append(f"Invalid frequency: {rule.frequency}")
    if not isinstance(rule.interval, int) or rule.interval < 1:
        errors.append("interval must be an integer >= 1")
    if rule.days_of_week is not None and any(not 0 <= d <= 6 for d in rule.days_of_week):
        errors.append("daysOfWeek values must be 0-6")
    if rule.day_of_month is not None and not 1 <= rule.day_of_month <= 31:
        errors.append("dayOfMonth must be 1-31")
    if rule.week_of_month is not None and not 1 <= rule.week_of_month <= LAST_WEEK:
        errors.append("weekOfMonth must be 1-5")
    if rule.frequency == "monthly" and rule.day_of_month is None:
        if rule.week_of_month is None:
            errors.append("monthly rules need dayOfMonth or weekOfMonth")
        elif not rule.days_of_week:
            errors.append("weekOfMonth requires a day in daysOfWeek")
    if rule.time is not None and not _TIME_RE.match(rule.time):
        errors.append(f"Invalid time: {rule.time}")
    for name, value in (("startDate", rule.start_date), ("endDate", rule.end_date),
                        ("pausedUntil", rule.paused_until)):
        if value is not None and not is_valid_date(value):
            errors.append(f"Invalid {name}: {value}")
    if (
        is_valid_date(rule.start_date)
        and is_valid_date(rule.end_date)
        and rule.end_date < rule.start_date
    ):
        errors.append("endDate is before startDate")
    return errors


# ── Matching ──────────────────────────────────────────────────


def _units_since_start(d: date, start: date, frequency: str) -> int:
    if frequency == "daily":
        return (d - start).days
    if frequency == "weekly":
        return (d - start).days // 7
    if frequency == "monthly":
        return (d.year - start.year) * 12 + (d.month - start.month)
    return d.year - start.year


def _clamped_day(year: int, month: int, day: int) -> int:
    return min(day, days_in_month(year, month))


def is_nth_weekday(d: date, weekday: int, week_of_month: int) -> bool:
    """True if *d* is the Nth *weekday* (0 = Sunday) of its month; N=5 is the last."""
    if js_weekday(d) != weekday:
        return False
    if week_of_month == LAST_WEEK:
        return d.day + 7 > days_in_month(d.year, d.month)
    return (d.day - 1) // 7 + 1 == week_of_month


def date_matches_pattern(date_str: str, rule: RecurrenceRule | None, start_date: str) -> bool:
    """Decide whether *date_str* is an occurrence of *rule* anchored at *start_date*."""
    if rule is None:
        return False
    try:
        d = parse_date(date_str)
        start = parse_date(start_date)
    except (TypeError, ValueError):
        logger.debug("Unparseable date %r / start %r", date_str, start_date)
        return False
    if d < start:
        return False
    if rule.end_date and date_str > rule.end_date:
        return False
    if validate_rule(rule):
        return False

    if _units_since_start(d, start, rule.frequency) % rule.interval != 0:
        return False

    if rule.frequency == "daily":
        return True

    if rule.frequency == "weekly":
        if rule.days_of_week is None:
            return js_weekday(d) == js_weekday(start)
        if not rule.days_of_week:
            return True
        return js_weekday(d) in rule.days_of_week

    if rule.frequency == "monthly":
        if rule.day_of_month is not None:
            return d.day == _clamped_day(d.year, d.month, rule.day_of_month)
        return is_nth_weekday(d, rule.days_of_week[0], rule.week_of_month)

    # yearly
    return d.month == start.month and d.day == _clamped_day(d.year, d.month, start.day)


def _scan_limit(rule: RecurrenceRule) -> int:
    per_interval = {"daily": 1, "weekly": 7, "monthly": 31, "yearly": 366}
    return per_interval.get(rule.frequency, 1) * max(1, rule.interval) + 400


def next_occurrence(
    rule: RecurrenceRule, from_date: str, start_date: str, max_days: int | None = None
) -> str | None:
    """First matching date strictly after *from_date*, or None within the scan bound."""
    if validate_rule(rule):
        return None
    limit = max_days if max_days is not None else _scan_limit(rule)
    day = from_date
    if day < start_date:
        day = add_days(start_date, -1)
    for _ in range(limit):
        day = add_days(day, 1)
        if rule.end_date and day > rule.end_date:
            return None
        if date_matches_pattern(day, rule, start_date):
            return day
    return None


def previous_occurrence(
    rule: RecurrenceRule, from_date: str, start_date: str, max_days: int | None = None
) -> str | None:
    """Latest matching date strictly before *from_date*, or None."""
    if validate_rule(rule):
        return None
    limit = max_days if max_days is not None else _scan_limit(rule)
    day = from_date
    for _ in range(limit):
        day = add_days(day, -1)
        if day < start_date:
            return None
        if date_matches_pattern(day, rule, start_date):
            return day
    return None


# ── Description ───────────────────────────────────────────────


def _format_time(hhmm: str) -> str:
    """'20:45' -> '8:45p', '09:00' -> '9a'."""
    h, m = (int(x) for x in hhmm.split(":"))
    suffix = "p" if h >= 12 else "a"
    hour12 = 12 if h % 12 == 0 else h % 12
    return f"{hour12}{suffix}" if m == 0 else f"{hour12}:{m:02d}{suffix}"


def _ordinal(n: int) -> str:
    if 11 <= n % 100 <= 13:
        return f"{n}th"
    suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def describe_rule(rule: RecurrenceRule) -> str:
    """Human-readable summary, e.g. "Every 2 weeks on Mon, Wed at 9a"."""
    at = f" at {_format_time(rule.time)}" if rule.time and _TIME_RE.match(rule.time) else ""
    n = rule.interval

    if rule.frequency == "daily":
        text = "Daily" if n == 1 else f"Every {n} days"
    elif rule.frequency == "weekly":
        days = sorted(rule.days_of_week or [])
        names = ", ".join(DAY_NAMES[d] for d in days if 0 <= d <= 6)
        if n == 1 and (len(days) == 7 or rule.days_of_week == []):
            text = "Daily"
        elif n == 1 and days == [1, 2, 3, 4, 5]:
            text = "Weekdays"
        elif not names:
            text = "Weekly" if n == 1 else f"Every {n} weeks"
        else:
            text = f"Weekly on {names}" if n == 1 else f"Every {n} weeks on {names}"
    elif rule.frequency == "monthly":
        if rule.day_of_month is not None:
            day = _ordinal(rule.day_of_month)
            text = f"Monthly on the {day}" if n == 1 else f"Every {n} months on the {day}"
        elif rule.week_of_month and rule.days_of_week:
            week = WEEK_NAMES[min(rule.week_of_month, LAST_WEEK) - 1]
            day = DAY_NAMES[rule.days_of_week[0] % 7]
            text = f"{week} {day} of each month" if n == 1 else f"{week} {day} every {n} months"
        else:
            text = "Monthly"
    elif rule.frequency == "yearly":
        text = "Yearly" if n == 1 else f"Every {n} years"
    else:
        return "Custom pattern"
    return text + at
