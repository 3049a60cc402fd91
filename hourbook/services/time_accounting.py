"""Pure helpers for week bucketing and hour accounting.

Nothing here touches the database; the entry and lifecycle services call
these after every mutation so persisted totals never drift from entries.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, NamedTuple, Optional


_HMM_RE = re.compile(r"^(\d+):([0-5]\d)$")


class WeekBucket(NamedTuple):
    week_start: datetime
    week_end: datetime
    year: int
    week_number: int


def as_day(value: date | datetime | str) -> datetime:
    """Normalize a date-like value to a naive datetime at midnight.

    Mongo has no date-only type, so days are stored as midnight datetimes.
    Strings may be ``YYYY-MM-DD`` or any ISO 8601 datetime.
    """
    if isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        return as_day(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
    raise ValueError(f"Not a date: {value!r}")


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Strip tzinfo after converting to UTC; stored timestamps are naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def week_bucket(value: date | datetime | str) -> WeekBucket:
    """Monday-to-Sunday week containing ``value`` with its ISO year and week."""
    day = as_day(value)
    week_start = day - timedelta(days=day.weekday())
    week_end = week_start + timedelta(days=6)
    iso = week_start.isocalendar()
    return WeekBucket(week_start, week_end, iso[0], iso[1])


def timesheet_id(user_id: Any, week_start: date | datetime | str) -> str:
    """Deterministic timesheet identity for a user and week.

    Any day of the week yields the same id, so a repeated create resolves to
    the existing document instead of a duplicate.
    """
    bucket = week_bucket(week_start)
    return f"timesheet-{user_id}-{bucket.year}-W{bucket.week_number:02d}"


def format_decimal_hours(hours: Any) -> float:
    """Coerce to a float with at most two decimals; junk becomes 0."""
    try:
        value = float(hours)
    except (TypeError, ValueError):
        return 0.0
    if value != value:  # NaN
        return 0.0
    # Round twice to shed float noise like 4.7299999 before the 2dp cut
    return round(round(value, 4), 2)


def hours_to_decimal(hours: Any) -> float:
    """Accept ``H:MM`` strings as well as plain decimal values.

    Raises ``ValueError`` for a clock-style string whose minutes are not
    ``00`` to ``59``.
    """
    if isinstance(hours, str) and ":" in hours:
        match = _HMM_RE.match(hours.strip())
        if not match:
            raise ValueError(f"Invalid hours: {hours!r}")
        return format_decimal_hours(int(match.group(1)) + int(match.group(2)) / 60)
    return format_decimal_hours(hours) if hours is not None else 0.0


def elapsed_hours(start: Optional[datetime], end: datetime) -> float:
    if start is None:
        return 0.0
    seconds = (end - start).total_seconds()
    return max(0.0, round(seconds / 3600, 2))


def compute_totals(entries: Iterable[dict]) -> dict:
    """Aggregate totals stored alongside the entries of a timesheet."""
    total = 0.0
    billable = 0.0
    running = False
    for e in entries:
        hours = float(e.get("hours") or 0)
        total += hours
        if e.get("is_billable"):
            billable += hours
        if e.get("is_running") is True:
            running = True
    total = round(total, 2)
    billable = round(billable, 2)
    return {
        "total_hours": total,
        "billable_hours": billable,
        "non_billable_hours": round(total - billable, 2),
        "has_running_timer": running,
    }


def utilization(actual_hours: float, capacity: float) -> int:
    """Percentage of capacity used, rounded to a whole number."""
    if not capacity:
        return 0
    return round((actual_hours / capacity) * 100)
