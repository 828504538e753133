"""
Date helpers in the user's timezone: 'today'/'now', relative date phrases ('tomorrow', 'in 3 days'),
parsing stored due dates, and the short display formats used in assistant replies.
"""
from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# Already ISO date
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
_MONTH_ABBR = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def get_tz(tz_name: str | None) -> tzinfo:
    """ZoneInfo for tz_name; UTC when empty or unknown."""
    name = (tz_name or "").strip() or "UTC"
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def now_in_tz(tz_name: str | None = "UTC") -> datetime:
    return datetime.now(get_tz(tz_name))


def today_in_tz(tz_name: str | None = "UTC") -> date:
    return now_in_tz(tz_name).date()


def parse_datetime(value: Any, tz: tzinfo | None = None) -> datetime | None:
    """
    Parse a stored due date into a datetime.
    Accepts datetime, date, "YYYY-MM-DD", "YYYY-MM-DDTHH:MM[:SS[.ffffff]]" with optional offset or "Z".
    Date-only values become midnight. Naive values are taken to be in tz; aware values are converted to tz.
    Returns None for empty or unparseable input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, datetime.min.time())
    else:
        raw = str(value).strip()
        if not raw:
            return None
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(raw)
        except ValueError:
            return None
    if tz is None:
        return dt
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def due_day(value: Any, tz: tzinfo | None = None) -> date | None:
    """Calendar day of a due date in tz, or None when unset/unparseable."""
    dt = parse_datetime(value, tz)
    return dt.date() if dt else None


def resolve_relative_date(value: str | None, tz_name: str = "UTC", today: date | None = None) -> str | None:
    """
    Convert a date string to YYYY-MM-DD. Respects user timezone for relative phrases.
    - If value is already YYYY-MM-DD, return it.
    - If value is 'today', 'tomorrow', 'yesterday', 'next week', 'in N days' or a weekday name, return the resolved date.
    - Otherwise return None (caller can keep original or reject).
    """
    if not value or not str(value).strip():
        return None
    raw = str(value).strip().lower()
    raw = re.sub(r"^due\s+", "", raw).strip()
    if _ISO_DATE.match(raw):
        return raw
    if today is None:
        today = today_in_tz(tz_name)
    if raw == "today":
        return today.isoformat()
    if raw == "tomorrow":
        return (today + timedelta(days=1)).isoformat()
    if raw == "yesterday":
        return (today - timedelta(days=1)).isoformat()
    if raw == "next week" or raw == "in a week":
        return (today + timedelta(days=7)).isoformat()
    # "in N days"
    m = re.match(r"^in\s+(\d+)\s+days?$", raw)
    if m:
        return (today + timedelta(days=int(m.group(1)))).isoformat()
    # Day names: monday, tuesday, ... (next occurrence of that weekday)
    weekdays = [w.lower() for w in WEEKDAY_NAMES]
    if raw in weekdays:
        days_ahead = (weekdays.index(raw) - today.weekday()) % 7
        if days_ahead == 0:
            days_ahead = 7  # "next" Monday if today is Monday
        return (today + timedelta(days=days_ahead)).isoformat()
    return None


def normalize_due_date(value: Any, tz_name: str = "UTC", today: date | None = None) -> str | None:
    """
    Normalize a due date for storage: None/empty -> None, relative phrase or YYYY-MM-DD -> YYYY-MM-DD,
    datetime (or ISO datetime string) -> ISO datetime. Raises ValueError if it cannot be understood.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    raw = str(value).strip()
    if not raw:
        return None
    resolved = resolve_relative_date(raw, tz_name, today)
    if resolved is not None:
        return resolved
    dt = parse_datetime(raw)
    if dt is None:
        raise ValueError(f"Invalid due date: {value!r}")
    return dt.isoformat()


def format_hour_label(hour: int) -> str:
    """9 -> '9AM', 15 -> '3PM'. Hours up to and including 12 are labelled AM (12 -> '12AM')."""
    return f"{hour - 12}PM" if hour > 12 else f"{hour}AM"


def format_short_datetime(dt: datetime) -> str:
    """Format a datetime for chat replies: 'Wed, Oct 21, 9:00 AM'."""
    am_pm = "AM" if dt.hour < 12 else "PM"
    h12 = dt.hour % 12 or 12
    return f"{WEEKDAY_NAMES[dt.weekday()][:3]}, {_MONTH_ABBR[dt.month - 1]} {dt.day}, {h12}:{dt.minute:02d} {am_pm}"
