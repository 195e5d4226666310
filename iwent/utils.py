"""Utility helpers for iwent."""

from __future__ import annotations

from datetime import UTC, date, datetime, time
import re

_hhmm_pattern = re.compile(r"^\s*(\d{1,2}):(\d{1,2})")
_month_abbr = [
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
]


def utcnow() -> datetime:
    """Return a naive UTC datetime."""

    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Convert aware datetimes to naive UTC; naive values pass through."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def parse_ymd(value: str | None) -> date | None:
    """Parse a ``YYYY-MM-DD`` string (a trailing time part is ignored)."""
    if not value:
        return None
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def parse_hhmm(value: str | None) -> time | None:
    """Parse an ``HH:MM`` string; seconds and suffixes are ignored."""
    if not value:
        return None
    match = _hhmm_pattern.match(str(value))
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return time(hours, minutes)


def format_short_date(value: date) -> str:
    """Return ``DD.MM.YY``."""
    return f"{value.day:02d}.{value.month:02d}.{value.year % 100:02d}"


def format_time_ago(value: datetime | None, *, now: datetime | None = None) -> str:
    """Return a compact relative label such as '26min', '4h', '3w' or '16 Nov'."""
    if not value:
        return ""
    now = now or utcnow()
    value = to_naive_utc(value)
    elapsed = max(int((now - value).total_seconds()), 0)
    minutes = elapsed // 60
    hours = minutes // 60
    days = hours // 24

    if minutes < 60:
        return f"{minutes}min"
    if hours < 24:
        return f"{hours}h"
    if days < 7:
        return f"{days}d"
    if days // 7 < 4:
        return f"{days // 7}w"
    if days // 365 < 1:
        return f"{value.day} {_month_abbr[value.month - 1]}"
    return format_short_date(value.date())
