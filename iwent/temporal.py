"""Event start instants, recurrence expansion and upcoming/past classification.

Event dates are stored as naive wall-clock strings (``YYYY-MM-DD`` plus
``HH:MM``) and compared against naive UTC ``now`` values, the same convention
used for every other timestamp in the package.

Recurring events follow a deliberately coarse policy:

* ``daily``, ``weekly`` and ``monthly`` events are always upcoming and never
  past. The anchor ``date`` only seeds the next displayed occurrence and no
  end date exists on the descriptor.
* ``custom`` events are upcoming while any listed date is today or later
  (time of day is ignored) and past once every date is before today. An empty
  list is past.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from .config import settings
from .models import RECURRING_TYPES, Event
from .utils import format_short_date, parse_hhmm, parse_ymd, utcnow

EPOCH = datetime(1970, 1, 1)

DAY_NAMES = [
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
]


@dataclass(frozen=True)
class Occurrence:
    date: date
    starts_at: datetime
    is_past: bool


def event_datetime(event: Event) -> datetime:
    """Combine the event's date and ``HH:MM`` time into a naive instant.

    Missing or malformed values collapse to the epoch so the event reads as
    past rather than raising.
    """
    day = parse_ymd(event.date)
    clock = parse_hhmm(event.time)
    if day is None or clock is None:
        return EPOCH
    return datetime.combine(day, clock)


def recurrence_kind(event: Event) -> str | None:
    """Return the recurrence kind, or ``None`` for one-off events."""
    if not event.is_recurring:
        return None
    kind = (event.recurring_type or "").strip().lower()
    return kind if kind in RECURRING_TYPES else None


def _custom_dates(event: Event) -> list[date]:
    parsed = (parse_ymd(raw) for raw in event.recurring_custom_dates or [])
    return sorted(day for day in parsed if day is not None)


def _weekdays(event: Event) -> list[int]:
    """Valid weekday numbers from ``recurring_days``; malformed entries are skipped."""
    found: list[int] = []
    for raw in event.recurring_days or []:
        try:
            day = int(raw)
        except (TypeError, ValueError):
            continue
        if 0 <= day <= 6:
            found.append(day)
    return found


def is_upcoming(event: Event, *, now: datetime | None = None) -> bool:
    now = now or utcnow()
    kind = recurrence_kind(event)
    if kind in ("daily", "weekly", "monthly"):
        return True
    if kind == "custom":
        today = now.date()
        return any(day >= today for day in _custom_dates(event))
    return event_datetime(event) > now


def is_past(event: Event, *, now: datetime | None = None) -> bool:
    now = now or utcnow()
    kind = recurrence_kind(event)
    if kind in ("daily", "weekly", "monthly"):
        return False
    if kind == "custom":
        today = now.date()
        return not any(day >= today for day in _custom_dates(event))
    return event_datetime(event) <= now


def _add_months(anchor: date, months: int, day_of_month: int) -> date:
    month_index = anchor.month - 1 + months
    year = anchor.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(max(day_of_month, 1), last_day))


def _candidate_dates(event: Event, kind: str, today: date) -> list[date]:
    anchor = parse_ymd(event.date)
    if kind == "custom":
        return _custom_dates(event)

    if kind == "daily":
        start = anchor or today
        return [start + timedelta(days=i) for i in range(settings.daily_horizon_days)]

    if kind == "weekly":
        weekdays = _weekdays(event)
        if not weekdays or anchor is None:
            return []
        # Weeks start on Sunday (weekday 0).
        week_start = anchor - timedelta(days=(anchor.weekday() + 1) % 7)
        found: list[date] = []
        for week in range(settings.weekly_horizon_weeks):
            for weekday in weekdays:
                target = week_start + timedelta(days=weekday + week * 7)
                if target >= anchor and target not in found:
                    found.append(target)
        return found

    if kind == "monthly":
        day_of_month = event.recurring_day_of_month
        if not day_of_month or anchor is None:
            return []
        found = []
        for month in range(settings.monthly_horizon_months):
            target = _add_months(anchor, month, day_of_month)
            if target >= anchor:
                found.append(target)
        return found

    return []


def recurring_dates(event: Event, *, now: datetime | None = None) -> list[Occurrence]:
    """Expand a recurring event into its known occurrences, oldest first."""
    kind = recurrence_kind(event)
    clock = parse_hhmm(event.time)
    if kind is None or clock is None:
        return []
    now = now or utcnow()
    occurrences = []
    for day in _candidate_dates(event, kind, now.date()):
        starts_at = datetime.combine(day, clock)
        occurrences.append(Occurrence(date=day, starts_at=starts_at, is_past=starts_at < now))
    return sorted(occurrences, key=lambda item: item.starts_at)


def next_occurrence(event: Event, *, now: datetime | None = None) -> Occurrence | None:
    for occurrence in recurring_dates(event, now=now):
        if not occurrence.is_past:
            return occurrence
    return None


def remaining_occurrences(event: Event, *, now: datetime | None = None) -> int:
    """Number of future occurrences after the next one."""
    future = [item for item in recurring_dates(event, now=now) if not item.is_past]
    return max(len(future) - 1, 0)


def display_datetime(event: Event, *, now: datetime | None = None) -> datetime:
    """Instant to show for an event: the next occurrence when it recurs."""
    occurrence = next_occurrence(event, now=now)
    if occurrence is not None:
        return occurrence.starts_at
    return event_datetime(event)


def _ordinal(value: int) -> str:
    if 10 <= value % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(value % 10, "th")
    return f"{value}{suffix}"


def format_recurrence(event: Event, *, now: datetime | None = None) -> str:
    """Return a short English label describing when the event happens."""
    kind = recurrence_kind(event)
    if kind is None:
        day = parse_ymd(event.date)
        return format_short_date(day) if day else ""

    if kind == "daily":
        return "daily"

    if kind == "weekly":
        weekdays = _weekdays(event)
        if not weekdays:
            return "every weekday"
        if len(weekdays) == 1:
            return f"every {DAY_NAMES[weekdays[0]]}"
        return f"{DAY_NAMES[weekdays[0]]} +{len(weekdays) - 1} days"

    if kind == "monthly":
        if event.recurring_day_of_month:
            return f"every {_ordinal(event.recurring_day_of_month)} of month"
        return "every month"

    dates = _custom_dates(event)
    if not dates:
        return ""
    today = (now or utcnow()).date()
    future = [day for day in dates if day >= today]
    first = future[0] if future else dates[0]
    remaining = len(future) - 1 if len(future) > 1 else 0
    if remaining:
        return f"{format_short_date(first)} +{remaining} dates"
    return format_short_date(first)
