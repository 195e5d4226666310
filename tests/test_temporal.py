from __future__ import annotations

from datetime import date, datetime

import pytest

from iwent.models import Event
from iwent.temporal import (
    EPOCH,
    display_datetime,
    event_datetime,
    format_recurrence,
    is_past,
    is_upcoming,
    next_occurrence,
    recurrence_kind,
    recurring_dates,
    remaining_occurrences,
)

NOW = datetime(2025, 1, 15, 12, 0)


def _event(**overrides) -> Event:
    values = {
        "id": "event-1",
        "title": "Picnic",
        "organizer_id": "organizer",
        "date": "2025-01-20",
        "time": "18:00",
    }
    values.update(overrides)
    return Event(**values)


def _recurring(kind: str, **overrides) -> Event:
    return _event(is_recurring=True, recurring_type=kind, **overrides)


def test_event_datetime_combines_date_and_time():
    assert event_datetime(_event()) == datetime(2025, 1, 20, 18, 0)


@pytest.mark.parametrize(
    "overrides",
    [{"date": None}, {"time": None}, {"date": "soon"}, {"time": "25:99"}],
)
def test_event_datetime_falls_back_to_epoch(overrides):
    event = _event(**overrides)
    assert event_datetime(event) == EPOCH
    assert is_past(event, now=NOW)


def test_one_off_event_boundaries():
    assert is_upcoming(_event(date="2025-01-15", time="12:01"), now=NOW)
    starting_now = _event(date="2025-01-15", time="12:00")
    assert not is_upcoming(starting_now, now=NOW)
    assert is_past(starting_now, now=NOW)


@pytest.mark.parametrize("kind", ["daily", "weekly", "monthly"])
def test_open_ended_recurrences_never_become_past(kind):
    event = _recurring(kind, date="2019-06-01", recurring_days=[1], recurring_day_of_month=3)
    assert is_upcoming(event, now=NOW)
    assert not is_past(event, now=NOW)


def test_custom_recurrence_compares_dates_only():
    earlier_today = _recurring("custom", time="08:00", recurring_custom_dates=["2025-01-15"])
    assert is_upcoming(earlier_today, now=NOW)
    assert not is_past(earlier_today, now=NOW)

    finished = _recurring("custom", recurring_custom_dates=["2020-01-01"])
    assert is_past(finished, now=NOW)
    assert not is_upcoming(finished, now=NOW)


def test_custom_recurrence_without_dates_is_only_past():
    event = _recurring("custom", recurring_custom_dates=[])
    assert is_past(event, now=NOW)
    assert not is_upcoming(event, now=NOW)


def test_upcoming_and_past_are_exclusive():
    events = [
        _event(),
        _event(date="2024-12-01"),
        _event(date=None),
        _recurring("daily"),
        _recurring("weekly", recurring_days=[0]),
        _recurring("monthly", recurring_day_of_month=1),
        _recurring("custom", recurring_custom_dates=["2025-01-16", "2024-01-01"]),
        _recurring("custom", recurring_custom_dates=["2024-01-01"]),
    ]
    for event in events:
        assert is_upcoming(event, now=NOW) != is_past(event, now=NOW)


def test_unknown_recurrence_kind_uses_one_off_rules():
    event = _recurring("yearly", date="2025-01-10")
    assert recurrence_kind(event) is None
    assert is_past(event, now=NOW)
    assert recurring_dates(event, now=NOW) == []


def test_weekly_dates_start_on_anchor_week():
    event = _recurring("weekly", date="2025-01-15", recurring_days=[1, 3])
    dates = [occurrence.date for occurrence in recurring_dates(event, now=NOW)]
    assert dates[:3] == [date(2025, 1, 15), date(2025, 1, 20), date(2025, 1, 22)]
    assert len(dates) == 15
    assert next_occurrence(event, now=NOW).starts_at == datetime(2025, 1, 15, 18, 0)


def test_weekly_skips_malformed_days():
    event = _recurring("weekly", date="2025-01-15", recurring_days=["mon", None, "3", 9])
    assert display_datetime(event, now=NOW) == datetime(2025, 1, 15, 18, 0)
    assert format_recurrence(event, now=NOW) == "every Wednesday"

    unreadable = _recurring("weekly", date="2025-01-15", recurring_days=["mon"])
    assert recurring_dates(unreadable, now=NOW) == []
    assert display_datetime(unreadable, now=NOW) == datetime(2025, 1, 15, 18, 0)
    assert format_recurrence(unreadable, now=NOW) == "every weekday"


def test_monthly_dates_clamp_to_month_end():
    event = _recurring("monthly", date="2025-01-31", recurring_day_of_month=31)
    dates = [occurrence.date for occurrence in recurring_dates(event, now=NOW)]
    assert dates[:4] == [
        date(2025, 1, 31),
        date(2025, 2, 28),
        date(2025, 3, 31),
        date(2025, 4, 30),
    ]
    assert len(dates) == 12


def test_daily_next_occurrence_and_remaining():
    event = _recurring("daily", date="2025-01-10", time="09:00")
    occurrences = recurring_dates(event, now=NOW)
    assert len(occurrences) == 30
    assert occurrences[0].is_past
    assert next_occurrence(event, now=NOW).starts_at == datetime(2025, 1, 16, 9, 0)
    assert remaining_occurrences(event, now=NOW) == 23
    assert display_datetime(event, now=NOW) == datetime(2025, 1, 16, 9, 0)


def test_display_datetime_for_one_off_event():
    assert display_datetime(_event(), now=NOW) == datetime(2025, 1, 20, 18, 0)


def test_custom_remaining_occurrences():
    event = _recurring(
        "custom",
        time="10:00",
        recurring_custom_dates=["2025-02-01", "2025-01-20", "2025-01-25"],
    )
    assert next_occurrence(event, now=NOW).date == date(2025, 1, 20)
    assert remaining_occurrences(event, now=NOW) == 2


@pytest.mark.parametrize(
    "event, expected",
    [
        (_event(date="2025-01-10"), "10.01.25"),
        (_recurring("daily"), "daily"),
        (_recurring("weekly", recurring_days=[1]), "every Monday"),
        (_recurring("weekly", recurring_days=[1, 3]), "Monday +1 days"),
        (_recurring("weekly", recurring_days=[]), "every weekday"),
        (_recurring("monthly", recurring_day_of_month=21), "every 21st of month"),
        (_recurring("monthly", recurring_day_of_month=11), "every 11th of month"),
        (_recurring("monthly"), "every month"),
        (
            _recurring(
                "custom",
                recurring_custom_dates=["2025-01-20", "2025-01-25", "2025-02-01"],
            ),
            "20.01.25 +2 dates",
        ),
        (_recurring("custom", recurring_custom_dates=["2024-03-01"]), "01.03.24"),
    ],
)
def test_format_recurrence(event, expected):
    assert format_recurrence(event, now=NOW) == expected
