from __future__ import annotations

from datetime import timedelta

from iwent import crud
from iwent.archive import run_archive_cycle
from iwent.participants import role
from iwent.utils import utcnow


def _event(session, organizer, *, days: int, **extra):
    return crud.create_event(
        session,
        title="Gallery Walk",
        organizer_id=organizer.id,
        date=(utcnow() + timedelta(days=days)).date().isoformat(),
        time="15:00",
        **extra,
    )


def test_archive_cycle_snapshots_past_events(session):
    organizer = crud.create_user(session, name="Olga")
    guest = crud.create_user(session, name="Gus")
    latecomer = crud.create_user(session, name="Lea")
    past = _event(session, organizer, days=-3)
    upcoming = _event(session, organizer, days=3)
    weekly = _event(session, organizer, days=-30, recurring_type="weekly", recurring_days=[1])
    crud.create_event_request(
        session, event_id=past.id, type="join", from_user_id=guest.id, status="accepted"
    )
    crud.create_event_request(
        session, event_id=past.id, type="join", from_user_id=latecomer.id, status="pending"
    )
    session.commit()
    past_id, upcoming_id, weekly_id = past.id, upcoming.id, weekly.id

    stats = run_archive_cycle()
    assert stats["events_checked"] == 3
    assert stats["profiles_created"] == 1
    assert stats["not_past"] == 2

    profile = crud.event_profile(session, past_id)
    assert sorted(profile.participants) == sorted([organizer.id, guest.id])
    assert profile.name == "Gallery Walk"
    assert crud.event_profile(session, upcoming_id) is None
    assert crud.event_profile(session, weekly_id) is None

    snapshot = crud.load_snapshot(session)
    archived = snapshot.find_event(past_id)
    assert role(archived, organizer.id, snapshot) == "organizer"
    assert role(archived, guest.id, snapshot) == "attendee"
    assert role(archived, latecomer.id, snapshot) == "non_member"


def test_archive_cycle_is_idempotent(session):
    organizer = crud.create_user(session, name="Olga")
    _event(session, organizer, days=-1)
    session.commit()

    assert run_archive_cycle()["profiles_created"] == 1
    again = run_archive_cycle()
    assert again["profiles_created"] == 0
    assert again["already_archived"] == 1


def test_archive_cycle_uses_supplied_clock(session):
    organizer = crud.create_user(session, name="Olga")
    event = _event(session, organizer, days=2)
    session.commit()
    event_id = event.id

    assert run_archive_cycle()["profiles_created"] == 0
    assert run_archive_cycle(now=utcnow() + timedelta(days=5))["profiles_created"] == 1
    assert crud.event_profile(session, event_id) is not None


def test_custom_dates_archive_once_all_dates_pass(session):
    organizer = crud.create_user(session, name="Olga")
    today = utcnow().date()
    finished = _event(
        session,
        organizer,
        days=-10,
        recurring_type="custom",
        recurring_custom_dates=[
            (today - timedelta(days=10)).isoformat(),
            (today - timedelta(days=3)).isoformat(),
        ],
    )
    ongoing = _event(
        session,
        organizer,
        days=-10,
        recurring_type="custom",
        recurring_custom_dates=[
            (today - timedelta(days=10)).isoformat(),
            (today + timedelta(days=4)).isoformat(),
        ],
    )
    session.commit()
    finished_id, ongoing_id = finished.id, ongoing.id

    stats = run_archive_cycle()
    assert stats["profiles_created"] == 1
    assert crud.event_profile(session, finished_id).participants == [organizer.id]
    assert crud.event_profile(session, ongoing_id) is None
