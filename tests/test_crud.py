from __future__ import annotations

from datetime import timedelta

import pytest

from iwent import crud
from iwent.crud import (
    EventFullError,
    InvalidRequest,
    NotificationNotFound,
    NotRequestAddressee,
    RequestAlreadyResolved,
    RequestNotFound,
)
from iwent.utils import utcnow


def _upcoming_date(days: int = 5) -> str:
    return (utcnow() + timedelta(days=days)).date().isoformat()


def _users(session, *names, account_type="personal"):
    return [crud.create_user(session, name=name, account_type=account_type) for name in names]


def _make_event(session, organizer, *, max_participants=None, days=5):
    event = crud.create_event(
        session,
        title="Board Games",
        organizer_id=organizer.id,
        date=_upcoming_date(days),
        time="18:30",
        max_participants=max_participants,
    )
    session.commit()
    return event


def test_create_user_rejects_unknown_account_type(session):
    with pytest.raises(ValueError):
        crud.create_user(session, name="Nope", account_type="enterprise")


def test_create_event_validates_recurrence(session):
    (organizer,) = _users(session, "Olga")
    with pytest.raises(ValueError):
        crud.create_event(
            session,
            title="Yearly",
            organizer_id=organizer.id,
            date="2025-01-01",
            time="10:00",
            recurring_type="yearly",
        )
    weekly = crud.create_event(
        session,
        title="Run Club",
        organizer_id=organizer.id,
        date="2025-01-01",
        time="07:00",
        recurring_type="weekly",
        recurring_days=[2],
    )
    assert weekly.is_recurring is True


def test_send_friend_request_rules(session):
    alice, bob = _users(session, "Alice", "Bob")
    with pytest.raises(InvalidRequest):
        crud.send_friend_request(session, from_user_id=alice.id, to_user_id=alice.id)

    request = crud.send_friend_request(session, from_user_id=alice.id, to_user_id=bob.id)
    assert request.status == "pending"
    with pytest.raises(InvalidRequest):
        crud.send_friend_request(session, from_user_id=alice.id, to_user_id=bob.id)
    with pytest.raises(InvalidRequest, match="accept it instead"):
        crud.send_friend_request(session, from_user_id=bob.id, to_user_id=alice.id)

    crud.respond_to_friend_request(session, request.id, True, user_id=bob.id)
    again = crud.send_friend_request(session, from_user_id=bob.id, to_user_id=alice.id)
    assert again.id == request.id
    assert [user.id for user in crud.friends_of(session, alice.id)] == [bob.id]


def test_rejected_friend_request_is_reopened(session):
    alice, bob = _users(session, "Alice", "Bob")
    request = crud.send_friend_request(session, from_user_id=alice.id, to_user_id=bob.id)
    crud.respond_to_friend_request(session, request.id, False, user_id=bob.id)
    reopened = crud.send_friend_request(session, from_user_id=alice.id, to_user_id=bob.id)
    assert reopened.id == request.id
    assert reopened.status == "pending"


def test_respond_to_friend_request_errors(session):
    alice, bob, carol = _users(session, "Alice", "Bob", "Carol")
    request = crud.send_friend_request(session, from_user_id=alice.id, to_user_id=bob.id)
    with pytest.raises(NotRequestAddressee):
        crud.respond_to_friend_request(session, request.id, True, user_id=carol.id)
    crud.respond_to_friend_request(session, request.id, True, user_id=bob.id)
    with pytest.raises(RequestAlreadyResolved):
        crud.respond_to_friend_request(session, request.id, True, user_id=bob.id)
    with pytest.raises(RequestNotFound):
        crud.respond_to_friend_request(session, "missing", True, user_id=bob.id)


def test_send_join_request_for_personal_organizer(session):
    organizer, guest = _users(session, "Olga", "Gus")
    event = _make_event(session, organizer)
    with pytest.raises(InvalidRequest):
        crud.send_join_request(session, event_id=event.id, user_id=organizer.id)
    with pytest.raises(InvalidRequest):
        crud.send_join_request(session, event_id="missing", user_id=guest.id)

    first = crud.send_join_request(session, event_id=event.id, user_id=guest.id)
    second = crud.send_join_request(session, event_id=event.id, user_id=guest.id)
    assert first.id == second.id
    assert first.status == "pending"
    assert first.type == "join"
    assert first.to_user_id == organizer.id


def test_business_organizer_auto_accepts_joins(session):
    (business,) = _users(session, "Bakery", account_type="business")
    first, second = _users(session, "Gus", "Hana")
    event = _make_event(session, business, max_participants=1)

    request = crud.send_join_request(session, event_id=event.id, user_id=first.id)
    assert request.status == "accepted"
    notifications = crud.list_notifications(session, business.id)
    assert [n.type for n in notifications] == ["EVENT_PARTICIPANT_JOINED"]
    assert notifications[0].payload == {
        "eventId": event.id,
        "eventTitle": event.title,
        "actorId": first.id,
        "actorName": "Gus",
    }

    with pytest.raises(EventFullError):
        crud.send_join_request(session, event_id=event.id, user_id=second.id)


def test_respond_to_join_request(session):
    organizer, guest, other = _users(session, "Olga", "Gus", "Hana")
    event = _make_event(session, organizer, max_participants=1)
    request = crud.send_join_request(session, event_id=event.id, user_id=guest.id)
    waiting = crud.send_join_request(session, event_id=event.id, user_id=other.id)

    with pytest.raises(NotRequestAddressee):
        crud.respond_to_event_request(session, request.id, True, user_id=guest.id)
    accepted = crud.respond_to_event_request(session, request.id, True, user_id=organizer.id)
    assert accepted.status == "accepted"
    with pytest.raises(RequestAlreadyResolved):
        crud.respond_to_event_request(session, request.id, True, user_id=organizer.id)
    with pytest.raises(EventFullError):
        crud.respond_to_event_request(session, waiting.id, True, user_id=organizer.id)
    declined = crud.respond_to_event_request(session, waiting.id, False, user_id=organizer.id)
    assert declined.status == "rejected"


def test_organizer_can_remove_accepted_member(session):
    organizer, guest = _users(session, "Olga", "Gus")
    event = _make_event(session, organizer)
    request = crud.send_join_request(session, event_id=event.id, user_id=guest.id)
    crud.respond_to_event_request(session, request.id, True, user_id=organizer.id)

    removed = crud.respond_to_event_request(session, request.id, False, user_id=organizer.id)
    assert removed.status == "rejected"
    assert sorted(n.type for n in crud.list_notifications(session, organizer.id)) == [
        "EVENT_PARTICIPANT_JOINED",
        "EVENT_PARTICIPANT_LEFT",
    ]
    with pytest.raises(RequestAlreadyResolved):
        crud.respond_to_event_request(session, request.id, False, user_id=organizer.id)


def test_send_invite_rules(session):
    organizer, guest, member, stranger = _users(session, "Olga", "Gus", "Mia", "Sam")
    event = _make_event(session, organizer)
    with pytest.raises(InvalidRequest):
        crud.send_invite(session, event_id=event.id, from_user_id=stranger.id, to_user_id=guest.id)
    with pytest.raises(InvalidRequest):
        crud.send_invite(
            session, event_id=event.id, from_user_id=organizer.id, to_user_id=organizer.id
        )

    join = crud.send_join_request(session, event_id=event.id, user_id=member.id)
    crud.respond_to_event_request(session, join.id, True, user_id=organizer.id)
    with pytest.raises(InvalidRequest):
        crud.send_invite(session, event_id=event.id, from_user_id=organizer.id, to_user_id=member.id)

    invite = crud.send_invite(
        session, event_id=event.id, from_user_id=organizer.id, to_user_id=guest.id
    )
    duplicate = crud.send_invite(
        session, event_id=event.id, from_user_id=organizer.id, to_user_id=guest.id
    )
    assert invite.id == duplicate.id
    assert invite.type == "invite"


def test_mark_invite_previewing(session):
    organizer, guest = _users(session, "Olga", "Gus")
    event = _make_event(session, organizer)
    invite = crud.send_invite(
        session, event_id=event.id, from_user_id=organizer.id, to_user_id=guest.id
    )
    with pytest.raises(NotRequestAddressee):
        crud.mark_invite_previewing(session, invite.id, user_id=organizer.id)
    previewed = crud.mark_invite_previewing(session, invite.id, user_id=guest.id)
    assert previewed.previewed_at is not None
    assert previewed.status == "pending"


def test_cancel_event_request_and_participation(session):
    organizer, guest, other = _users(session, "Olga", "Gus", "Hana")
    event = _make_event(session, organizer)
    crud.send_join_request(session, event_id=event.id, user_id=guest.id)
    assert crud.cancel_event_request(session, event_id=event.id, user_id=guest.id) == 1
    assert crud.list_event_requests(session, event_id=event.id) == []

    join = crud.send_join_request(session, event_id=event.id, user_id=other.id)
    crud.respond_to_event_request(session, join.id, True, user_id=organizer.id)
    event.participants_data = [{"userId": guest.id}]
    session.flush()

    assert crud.cancel_participation(session, event_id=event.id, user_id=other.id) == 1
    assert crud.cancel_participation(session, event_id=event.id, user_id=guest.id) == 1
    assert event.participants_data == []
    types = [n.type for n in crud.list_notifications(session, organizer.id)]
    assert types.count("EVENT_PARTICIPANT_LEFT") == 2
    with pytest.raises(InvalidRequest):
        crud.cancel_participation(session, event_id=event.id, user_id=organizer.id)


def test_notification_store(session):
    alice, bob = _users(session, "Alice", "Bob")
    first = crud.create_notification(session, user_id=alice.id, type="EVENT_UPDATED")
    crud.create_notification(session, user_id=alice.id, type="EVENT_CANCELLED")
    foreign = crud.create_notification(session, user_id=bob.id, type="EVENT_UPDATED")

    assert crud.mark_read(session, first.id, user_id=alice.id).read_at is not None
    assert crud.mark_all_read(session, alice.id) == 1
    with pytest.raises(NotificationNotFound):
        crud.mark_read(session, foreign.id, user_id=alice.id)

    crud.delete_notification(session, first.id, user_id=alice.id)
    assert len(crud.list_notifications(session, alice.id)) == 1
    with pytest.raises(NotificationNotFound):
        crud.delete_notification(session, first.id, user_id=alice.id)


def test_load_snapshot_scopes_notifications(session):
    alice, bob = _users(session, "Alice", "Bob")
    _make_event(session, alice)
    crud.create_notification(session, user_id=alice.id, type="EVENT_UPDATED")
    crud.create_notification(session, user_id=bob.id, type="EVENT_UPDATED")
    session.commit()

    snapshot = crud.load_snapshot(session, alice.id)
    assert [n.user_id for n in snapshot.notifications] == [alice.id]
    assert len(snapshot.users) == 2
    assert len(snapshot.events) == 1
    assert len(crud.load_snapshot(session).notifications) == 2


def test_create_event_profile_once(session):
    organizer, guest = _users(session, "Olga", "Gus")
    event = _make_event(session, organizer)
    profile = crud.create_event_profile(
        session, event=event, participants=[guest.id, organizer.id, guest.id]
    )
    assert profile.participants == sorted({guest.id, organizer.id})
    assert crud.event_profile(session, event.id).id == profile.id
    with pytest.raises(InvalidRequest):
        crud.create_event_profile(session, event=event, participants=[])
