"""CRUD helpers for users, events, membership rows, friendships and notifications."""

from __future__ import annotations

import logging
from typing import Sequence

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from .config import settings
from .models import (
    ACCOUNT_TYPES,
    RECURRING_TYPES,
    Event,
    EventProfile,
    EventRequest,
    FriendRequest,
    Notification,
    User,
)
from .participants import (
    event_participants,
    is_full,
    is_member,
    request_belongs_to_user,
    resolve_request_user_id,
)
from .snapshot import Snapshot
from .utils import utcnow

logger = logging.getLogger("uvicorn.error")


class InvalidRequest(ValueError):
    """Raised when a request cannot be created in the current state."""


class RequestNotFound(LookupError):
    pass


class NotificationNotFound(LookupError):
    pass


class RequestAlreadyResolved(ValueError):
    """Raised when responding to a request that is no longer pending."""


class NotRequestAddressee(PermissionError):
    """Raised when someone other than the addressee responds to a request."""


class EventFullError(Exception):
    """Raised when accepting a member would exceed the event's capacity."""


# Users


def list_users(session: Session) -> Sequence[User]:
    return session.scalars(select(User).order_by(User.created_at, User.id)).all()


def get_user_data(session: Session, user_id: str | None) -> User | None:
    if not user_id:
        return None
    return session.get(User, user_id)


def create_user(
    session: Session,
    *,
    name: str,
    username: str | None = None,
    avatar: str | None = None,
    account_type: str = "personal",
) -> User:
    account_type = (account_type or "personal").strip().lower()
    if account_type not in ACCOUNT_TYPES:
        raise ValueError("Invalid account type")
    user = User(
        name=name,
        username=username,
        avatar=avatar,
        account_type=account_type,
        created_at=utcnow(),
    )
    session.add(user)
    session.flush()
    return user


# Events


def list_events(session: Session) -> Sequence[Event]:
    return session.scalars(select(Event).order_by(Event.created_at, Event.id)).all()


def find_event(session: Session, event_id: str | None) -> Event | None:
    if not event_id:
        return None
    return session.get(Event, event_id)


def create_event(
    session: Session,
    *,
    title: str,
    organizer_id: str,
    date: str | None,
    time: str | None,
    description: str | None = None,
    location: str | None = None,
    max_participants: int | None = None,
    recurring_type: str | None = None,
    recurring_days: list[int] | None = None,
    recurring_day_of_month: int | None = None,
    recurring_custom_dates: list[str] | None = None,
) -> Event:
    """Create and persist a new event; passing ``recurring_type`` makes it recur."""
    if recurring_type is not None and recurring_type not in RECURRING_TYPES:
        raise ValueError("Invalid recurrence type")
    if max_participants is not None and max_participants < 1:
        raise ValueError("max_participants must be positive")
    event = Event(
        title=title,
        organizer_id=organizer_id,
        date=date,
        time=time,
        description=description,
        location=location,
        max_participants=max_participants,
        participants_data=[],
        participants_list=[],
        is_recurring=recurring_type is not None,
        recurring_type=recurring_type,
        recurring_days=recurring_days,
        recurring_day_of_month=recurring_day_of_month,
        recurring_custom_dates=recurring_custom_dates,
        created_at=utcnow(),
    )
    session.add(event)
    session.flush()
    return event


# Profiles


def event_profile(session: Session, event_id: str | None) -> EventProfile | None:
    if not event_id:
        return None
    return session.scalars(
        select(EventProfile).where(EventProfile.event_id == event_id)
    ).first()


def list_event_profiles(session: Session) -> Sequence[EventProfile]:
    return session.scalars(select(EventProfile).order_by(EventProfile.created_at)).all()


def create_event_profile(
    session: Session, *, event: Event, participants: Sequence[str]
) -> EventProfile:
    """Freeze the final participant list of a finished event."""
    if event_profile(session, event.id) is not None:
        raise InvalidRequest("Event already has a profile")
    profile = EventProfile(
        event_id=event.id,
        name=event.title,
        date=event.date,
        time=event.time,
        participants=sorted(set(participants)),
        is_completed=True,
        created_at=utcnow(),
    )
    session.add(profile)
    session.flush()
    return profile


# Membership rows


def list_event_requests(
    session: Session, *, event_id: str | None = None
) -> Sequence[EventRequest]:
    stmt = select(EventRequest).order_by(EventRequest.created_at, EventRequest.id)
    if event_id is not None:
        stmt = stmt.where(EventRequest.event_id == event_id)
    return session.scalars(stmt).all()


def get_event_request(session: Session, request_id: str) -> EventRequest | None:
    return session.get(EventRequest, request_id)


def create_event_request(
    session: Session,
    *,
    event_id: str,
    type: str | None,
    from_user_id: str | None = None,
    to_user_id: str | None = None,
    user_id: str | None = None,
    status: str = "pending",
) -> EventRequest:
    """Insert a membership row as-is, without any eligibility checks."""
    request = EventRequest(
        event_id=event_id,
        type=type,
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        user_id=user_id,
        status=status,
        created_at=utcnow(),
    )
    session.add(request)
    session.flush()
    return request


def _event_snapshot(session: Session, event: Event) -> Snapshot:
    profile = event_profile(session, event.id)
    return Snapshot(
        users=list_users(session),
        events=[event],
        event_profiles=[profile] if profile else [],
        event_requests=list_event_requests(session, event_id=event.id),
    )


def send_join_request(session: Session, *, event_id: str, user_id: str) -> EventRequest:
    """Ask to join ``event_id``.

    An existing pending or accepted row is returned unchanged and a rejected
    one is reopened. Business organizers accept joins automatically while the
    event has room.
    """
    event = find_event(session, event_id)
    if event is None:
        raise InvalidRequest("Event not found")
    if event.organizer_id == user_id:
        raise InvalidRequest("Organizer cannot request to join their own event")

    existing = next(
        (
            row
            for row in list_event_requests(session, event_id=event_id)
            if row.type != "invite" and request_belongs_to_user(row, user_id)
        ),
        None,
    )
    if existing is not None and existing.status in ("pending", "accepted"):
        return existing

    organizer = get_user_data(session, event.organizer_id)
    auto_accept = bool(
        settings.business_auto_accept and organizer is not None and organizer.is_business
    )
    if auto_accept and is_full(event, _event_snapshot(session, event)):
        raise EventFullError("Event is full")

    if existing is None:
        existing = EventRequest(
            event_id=event_id,
            type="join",
            from_user_id=user_id,
            to_user_id=event.organizer_id,
        )
    existing.status = "accepted" if auto_accept else "pending"
    existing.created_at = utcnow()
    session.add(existing)
    session.flush()

    if auto_accept:
        logger.info("Auto-accepted join request %s for event %s", existing.id, event_id)
        _notify_participant_change(session, event, user_id, "EVENT_PARTICIPANT_JOINED")
    return existing


def send_invite(
    session: Session, *, event_id: str, from_user_id: str, to_user_id: str
) -> EventRequest:
    """Invite ``to_user_id`` to an event organized by ``from_user_id``."""
    event = find_event(session, event_id)
    if event is None:
        raise InvalidRequest("Event not found")
    if event.organizer_id != from_user_id:
        raise InvalidRequest("Only the organizer can invite")
    if to_user_id == from_user_id:
        raise InvalidRequest("Cannot invite yourself")
    if is_member(event, to_user_id, _event_snapshot(session, event)):
        raise InvalidRequest("User is already a member")

    existing = session.scalars(
        select(EventRequest).where(
            EventRequest.event_id == event_id,
            EventRequest.type == "invite",
            EventRequest.to_user_id == to_user_id,
        )
    ).first()
    if existing is not None:
        if existing.status != "rejected":
            return existing
        existing.status = "pending"
        existing.previewed_at = None
        existing.created_at = utcnow()
        session.add(existing)
        session.flush()
        return existing

    return create_event_request(
        session,
        event_id=event_id,
        type="invite",
        from_user_id=from_user_id,
        to_user_id=to_user_id,
    )


def cancel_event_request(session: Session, *, event_id: str, user_id: str) -> int:
    """Withdraw the user's pending join requests; return how many were removed."""
    removed = 0
    for row in list_event_requests(session, event_id=event_id):
        if row.type != "invite" and row.status == "pending" and request_belongs_to_user(row, user_id):
            session.delete(row)
            removed += 1
    session.flush()
    return removed


def cancel_participation(session: Session, *, event_id: str, user_id: str) -> int:
    """Leave an event: drop accepted memberships and ``participants_data`` entries."""
    event = find_event(session, event_id)
    if event is None:
        raise InvalidRequest("Event not found")
    if event.organizer_id == user_id:
        raise InvalidRequest("Organizer cannot leave their own event")

    removed = 0
    for row in list_event_requests(session, event_id=event_id):
        if row.status == "accepted" and resolve_request_user_id(row) == user_id:
            session.delete(row)
            removed += 1

    data = list(event.participants_data or [])
    kept = [
        entry
        for entry in data
        if not (isinstance(entry, dict) and str(entry.get("userId")) == user_id)
    ]
    if len(kept) != len(data):
        event.participants_data = kept
        session.add(event)
        removed += len(data) - len(kept)

    session.flush()
    if removed:
        _notify_participant_change(session, event, user_id, "EVENT_PARTICIPANT_LEFT")
    return removed


def respond_to_event_request(
    session: Session,
    request_id: str,
    accept: bool,
    *,
    user_id: str | None = None,
) -> EventRequest:
    """Resolve a pending membership row.

    When ``user_id`` is given it must be the addressee: the invitee for an
    invite, the organizer for a join request. The organizer may also decline
    an accepted join row, which removes the member again.
    """
    request = get_event_request(session, request_id)
    if request is None:
        raise RequestNotFound(f"Event request {request_id} not found")
    removing_member = not accept and request.type != "invite" and request.status == "accepted"
    if request.status != "pending" and not removing_member:
        raise RequestAlreadyResolved(f"Event request {request_id} is already {request.status}")

    event = find_event(session, request.event_id)
    if user_id is not None:
        if request.type == "invite":
            addressee = request.to_user_id
        else:
            addressee = event.organizer_id if event is not None else None
        if addressee != user_id:
            raise NotRequestAddressee("Only the addressee can respond to this request")

    if accept:
        if event is None:
            raise InvalidRequest("Event not found")
        if is_full(event, _event_snapshot(session, event)):
            raise EventFullError("Event is full")
        request.status = "accepted"
    else:
        request.status = "rejected"
    session.add(request)
    session.flush()
    logger.info("Event request %s %s", request.id, request.status)

    member_id = resolve_request_user_id(request)
    if member_id and event is not None:
        if accept:
            _notify_participant_change(session, event, member_id, "EVENT_PARTICIPANT_JOINED")
        elif removing_member:
            _notify_participant_change(session, event, member_id, "EVENT_PARTICIPANT_LEFT")
    return request


def mark_invite_previewing(session: Session, request_id: str, *, user_id: str) -> EventRequest:
    """Record that the invitee opened the invite preview."""
    request = get_event_request(session, request_id)
    if request is None:
        raise RequestNotFound(f"Event request {request_id} not found")
    if request.type != "invite":
        raise InvalidRequest("Only invites can be previewed")
    if request.to_user_id != user_id:
        raise NotRequestAddressee("Only the invitee can preview this invite")
    if request.status != "pending":
        raise RequestAlreadyResolved(f"Invite {request_id} is already {request.status}")
    if request.previewed_at is None:
        request.previewed_at = utcnow()
        session.add(request)
        session.flush()
    return request


# Friendships


def list_friend_requests(
    session: Session, *, user_id: str | None = None
) -> Sequence[FriendRequest]:
    stmt = select(FriendRequest).order_by(FriendRequest.created_at, FriendRequest.id)
    if user_id is not None:
        stmt = stmt.where(
            or_(FriendRequest.from_user_id == user_id, FriendRequest.to_user_id == user_id)
        )
    return session.scalars(stmt).all()


def get_friend_request(session: Session, request_id: str) -> FriendRequest | None:
    return session.get(FriendRequest, request_id)


def create_friend_request(
    session: Session, *, from_user_id: str, to_user_id: str, status: str = "pending"
) -> FriendRequest:
    request = FriendRequest(
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        status=status,
        created_at=utcnow(),
    )
    session.add(request)
    session.flush()
    return request


def _friend_request_between(
    session: Session, from_user_id: str, to_user_id: str
) -> FriendRequest | None:
    return session.scalars(
        select(FriendRequest).where(
            FriendRequest.from_user_id == from_user_id,
            FriendRequest.to_user_id == to_user_id,
        )
    ).first()


def send_friend_request(
    session: Session, *, from_user_id: str, to_user_id: str
) -> FriendRequest:
    if from_user_id == to_user_id:
        raise InvalidRequest("Cannot send a friend request to yourself")
    if get_user_data(session, to_user_id) is None:
        raise InvalidRequest("User not found")

    outgoing = _friend_request_between(session, from_user_id, to_user_id)
    incoming = _friend_request_between(session, to_user_id, from_user_id)
    for row in (outgoing, incoming):
        if row is not None and row.status == "accepted":
            return row
    if outgoing is not None and outgoing.status == "pending":
        raise InvalidRequest("Friend request already sent")
    if incoming is not None and incoming.status == "pending":
        raise InvalidRequest("This user already sent you a friend request, accept it instead")

    if outgoing is not None:
        outgoing.status = "pending"
        outgoing.created_at = utcnow()
        session.add(outgoing)
        session.flush()
        return outgoing
    return create_friend_request(session, from_user_id=from_user_id, to_user_id=to_user_id)


def respond_to_friend_request(
    session: Session, request_id: str, accept: bool, *, user_id: str
) -> FriendRequest:
    request = get_friend_request(session, request_id)
    if request is None:
        raise RequestNotFound(f"Friend request {request_id} not found")
    if request.to_user_id != user_id:
        raise NotRequestAddressee("Only the addressee can respond to this friend request")
    if request.status != "pending":
        raise RequestAlreadyResolved(f"Friend request {request_id} is already {request.status}")
    request.status = "accepted" if accept else "rejected"
    session.add(request)
    session.flush()
    logger.info("Friend request %s %s", request.id, request.status)
    return request


def friends_of(session: Session, user_id: str) -> list[User]:
    snapshot = Snapshot(
        users=list_users(session),
        friend_requests=list_friend_requests(session, user_id=user_id),
    )
    return snapshot.friends_of(user_id)


# Notifications


def list_notifications(session: Session, user_id: str) -> Sequence[Notification]:
    return session.scalars(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id)
    ).all()


def create_notification(
    session: Session, *, user_id: str, type: str, payload: dict | None = None
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=type,
        payload=payload or {},
        created_at=utcnow(),
    )
    session.add(notification)
    session.flush()
    return notification


def _user_notification(session: Session, notification_id: str, user_id: str | None) -> Notification:
    notification = session.get(Notification, notification_id)
    if notification is None or (user_id is not None and notification.user_id != user_id):
        raise NotificationNotFound(f"Notification {notification_id} not found")
    return notification


def mark_read(session: Session, notification_id: str, *, user_id: str | None = None) -> Notification:
    notification = _user_notification(session, notification_id, user_id)
    if notification.read_at is None:
        notification.read_at = utcnow()
        session.add(notification)
        session.flush()
    return notification


def mark_all_read(session: Session, user_id: str) -> int:
    now = utcnow()
    updated = 0
    for notification in list_notifications(session, user_id):
        if notification.read_at is None:
            notification.read_at = now
            session.add(notification)
            updated += 1
    session.flush()
    return updated


def delete_notification(session: Session, notification_id: str, *, user_id: str | None = None) -> None:
    session.delete(_user_notification(session, notification_id, user_id))
    session.flush()


class SessionNotificationStore:
    """Notification store bound to one session and user."""

    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def mark_read(self, notification_id: str) -> None:
        mark_read(self.session, notification_id, user_id=self.user_id)

    def mark_all_read(self) -> None:
        mark_all_read(self.session, self.user_id)


def _notify_participant_change(
    session: Session, event: Event, user_id: str, notification_type: str
) -> None:
    """Tell the other members of ``event`` that ``user_id`` joined or left."""
    snapshot = _event_snapshot(session, event)
    actor = get_user_data(session, user_id)
    payload = {
        "eventId": event.id,
        "eventTitle": event.title,
        "actorId": user_id,
        "actorName": actor.name if actor is not None else None,
    }
    for member_id in sorted(event_participants(event.id, snapshot) - {user_id}):
        create_notification(
            session,
            user_id=member_id,
            type=notification_type,
            payload=dict(payload),
        )


# Snapshot


def load_snapshot(session: Session, user_id: str | None = None) -> Snapshot:
    """Read every collection into one ``Snapshot``.

    Notifications are limited to ``user_id`` when one is given.
    """
    if user_id is not None:
        notifications = list_notifications(session, user_id)
    else:
        notifications = session.scalars(select(Notification)).all()
    return Snapshot(
        users=list_users(session),
        events=list_events(session),
        event_profiles=list_event_profiles(session),
        event_requests=list_event_requests(session),
        friend_requests=list_friend_requests(session),
        notifications=notifications,
    )
