"""Participant resolution and user roles relative to an event.

Participation is recorded in four places that drift apart over time: the
post-event profile snapshot, accepted membership rows, ``participants_data``
entries and the legacy avatar-keyed ``participants_list``. Everything here
folds them into plain sets of user ids so callers never touch the legacy
shapes.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Literal

from .models import Event, EventRequest
from .temporal import is_past

if TYPE_CHECKING:
    from .snapshot import Snapshot

Role = Literal["organizer", "attendee", "non_member"]
RequestStatus = Literal["organizer", "accepted", "rejected", "pending", "not_requested"]
Relationship = Literal[
    "invited", "organizer", "accepted", "waiting", "rejected", "non_member"
]


def resolve_request_user_id(request: EventRequest | None) -> str | None:
    """Return the user a membership row is about.

    Invites are about the invitee, joins about the requester. Legacy rows
    without a type only carry ``user_id``.
    """
    if request is None:
        return None
    if request.type == "invite":
        return request.to_user_id or request.user_id
    if request.type == "join":
        return request.from_user_id or request.user_id
    return request.user_id


def request_belongs_to_user(request: EventRequest, user_id: str | None) -> bool:
    if not user_id:
        return False
    resolved = resolve_request_user_id(request)
    return bool(resolved) and resolved == user_id


def _participant_data_ids(event: Event) -> set[str]:
    ids = set()
    for entry in event.participants_data or []:
        if isinstance(entry, dict) and entry.get("userId"):
            ids.add(str(entry["userId"]))
    return ids


def _avatar_owners(event: Event, snapshot: Snapshot) -> set[str]:
    avatars = set(event.participants_list or [])
    if not avatars:
        return set()
    owners: set[str] = set()
    claimed: set[str] = set()
    # First known user wins an avatar, matching the order of the directory.
    for user in snapshot.users:
        if user.avatar and user.avatar in avatars and user.avatar not in claimed:
            owners.add(user.id)
            claimed.add(user.avatar)
    return owners


def accepted_participants(event_id: str, snapshot: Snapshot) -> frozenset[str]:
    """Union of every source of accepted participation for ``event_id``."""
    event = snapshot.find_event(event_id)
    if event is None:
        return frozenset()

    participants: set[str] = set()
    profile = snapshot.profile_for(event_id)
    if profile is not None:
        participants.update(str(uid) for uid in profile.participants or [])

    for request in snapshot.event_requests:
        if request.event_id != event_id or request.status != "accepted":
            continue
        participant_id = resolve_request_user_id(request)
        if participant_id:
            participants.add(participant_id)

    participants.update(_participant_data_ids(event))
    participants.update(_avatar_owners(event, snapshot))
    return frozenset(participants)


def event_participants(event_id: str, snapshot: Snapshot) -> frozenset[str]:
    """Accepted participants plus the organizer."""
    event = snapshot.find_event(event_id)
    if event is None:
        return frozenset()
    return accepted_participants(event_id, snapshot) | {event.organizer_id}


def is_organizer(event: Event, user_id: str | None) -> bool:
    return bool(user_id) and event.organizer_id == user_id


def _is_live_attendee(event: Event, user_id: str, snapshot: Snapshot) -> bool:
    if user_id in _participant_data_ids(event):
        return True
    user = snapshot.user(user_id)
    if user is not None and user.avatar and user.avatar in (event.participants_list or []):
        return True
    return user_id in accepted_participants(event.id, snapshot)


def role(
    event: Event,
    user_id: str | None,
    snapshot: Snapshot,
    *,
    now: datetime | None = None,
) -> Role:
    """Classify ``user_id`` as organizer, attendee or non-member of ``event``.

    Once an event is past only its profile snapshot counts. A past event with
    no profile has no members at all, organizer included.
    """
    if not user_id:
        return "non_member"

    if is_past(event, now=now):
        profile = snapshot.profile_for(event.id)
        if profile is None or user_id not in (profile.participants or []):
            return "non_member"
        return "organizer" if is_organizer(event, user_id) else "attendee"

    if is_organizer(event, user_id):
        return "organizer"
    if _is_live_attendee(event, user_id, snapshot):
        return "attendee"
    return "non_member"


def is_attendee(
    event: Event, user_id: str | None, snapshot: Snapshot, *, now: datetime | None = None
) -> bool:
    return role(event, user_id, snapshot, now=now) == "attendee"


def is_member(
    event: Event, user_id: str | None, snapshot: Snapshot, *, now: datetime | None = None
) -> bool:
    return role(event, user_id, snapshot, now=now) != "non_member"


def is_full(event: Event, snapshot: Snapshot) -> bool:
    if not event.max_participants:
        return False
    return len(accepted_participants(event.id, snapshot)) >= event.max_participants


def user_request_status(
    event: Event, user_id: str | None, snapshot: Snapshot
) -> RequestStatus:
    """Status of the user's own membership row on ``event``."""
    if not user_id:
        return "not_requested"
    if is_organizer(event, user_id):
        return "organizer"
    if user_id in _participant_data_ids(event):
        return "accepted"
    for request in snapshot.event_requests:
        if request.event_id == event.id and request_belongs_to_user(request, user_id):
            if request.status in ("accepted", "rejected", "pending"):
                return request.status
    return "not_requested"


def user_relationship(
    event: Event, user_id: str | None, snapshot: Snapshot
) -> Relationship:
    """Relationship used by discovery feeds; a pending invite outranks everything."""
    if not user_id:
        return "non_member"
    rows = [request for request in snapshot.event_requests if request.event_id == event.id]

    if any(
        request.type == "invite"
        and request.to_user_id == user_id
        and request.status == "pending"
        for request in rows
    ):
        return "invited"
    if is_organizer(event, user_id):
        return "organizer"
    if user_id in _participant_data_ids(event):
        return "accepted"

    owned = [request for request in rows if request_belongs_to_user(request, user_id)]
    if any(request.status == "accepted" for request in owned):
        return "accepted"
    if any(
        request.type == "join"
        and request.from_user_id == user_id
        and request.status == "pending"
        for request in rows
    ):
        return "waiting"
    if any(request.status == "rejected" for request in owned):
        return "rejected"
    return "non_member"
