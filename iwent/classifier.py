"""Incoming and outgoing request views for a single viewing user.

Both views are rebuilt from scratch on every call. Candidates that fail an
eligibility rule are never raised as errors: they land in
``Classification.excluded`` with a reason and are logged for diagnostics.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

from .models import REQUEST_STATUSES, EventRequest, FriendRequest
from .participants import (
    is_member,
    is_organizer,
    request_belongs_to_user,
    resolve_request_user_id,
    user_request_status,
)
from .schemas import (
    Classification,
    EventRequestItem,
    Exclusion,
    FriendRequestItem,
    InboxViews,
)
from .snapshot import Snapshot
from .temporal import is_upcoming
from .utils import utcnow

# Use uvicorn's error logger so messages get the level prefix in the default log
# format.
logger = logging.getLogger("uvicorn.error")


def _exclude(
    result: Classification,
    *,
    candidate_id: str,
    kind: str,
    reason: str,
    level: int = logging.DEBUG,
    **context,
) -> None:
    result.excluded.append(Exclusion(candidate_id=candidate_id, kind=kind, reason=reason))
    logger.log(level, "Excluded %s request %s: %s %s", kind, candidate_id, reason, context)


def _is_join(request: EventRequest) -> bool:
    return not request.type or request.type == "join"


def _has_pending_friend_request(snapshot: Snapshot, user_a: str, user_b: str) -> bool:
    return any(
        request.status == "pending"
        and {request.from_user_id, request.to_user_id} == {user_a, user_b}
        for request in snapshot.friend_requests
    )


def _incoming_friend_requests(
    snapshot: Snapshot, current_user_id: str, result: Classification
) -> None:
    seen: set[str] = set()
    for request in snapshot.friend_requests:
        if request.to_user_id != current_user_id:
            continue
        if request.id in seen:
            _exclude(result, candidate_id=request.id, kind="friend", reason="duplicate")
            continue
        seen.add(request.id)
        if request.status != "pending":
            reason = "rejected" if request.status == "rejected" else "status_not_visible"
            _exclude(result, candidate_id=request.id, kind="friend", reason=reason)
            continue
        if any(
            other.status == "pending"
            and other.from_user_id == current_user_id
            and other.to_user_id == request.from_user_id
            for other in snapshot.friend_requests
        ):
            logger.warning(
                "Contradictory pending friend requests between %s and %s",
                current_user_id,
                request.from_user_id,
            )
        result.included.append(
            FriendRequestItem(
                id=request.id,
                user_id=request.from_user_id,
                status=request.status,
                created_at=request.created_at,
            )
        )


def _incoming_invites(
    snapshot: Snapshot,
    current_user_id: str,
    result: Classification,
    now: datetime,
) -> None:
    seen: set[str] = set()
    for request in snapshot.event_requests:
        if request.type != "invite" or request.to_user_id != current_user_id:
            continue
        if request.id in seen:
            _exclude(result, candidate_id=request.id, kind="event", reason="duplicate")
            continue
        seen.add(request.id)
        if request.status != "pending":
            reason = "rejected" if request.status == "rejected" else "status_not_visible"
            _exclude(result, candidate_id=request.id, kind="event", reason=reason)
            continue

        event = snapshot.find_event(request.event_id)
        if event is None:
            _exclude(
                result,
                candidate_id=request.id,
                kind="event",
                reason="event_not_found",
                level=logging.WARNING,
                event_id=request.event_id,
            )
            continue
        inviter_id = request.from_user_id
        if inviter_id != event.organizer_id:
            _exclude(
                result,
                candidate_id=request.id,
                kind="event",
                reason="inviter_not_organizer",
                level=logging.WARNING,
                inviter_id=inviter_id,
                organizer_id=event.organizer_id,
            )
            continue
        if current_user_id not in snapshot.friend_ids(inviter_id):
            _exclude(
                result,
                candidate_id=request.id,
                kind="event",
                reason="not_friends",
                organizer_id=inviter_id,
            )
            continue
        if _has_pending_friend_request(snapshot, current_user_id, inviter_id):
            _exclude(
                result, candidate_id=request.id, kind="event", reason="pending_friend_request"
            )
            continue
        if is_organizer(event, current_user_id):
            _exclude(result, candidate_id=request.id, kind="event", reason="already_organizer")
            continue
        if is_member(event, current_user_id, snapshot, now=now):
            _exclude(result, candidate_id=request.id, kind="event", reason="already_member")
            continue

        result.included.append(
            EventRequestItem(
                id=request.id,
                event_id=request.event_id,
                user_id=inviter_id,
                is_invite=True,
                status=request.status,
                created_at=request.created_at,
            )
        )


def _incoming_join_requests(
    snapshot: Snapshot,
    current_user_id: str,
    result: Classification,
    now: datetime,
) -> None:
    seen: set[str] = set()
    for request in snapshot.event_requests:
        if not _is_join(request):
            continue
        event = snapshot.find_event(request.event_id)
        if event is None or not is_organizer(event, current_user_id):
            continue
        if request.id in seen:
            _exclude(result, candidate_id=request.id, kind="event", reason="duplicate")
            continue
        seen.add(request.id)
        if not is_upcoming(event, now=now):
            _exclude(result, candidate_id=request.id, kind="event", reason="event_not_upcoming")
            continue

        business = snapshot.is_business(event.organizer_id)
        visible = ("pending", "accepted") if business else ("pending",)
        if request.status not in visible:
            _exclude(result, candidate_id=request.id, kind="event", reason="status_not_visible")
            continue

        requester_id = resolve_request_user_id(request)
        if requester_id == event.organizer_id:
            _exclude(
                result,
                candidate_id=request.id,
                kind="event",
                reason="self_request",
                level=logging.WARNING,
            )
            continue

        result.included.append(
            EventRequestItem(
                id=request.id,
                event_id=request.event_id,
                user_id=requester_id,
                is_invite=False,
                is_business_account=business,
                status=request.status,
                created_at=request.created_at,
            )
        )


def classify_incoming(
    snapshot: Snapshot, current_user_id: str | None, *, now: datetime | None = None
) -> Classification:
    """Requests waiting on ``current_user_id``'s decision.

    Friend requests come first, then invites, then join requests on events the
    user organizes. Business organizers also see accepted joins as notices.
    """
    result = Classification()
    if not current_user_id:
        return result
    now = now or utcnow()
    _incoming_friend_requests(snapshot, current_user_id, result)
    _incoming_invites(snapshot, current_user_id, result, now)
    _incoming_join_requests(snapshot, current_user_id, result, now)
    logger.debug(
        "Incoming view for %s: %d included, %d excluded",
        current_user_id,
        len(result.included),
        len(result.excluded),
    )
    return result


def my_event_requests(snapshot: Snapshot, current_user_id: str | None) -> list[EventRequest]:
    """Joins the user sent plus invites the user sent or received."""
    if not current_user_id:
        return []
    mine = []
    for request in snapshot.event_requests:
        if _is_join(request):
            if (
                request_belongs_to_user(request, current_user_id)
                or request.from_user_id == current_user_id
                or request.user_id == current_user_id
            ):
                mine.append(request)
        elif request.type == "invite":
            if current_user_id in (request.from_user_id, request.to_user_id):
                mine.append(request)
    return mine


def classify_outgoing(
    snapshot: Snapshot, current_user_id: str | None, *, now: datetime | None = None
) -> Classification:
    """Requests ``current_user_id`` initiated and that are still relevant."""
    result = Classification()
    if not current_user_id:
        return result
    now = now or utcnow()

    for request in snapshot.friend_requests:
        if request.from_user_id != current_user_id:
            continue
        if request.status == "rejected":
            _exclude(result, candidate_id=request.id, kind="friend", reason="rejected")
            continue
        result.included.append(
            FriendRequestItem(
                id=request.id,
                user_id=request.to_user_id,
                status=request.status,
                created_at=request.created_at,
            )
        )

    for request in my_event_requests(snapshot, current_user_id):
        if request.type == "invite" and request.from_user_id != current_user_id:
            continue
        if request.status not in REQUEST_STATUSES:
            _exclude(
                result,
                candidate_id=request.id,
                kind="event",
                reason="status_not_visible",
                level=logging.WARNING,
                status=request.status,
            )
            continue
        event = snapshot.find_event(request.event_id)
        if event is None:
            _exclude(
                result,
                candidate_id=request.id,
                kind="event",
                reason="event_not_found",
                event_id=request.event_id,
            )
            continue

        if request.type == "invite":
            if request.status == "rejected":
                _exclude(result, candidate_id=request.id, kind="event", reason="rejected")
                continue
            result.included.append(
                EventRequestItem(
                    id=request.id,
                    event_id=request.event_id,
                    user_id=request.to_user_id,
                    is_invite=True,
                    status=request.status,
                    created_at=request.created_at,
                )
            )
            continue

        if not is_upcoming(event, now=now):
            _exclude(result, candidate_id=request.id, kind="event", reason="event_not_upcoming")
            continue
        if is_organizer(event, current_user_id):
            _exclude(result, candidate_id=request.id, kind="event", reason="already_organizer")
            continue
        if user_request_status(event, current_user_id, snapshot) not in ("pending", "accepted"):
            _exclude(result, candidate_id=request.id, kind="event", reason="status_not_visible")
            continue
        result.included.append(
            EventRequestItem(
                id=request.id,
                event_id=request.event_id,
                user_id=event.organizer_id,
                is_invite=False,
                status=request.status,
                created_at=request.created_at,
            )
        )
    return result


def classify(
    snapshot: Snapshot, current_user_id: str | None, *, now: datetime | None = None
) -> InboxViews:
    now = now or utcnow()
    return InboxViews(
        incoming=classify_incoming(snapshot, current_user_id, now=now),
        outgoing=classify_outgoing(snapshot, current_user_id, now=now),
    )


def sort_by_created_at(items: Iterable, *, newest_first: bool = True) -> list:
    """Order classified requests chronologically; undated items sort last."""
    items = list(items)
    dated = [item for item in items if item.created_at is not None]
    undated = [item for item in items if item.created_at is None]
    return sorted(dated, key=lambda item: item.created_at, reverse=newest_first) + undated


def find_friend_request(snapshot: Snapshot, request_id: str) -> FriendRequest | None:
    return next((r for r in snapshot.friend_requests if r.id == request_id), None)


def find_event_request(snapshot: Snapshot, request_id: str) -> EventRequest | None:
    return next((r for r in snapshot.event_requests if r.id == request_id), None)
