"""Accept, decline and confirm actions on the incoming view.

Invites follow a two-step flow: accepting one only opens a preview of the
event, and ``confirm`` commits it::

    pending -> previewing -> accepted
    pending | previewing -> rejected
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Literal
from urllib.parse import quote

from sqlalchemy.orm import Session

from . import crud
from .classifier import classify_incoming
from .models import Event, EventRequest
from .schemas import ClassifiedRequest, DispatchResult, PreviewContext
from .snapshot import Snapshot
from .temporal import display_datetime
from .utils import utcnow

logger = logging.getLogger("uvicorn.error")

InviteState = Literal["pending", "previewing", "accepted", "rejected"]


class InvalidTransition(ValueError):
    """Raised when an invite is moved along an edge the state machine lacks."""


def invite_state(request: EventRequest) -> InviteState:
    if request.status in ("accepted", "rejected"):
        return request.status
    return "previewing" if request.previewed_at is not None else "pending"


def preview_route(event: Event | None, invite_id: str, *, now: datetime | None = None) -> str:
    """Calendar route that opens ``event`` in preview mode."""
    if event is None:
        return "/calendar"
    starts_at = display_datetime(event, now=now)
    return (
        f"/calendar?date={quote(starts_at.isoformat(), safe='')}"
        f"&mode=preview&eventId={event.id}&inviteId={invite_id}"
    )


def _find_incoming(
    snapshot: Snapshot, current_user_id: str, request_id: str, now: datetime
) -> ClassifiedRequest | None:
    incoming = classify_incoming(snapshot, current_user_id, now=now)
    return next((item for item in incoming.included if item.id == request_id), None)


def _stale(request_id: str, action: str) -> DispatchResult:
    logger.info("Ignoring %s on stale request %s", action, request_id)
    return DispatchResult(request_id=request_id, action=action, outcome="stale")


def accept(
    session: Session,
    current_user_id: str,
    request_id: str,
    *,
    snapshot: Snapshot | None = None,
    now: datetime | None = None,
) -> DispatchResult:
    """Accept a request from the user's incoming view.

    Friend and join requests resolve immediately. Invites move to
    ``previewing`` and return where to review the event.
    """
    now = now or utcnow()
    snapshot = snapshot or crud.load_snapshot(session, current_user_id)
    item = _find_incoming(snapshot, current_user_id, request_id, now)
    if item is None:
        return _stale(request_id, "accept")

    if item.type == "friend":
        crud.respond_to_friend_request(session, request_id, True, user_id=current_user_id)
        return DispatchResult(request_id=request_id, action="accept", outcome="accepted")

    event = snapshot.find_event(item.event_id)
    if event is None:
        return _stale(request_id, "accept")

    if not item.is_invite:
        crud.respond_to_event_request(session, request_id, True, user_id=current_user_id)
        return DispatchResult(request_id=request_id, action="accept", outcome="accepted")

    crud.mark_invite_previewing(session, request_id, user_id=current_user_id)
    preview = PreviewContext(
        event_id=event.id,
        invite_id=request_id,
        starts_at=display_datetime(event, now=now),
        route=preview_route(event, request_id, now=now),
    )
    return DispatchResult(
        request_id=request_id, action="accept", outcome="previewing", preview=preview
    )


def decline(
    session: Session,
    current_user_id: str,
    request_id: str,
    *,
    snapshot: Snapshot | None = None,
    now: datetime | None = None,
) -> DispatchResult:
    now = now or utcnow()
    snapshot = snapshot or crud.load_snapshot(session, current_user_id)
    item = _find_incoming(snapshot, current_user_id, request_id, now)
    if item is None:
        return _stale(request_id, "decline")

    if item.type == "friend":
        crud.respond_to_friend_request(session, request_id, False, user_id=current_user_id)
    else:
        crud.respond_to_event_request(session, request_id, False, user_id=current_user_id)
    return DispatchResult(request_id=request_id, action="decline", outcome="rejected")


def confirm(session: Session, current_user_id: str, invite_id: str) -> DispatchResult:
    """Commit an invite the user has previewed."""
    request = crud.get_event_request(session, invite_id)
    if request is None or crud.find_event(session, request.event_id) is None:
        return _stale(invite_id, "confirm")
    if request.type != "invite":
        raise InvalidTransition("Only invites can be confirmed")
    state = invite_state(request)
    if state != "previewing":
        raise InvalidTransition(f"Cannot confirm an invite that is {state}")
    crud.respond_to_event_request(session, invite_id, True, user_id=current_user_id)
    return DispatchResult(request_id=invite_id, action="confirm", outcome="accepted")
