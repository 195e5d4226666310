"""Activity feed assembly and notification read-state tracking."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Protocol

from .models import Notification
from .schemas import FeedEntry, NotificationEntry, NotificationItem, RequestEntry
from .utils import format_time_ago, utcnow

logger = logging.getLogger("uvicorn.error")

EVENT_NOTIFICATION_TYPES = frozenset(
    {
        "EVENT_CANCELLED",
        "EVENT_UPDATED",
        "EVENT_PARTICIPANT_JOINED",
        "EVENT_PARTICIPANT_LEFT",
        "EVENT_POST_ADDED",
    }
)


def to_notification_item(notification: Notification | NotificationItem) -> NotificationItem:
    if isinstance(notification, NotificationItem):
        return notification
    return NotificationItem(
        id=notification.id,
        type=notification.type,
        payload=notification.payload or {},
        created_at=notification.created_at,
        read_at=notification.read_at,
    )


def event_notifications(
    notifications: Iterable[Notification | NotificationItem],
) -> list[NotificationItem]:
    """Keep event lifecycle notifications, dropping request-type ones."""
    return [
        to_notification_item(notification)
        for notification in notifications
        if notification.type in EVENT_NOTIFICATION_TYPES
    ]


def unread_count(notifications: Iterable[Notification | NotificationItem]) -> int:
    return sum(1 for notification in notifications if notification.read_at is None)


def build_feed(
    notifications: Iterable[Notification | NotificationItem],
    incoming: Iterable,
    *,
    interleave: bool = False,
    now: datetime | None = None,
) -> list[FeedEntry]:
    """Merge filtered notifications and incoming requests into one feed.

    By default notifications come first in their input order, followed by the
    incoming requests. With ``interleave`` every entry is sorted newest first.
    """
    now = now or utcnow()
    entries: list[FeedEntry] = []
    for item in event_notifications(notifications):
        entries.append(
            NotificationEntry(
                notification=item,
                time_ago=format_time_ago(item.created_at, now=now),
            )
        )
    for request in incoming:
        entries.append(
            RequestEntry(
                request=request,
                time_ago=format_time_ago(request.created_at, now=now),
            )
        )

    if interleave:
        entries.sort(key=_entry_timestamp, reverse=True)
    return entries


def _entry_timestamp(entry: FeedEntry) -> datetime:
    if isinstance(entry, NotificationEntry):
        created_at = entry.notification.created_at
    else:
        created_at = entry.request.created_at
    return created_at or datetime.min


class NotificationStore(Protocol):
    def mark_read(self, notification_id: str) -> None: ...

    def mark_all_read(self) -> None: ...


class RequestsTabTracker:
    """Read-state lifecycle of the requests screen.

    Visiting the incoming tab and then leaving it marks every event
    notification read in one call. Tapping a notification marks just that one.
    Switching tabs only changes which tab a later ``blur`` applies to.
    """

    def __init__(self, store: NotificationStore) -> None:
        self.store = store
        self.showing_outgoing = False
        self.visited_incoming = False

    def show_incoming(self) -> None:
        self.showing_outgoing = False

    def show_outgoing(self) -> None:
        self.showing_outgoing = True

    def focus(self) -> None:
        if not self.showing_outgoing:
            self.visited_incoming = True

    def blur(self, notifications: Sequence[Notification | NotificationItem]) -> bool:
        """Leave the screen; return True when notifications were marked read."""
        if not self.visited_incoming or self.showing_outgoing:
            return False
        unread = unread_count(event_notifications(notifications))
        if not unread:
            return False
        logger.debug("Marking %s notifications read on tab exit", unread)
        self.store.mark_all_read()
        return True

    def tap(self, notification_id: str) -> None:
        self.store.mark_read(notification_id)
