"""Archive cycle: freeze the participant list of events that have ended."""

from __future__ import annotations

import logging
from datetime import datetime

from . import database
from .crud import create_event_profile, load_snapshot
from .participants import event_participants
from .temporal import is_past, recurrence_kind
from .utils import utcnow

# Use uvicorn's error logger so archive messages show up with level prefixes.
logger = logging.getLogger("uvicorn.error")


def run_archive_cycle(now: datetime | None = None) -> dict:
    """Create an ``EventProfile`` for every past event that lacks one.

    The profile lists the organizer plus everyone accepted at archive time.
    Open-ended recurring events never end and are never archived.
    """
    now = now or utcnow()
    stats = {
        "events_checked": 0,
        "profiles_created": 0,
        "already_archived": 0,
        "not_past": 0,
    }
    logger.info("Archive cycle started (now=%s)", now.isoformat(timespec="seconds"))

    with database.get_session() as session:
        snapshot = load_snapshot(session)
        for event in snapshot.events:
            stats["events_checked"] += 1
            if snapshot.profile_for(event.id) is not None:
                stats["already_archived"] += 1
                continue
            if recurrence_kind(event) in ("daily", "weekly", "monthly") or not is_past(
                event, now=now
            ):
                stats["not_past"] += 1
                continue
            participants = event_participants(event.id, snapshot)
            create_event_profile(session, event=event, participants=participants)
            stats["profiles_created"] += 1
            logger.debug(
                "Archived event %s with %d participants", event.id, len(participants)
            )

    logger.info(
        "Archive cycle finished: checked=%d created=%d already_archived=%d not_past=%d",
        stats["events_checked"],
        stats["profiles_created"],
        stats["already_archived"],
        stats["not_past"],
    )
    return stats
