"""Development helpers for populating fake users, events and requests."""

from __future__ import annotations

import random
from datetime import timedelta

from faker import Faker
from sqlalchemy.orm import Session

from . import database
from .config import settings
from .crud import (
    EventFullError,
    InvalidRequest,
    create_event,
    create_friend_request,
    create_notification,
    create_user,
    send_invite,
    send_join_request,
)
from .inbox import EVENT_NOTIFICATION_TYPES
from .models import Event, User
from .storage import init_db
from .utils import utcnow

_event_types = [
    "Brunch",
    "Run Club",
    "Board Games",
    "Gallery Walk",
    "Picnic",
    "Book Club",
    "Karaoke",
    "Climbing",
]
_recurrences = [None, None, None, "daily", "weekly", "monthly", "custom"]
_friend_statuses = ["accepted", "accepted", "accepted", "pending", "rejected"]


def seed_fake_data(
    *,
    user_count: int | None = None,
    event_count: int | None = None,
    requests_per_event: int | None = None,
    business_percentage: int = 20,
) -> dict[str, int]:
    """Populate the database with synthetic users, friendships and events."""
    user_count = settings.seed_users if user_count is None else user_count
    event_count = settings.seed_events if event_count is None else event_count
    requests_per_event = (
        settings.seed_requests_per_event if requests_per_event is None else requests_per_event
    )
    if user_count < 2:
        raise ValueError("user_count must be >= 2")
    if event_count < 0:
        raise ValueError("event_count must be >= 0")
    if requests_per_event < 0:
        raise ValueError("requests_per_event must be >= 0")
    if not 0 <= business_percentage <= 100:
        raise ValueError("business_percentage must be between 0 and 100")

    init_db()
    fake = Faker()
    stats = {"users": 0, "friend_requests": 0, "events": 0, "event_requests": 0, "notifications": 0}

    with database.get_session() as session:
        users = []
        for _ in range(user_count):
            account_type = (
                "business" if random.randint(1, 100) <= business_percentage else "personal"
            )
            users.append(
                create_user(
                    session,
                    name=fake.name(),
                    username=fake.unique.user_name(),
                    avatar=fake.image_url(),
                    account_type=account_type,
                )
            )
        stats["users"] = len(users)
        stats["friend_requests"] = _create_friendships(session, users)

        events = []
        for _ in range(event_count):
            organizer = random.choice(users)
            event = _create_event(session, fake, organizer)
            events.append(event)
            stats["events"] += 1
            stats["event_requests"] += _create_requests(
                session, event, users, requests_per_event
            )

        for user in users:
            if events and random.random() < 0.5:
                event = random.choice(events)
                actor = random.choice(users)
                create_notification(
                    session,
                    user_id=user.id,
                    type=random.choice(sorted(EVENT_NOTIFICATION_TYPES)),
                    payload={
                        "eventId": event.id,
                        "eventTitle": event.title,
                        "actorId": actor.id,
                        "actorName": actor.name,
                    },
                )
                stats["notifications"] += 1

    return stats


def _create_friendships(session: Session, users: list[User]) -> int:
    created = 0
    for index, user in enumerate(users):
        for other in users[index + 1 :]:
            if random.random() < 0.35:
                create_friend_request(
                    session,
                    from_user_id=user.id,
                    to_user_id=other.id,
                    status=random.choice(_friend_statuses),
                )
                created += 1
    return created


def _create_event(session: Session, fake: Faker, organizer: User) -> Event:
    start = utcnow() + timedelta(days=random.randint(-10, 30), hours=random.randint(0, 23))
    recurrence = random.choice(_recurrences)
    extra = {}
    if recurrence == "weekly":
        extra["recurring_days"] = sorted(random.sample(range(7), k=random.randint(1, 3)))
    elif recurrence == "monthly":
        extra["recurring_day_of_month"] = random.randint(1, 31)
    elif recurrence == "custom":
        extra["recurring_custom_dates"] = sorted(
            (start + timedelta(days=7 * week)).date().isoformat() for week in range(3)
        )
    return create_event(
        session,
        title=f"{fake.city()} {random.choice(_event_types)}",
        organizer_id=organizer.id,
        date=start.date().isoformat(),
        time=start.strftime("%H:%M"),
        description=fake.paragraph(),
        location=fake.address().replace("\n", ", "),
        max_participants=random.choice([None, None, 5, 10, 20]),
        recurring_type=recurrence,
        **extra,
    )


def _create_requests(
    session: Session, event: Event, users: list[User], requests_per_event: int
) -> int:
    candidates = [user for user in users if user.id != event.organizer_id]
    created = 0
    for user in random.sample(candidates, k=min(requests_per_event, len(candidates))):
        try:
            if random.random() < 0.5:
                send_invite(
                    session,
                    event_id=event.id,
                    from_user_id=event.organizer_id,
                    to_user_id=user.id,
                )
            else:
                send_join_request(session, event_id=event.id, user_id=user.id)
        except (InvalidRequest, EventFullError):
            continue
        created += 1
    return created
