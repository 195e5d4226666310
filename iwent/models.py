"""SQLAlchemy models for iwent."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

from .utils import utcnow

Base = declarative_base()

REQUEST_STATUSES = ("pending", "accepted", "rejected")
EVENT_REQUEST_TYPES = ("join", "invite")
RECURRING_TYPES = ("daily", "weekly", "monthly", "custom")
ACCOUNT_TYPES = ("personal", "business")


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return utcnow()


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(120), nullable=False)
    username = Column(String(64), nullable=True, unique=True)
    avatar = Column(String(512), nullable=True)
    account_type = Column(String(16), nullable=False, default="personal")
    created_at = Column(DateTime, default=_now, nullable=False)

    @property
    def is_business(self) -> bool:
        return self.account_type == "business"


class Event(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=_uuid)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    organizer_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    # "YYYY-MM-DD" and "HH:MM"; for recurring events ``date`` is the anchor.
    date = Column(String(10), nullable=True)
    time = Column(String(5), nullable=True)
    max_participants = Column(Integer, nullable=True)
    participants_data = Column(JSON, nullable=True)
    participants_list = Column(JSON, nullable=True)
    is_recurring = Column(Boolean, default=False, nullable=False)
    recurring_type = Column(String(16), nullable=True)
    recurring_days = Column(JSON, nullable=True)
    recurring_day_of_month = Column(Integer, nullable=True)
    recurring_custom_dates = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)


class EventProfile(Base):
    __tablename__ = "event_profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(String(36), nullable=False, unique=True)
    name = Column(String(255), nullable=False, default="")
    date = Column(String(10), nullable=True)
    time = Column(String(5), nullable=True)
    participants = Column(JSON, nullable=False, default=list)
    is_completed = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)


class EventRequest(Base):
    """Event membership row: a join request or an organizer invite."""

    __tablename__ = "event_requests"

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(String(36), nullable=False, index=True)
    type = Column(String(16), nullable=True)
    from_user_id = Column(String(36), nullable=True)
    to_user_id = Column(String(36), nullable=True)
    # Legacy rows written before ``type``/``from_user_id`` existed.
    user_id = Column(String(36), nullable=True)
    status = Column(String(16), nullable=False, default="pending")
    previewed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)


class FriendRequest(Base):
    __tablename__ = "friend_requests"

    id = Column(String(36), primary_key=True, default=_uuid)
    from_user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    to_user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    status = Column(String(16), nullable=False, default="pending")
    created_at = Column(DateTime, default=_now, nullable=False)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    type = Column(String(32), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)
