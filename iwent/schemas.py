"""Pydantic models for derived, non-persisted views."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

Status = Literal["pending", "accepted", "rejected"]

ExclusionReason = Literal[
    "event_not_found",
    "inviter_not_organizer",
    "not_friends",
    "pending_friend_request",
    "already_organizer",
    "already_member",
    "event_not_upcoming",
    "status_not_visible",
    "self_request",
    "rejected",
    "duplicate",
]


class FriendRequestItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["friend"] = "friend"
    id: str
    user_id: str = Field(..., description="The other side of the friend request")
    status: Status
    created_at: datetime | None = None


class EventRequestItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["event"] = "event"
    id: str
    event_id: str = Field(..., min_length=1)
    user_id: str | None = Field(
        None, description="Requester, invitee or organizer depending on direction"
    )
    is_invite: bool = False
    is_business_account: bool | None = None
    status: Status
    created_at: datetime | None = None


ClassifiedRequest = Annotated[
    Union[FriendRequestItem, EventRequestItem], Field(discriminator="type")
]


class Exclusion(BaseModel):
    model_config = ConfigDict(frozen=True)

    candidate_id: str
    kind: Literal["friend", "event"]
    reason: ExclusionReason


class Classification(BaseModel):
    included: list[ClassifiedRequest] = Field(default_factory=list)
    excluded: list[Exclusion] = Field(default_factory=list)

    def ids(self) -> list[str]:
        return [item.id for item in self.included]


class InboxViews(BaseModel):
    incoming: Classification
    outgoing: Classification


class NotificationItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: str
    payload: dict = Field(default_factory=dict)
    created_at: datetime | None = None
    read_at: datetime | None = None

    @property
    def is_read(self) -> bool:
        return self.read_at is not None


class NotificationEntry(BaseModel):
    kind: Literal["notification"] = "notification"
    notification: NotificationItem
    time_ago: str = ""


class RequestEntry(BaseModel):
    kind: Literal["request"] = "request"
    request: ClassifiedRequest
    time_ago: str = ""


FeedEntry = Annotated[Union[NotificationEntry, RequestEntry], Field(discriminator="kind")]


class PreviewContext(BaseModel):
    """Where the caller should go to review an invite before committing."""

    model_config = ConfigDict(frozen=True)

    event_id: str
    invite_id: str
    starts_at: datetime | None = None
    route: str


class DispatchResult(BaseModel):
    request_id: str
    action: Literal["accept", "decline", "confirm"]
    outcome: Literal["accepted", "rejected", "previewing", "stale"]
    preview: PreviewContext | None = None
