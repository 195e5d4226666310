"""Immutable collection bundles that every resolver and classifier runs against."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from functools import cached_property

from .models import Event, EventProfile, EventRequest, FriendRequest, Notification, User


@dataclass(frozen=True)
class Snapshot:
    """One consistent read of the store.

    ``friendships`` maps a user id to the ids of their accepted friends. When
    omitted it is derived from accepted friend requests, treating each one as
    an undirected edge.
    """

    users: Sequence[User] = ()
    events: Sequence[Event] = ()
    event_profiles: Sequence[EventProfile] = ()
    event_requests: Sequence[EventRequest] = ()
    friend_requests: Sequence[FriendRequest] = ()
    notifications: Sequence[Notification] = ()
    friendships: Mapping[str, frozenset[str]] | None = field(default=None)

    @cached_property
    def _events_by_id(self) -> dict[str, Event]:
        return {event.id: event for event in self.events}

    @cached_property
    def _users_by_id(self) -> dict[str, User]:
        return {user.id: user for user in self.users}

    @cached_property
    def _profiles_by_event(self) -> dict[str, EventProfile]:
        return {profile.event_id: profile for profile in self.event_profiles}

    @cached_property
    def _friend_graph(self) -> dict[str, frozenset[str]]:
        if self.friendships is not None:
            return {key: frozenset(value) for key, value in self.friendships.items()}
        graph: dict[str, set[str]] = {}
        for request in self.friend_requests:
            if request.status != "accepted":
                continue
            graph.setdefault(request.from_user_id, set()).add(request.to_user_id)
            graph.setdefault(request.to_user_id, set()).add(request.from_user_id)
        return {key: frozenset(value) for key, value in graph.items()}

    def find_event(self, event_id: str | None) -> Event | None:
        if not event_id:
            return None
        return self._events_by_id.get(event_id)

    def user(self, user_id: str | None) -> User | None:
        if not user_id:
            return None
        return self._users_by_id.get(user_id)

    def profile_for(self, event_id: str | None) -> EventProfile | None:
        if not event_id:
            return None
        return self._profiles_by_event.get(event_id)

    def friend_ids(self, user_id: str | None) -> frozenset[str]:
        if not user_id:
            return frozenset()
        return self._friend_graph.get(user_id, frozenset())

    def friends_of(self, user_id: str | None) -> list[User]:
        """Friends of ``user_id`` that the user directory knows about."""
        return [
            self._users_by_id[friend_id]
            for friend_id in sorted(self.friend_ids(user_id))
            if friend_id in self._users_by_id
        ]

    def is_business(self, user_id: str | None) -> bool:
        user = self.user(user_id)
        return bool(user and user.account_type == "business")
