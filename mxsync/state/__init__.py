#
# This file is licensed under the Affero General Public License (AGPL) version 3.
#
# Copyright (C) 2025 New Vector, Ltd
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as
# published by the Free Software Foundation, either version 3 of the
# License, or (at your option) any later version.
#
# See the GNU Affero General Public License for more details:
# <https://www.gnu.org/licenses/agpl-3.0.html>.
#
#

"""Client-side room state, as reduced from sync responses."""

import logging
from typing import Iterator

from mxsync.api.constants import EventContentFields, EventTypes, Membership
from mxsync.api.errors import ContentShapeError
from mxsync.events import Event
from mxsync.types import StateKey

logger = logging.getLogger(__name__)


class Room:
    """The current state of a single room.

    Attributes:
        room_id: the ID of the room
        state: the latest state event for each (event type, state key)
    """

    def __init__(self, room_id: str):
        self.room_id = room_id
        self.state: dict[StateKey, Event] = {}

    def __repr__(self) -> str:
        return "<Room %s (%d state events)>" % (self.room_id, len(self.state))

    def update_state(self, event: Event) -> None:
        """Merge a state event into the room state, replacing any existing event
        with the same type and state key.

        Raises:
            ValueError if the event has no state key.
        """
        self.state[event.state_key_tuple()] = event

    def get_state_event(self, event_type: str, state_key: str = "") -> Event | None:
        return self.state.get((event_type, state_key))

    def get_membership_state(self, user_id: str) -> str:
        """Returns the membership of the given user, defaulting to "leave" if
        we have no (usable) m.room.member event for them."""
        event = self.get_state_event(EventTypes.Member, user_id)
        if event is None or event.membership is None:
            return Membership.LEAVE
        return event.membership

    def get_display_name(self, user_id: str) -> str:
        """Returns the display name of the given user in this room, or their
        user ID if they have none."""
        event = self.get_state_event(EventTypes.Member, user_id)
        if event is None:
            return user_id
        try:
            display_name = event.get_str(EventContentFields.DISPLAY_NAME)
        except ContentShapeError:
            return user_id
        return display_name or user_id

    def get_name(self) -> str:
        """A human-readable name: the room name if set, else the canonical
        alias, else the room ID."""
        for event_type, key in (
            (EventTypes.Name, EventContentFields.ROOM_NAME),
            (EventTypes.CanonicalAlias, EventContentFields.ALIAS),
        ):
            event = self.get_state_event(event_type)
            if event is None:
                continue
            try:
                value = event.get_str(key)
            except ContentShapeError:
                continue
            if value:
                return value
        return self.room_id


class RoomTable:
    """The rooms known to a single syncer, created lazily as they are referenced.

    Rooms are never removed: leaving a room does not drop it from the table.

    Not thread-safe. Must only be mutated from the task driving
    `Syncer.process_response`.
    """

    def __init__(self) -> None:
        self._rooms: dict[str, Room] = {}

    def get_or_create(self, room_id: str) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            logger.debug("Tracking new room %s", room_id)
            room = Room(room_id)
            self._rooms[room_id] = room
        return room

    def get(self, room_id: str) -> Room | None:
        return self._rooms.get(room_id)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def __iter__(self) -> Iterator[Room]:
        return iter(self._rooms.values())
