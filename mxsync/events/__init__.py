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

from typing import Any

import attr
from immutabledict import immutabledict

from mxsync.api.constants import EventContentFields
from mxsync.api.errors import ContentShapeError, InvalidEventError
from mxsync.types import JsonDict, JsonMapping, StateKey
from mxsync.util.frozenutils import freeze, unfreeze

# Sentinel to tell a missing content key apart from an explicit null.
_MISSING = object()


@attr.s(slots=True, frozen=True, auto_attribs=True)
class Event:
    """An event received from a sync response.

    Events are immutable: `room_id` is not part of the wire format and is
    stamped on by creating the event with `from_dict(..., room_id=...)` or by
    `with_room_id`.

    Attributes:
        type: the event type, e.g. "m.room.message"
        sender: the user ID of the sender
        event_id: the event ID, if the homeserver included one
        room_id: the room the event belongs to
        state_key: the state key. Only state events have one.
        origin_server_ts: timestamp in milliseconds on the originating homeserver
        content: the event content, frozen
        unsigned: the unsigned data added by the homeserver, frozen
        redacts: for redactions, the ID of the redacted event
    """

    type: str
    sender: str = ""
    event_id: str = ""
    room_id: str = ""
    state_key: str | None = None
    origin_server_ts: int = 0
    content: JsonMapping = attr.ib(factory=immutabledict, converter=freeze)
    unsigned: JsonMapping = attr.ib(factory=immutabledict, converter=freeze)
    redacts: str | None = None

    @classmethod
    def from_dict(cls, event_dict: JsonMapping, room_id: str = "") -> "Event":
        """Build an event from its client-format JSON.

        Raises:
            InvalidEventError if the event has no type, or a known field has the
            wrong type.
        """
        event_type = event_dict.get("type")
        if not isinstance(event_type, str):
            raise InvalidEventError("Event has no 'type': %r" % (event_dict,))

        state_key = event_dict.get("state_key")
        if state_key is not None and not isinstance(state_key, str):
            raise InvalidEventError("Event 'state_key' is not a string")

        content = event_dict.get("content", {})
        if not isinstance(content, dict):
            raise InvalidEventError("Event 'content' is not an object")

        unsigned = event_dict.get("unsigned", {})
        if not isinstance(unsigned, dict):
            unsigned = {}

        return cls(
            type=event_type,
            sender=_str_or(event_dict.get("sender"), ""),
            event_id=_str_or(event_dict.get("event_id"), ""),
            room_id=room_id,
            state_key=state_key,
            origin_server_ts=_int_or(event_dict.get("origin_server_ts"), 0),
            content=content,
            unsigned=unsigned,
            redacts=_str_or(event_dict.get("redacts"), None),
        )

    def with_room_id(self, room_id: str) -> "Event":
        return attr.evolve(self, room_id=room_id)

    def is_state(self) -> bool:
        return self.state_key is not None

    def state_key_tuple(self) -> StateKey:
        """The key of this event in a room's state map.

        Raises:
            ValueError if this is not a state event.
        """
        if self.state_key is None:
            raise ValueError("%s event %r is not a state event" % (self.type, self))
        return self.type, self.state_key

    def to_dict(self) -> JsonDict:
        d: JsonDict = {
            "type": self.type,
            "sender": self.sender,
            "content": unfreeze(self.content),
            "origin_server_ts": self.origin_server_ts,
        }
        if self.event_id:
            d["event_id"] = self.event_id
        if self.room_id:
            d["room_id"] = self.room_id
        if self.state_key is not None:
            d["state_key"] = self.state_key
        if self.unsigned:
            d["unsigned"] = unfreeze(self.unsigned)
        if self.redacts is not None:
            d["redacts"] = self.redacts
        return d

    # Typed accessors for the content. Content is whatever the sender put
    # there, so we never assume its shape.

    def _get(self, key: str, expected: type | tuple[type, ...], name: str) -> Any:
        value = self.content.get(key, _MISSING)
        if value is _MISSING:
            raise ContentShapeError(key, name, None)
        # bools are ints, which is never what anyone reading a field wants.
        if isinstance(value, bool) and expected is int:
            raise ContentShapeError(key, name, value)
        if not isinstance(value, expected):
            raise ContentShapeError(key, name, value)
        return value

    def get_str(self, key: str) -> str:
        return self._get(key, str, "a string")

    def get_int(self, key: str) -> int:
        return self._get(key, int, "an integer")

    def get_bool(self, key: str) -> bool:
        return self._get(key, bool, "a boolean")

    def get_dict(self, key: str) -> JsonMapping:
        return self._get(key, immutabledict, "an object")

    def get_list(self, key: str) -> tuple[Any, ...]:
        return self._get(key, tuple, "an array")

    def _maybe_str(self, key: str) -> str | None:
        try:
            return self.get_str(key)
        except ContentShapeError:
            return None

    @property
    def membership(self) -> str | None:
        """The `membership` of an m.room.member event, or None if the content
        does not have a string membership."""
        return self._maybe_str(EventContentFields.MEMBERSHIP)

    @property
    def body(self) -> str | None:
        return self._maybe_str(EventContentFields.BODY)

    @property
    def msgtype(self) -> str | None:
        return self._maybe_str(EventContentFields.MSGTYPE)


def _str_or(value: Any, default: Any) -> Any:
    return value if isinstance(value, str) else default


def _int_or(value: Any, default: int) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return default
