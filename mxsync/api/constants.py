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

"""Contains constants from the Matrix client-server API."""

from typing import Final

# Client-server API prefix used for /sync and filter requests.
CLIENT_API_PREFIX: Final = "/_matrix/client/r0"

# The token used for a sync which has no history. The homeserver replies to such
# a sync with a full-state snapshot rather than an incremental delta.
INITIAL_SYNC_TOKEN: Final = ""


class Membership:
    """Represents the membership states of a user in a room."""

    INVITE: Final = "invite"
    JOIN: Final = "join"
    KNOCK: Final = "knock"
    LEAVE: Final = "leave"
    BAN: Final = "ban"
    LIST: Final = frozenset((INVITE, JOIN, KNOCK, LEAVE, BAN))


class EventTypes:
    Member: Final = "m.room.member"
    Create: Final = "m.room.create"
    JoinRules: Final = "m.room.join_rules"
    PowerLevels: Final = "m.room.power_levels"
    CanonicalAlias: Final = "m.room.canonical_alias"
    RoomAvatar: Final = "m.room.avatar"

    Message: Final = "m.room.message"
    Topic: Final = "m.room.topic"
    Name: Final = "m.room.name"

    Redaction: Final = "m.room.redaction"
    Reaction: Final = "m.reaction"


class EventContentFields:
    """Fields found in events' content, regardless of type."""

    MEMBERSHIP: Final = "membership"
    DISPLAY_NAME: Final = "displayname"
    BODY: Final = "body"
    MSGTYPE: Final = "msgtype"
    ROOM_NAME: Final = "name"
    ALIAS: Final = "alias"
