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

"""Models of the bodies returned by the client-server API."""

from pydantic import Field, StrictBool, StrictStr

from mxsync.types import JsonDict
from mxsync.util.pydantic_models import ParseModel


class EventList(ParseModel):
    """A list of raw (client-format) events, as found under `state`,
    `timeline`, `invite_state` etc."""

    events: list[JsonDict] = Field(default_factory=list)


class Timeline(EventList):
    limited: StrictBool = False
    prev_batch: StrictStr | None = None


class JoinedRoomSync(ParseModel):
    state: EventList = Field(default_factory=EventList)
    timeline: Timeline = Field(default_factory=Timeline)
    account_data: EventList = Field(default_factory=EventList)
    ephemeral: EventList = Field(default_factory=EventList)


class InvitedRoomSync(ParseModel):
    # Stripped state: only enough to render an invite.
    invite_state: EventList = Field(default_factory=EventList)


class LeftRoomSync(ParseModel):
    state: EventList = Field(default_factory=EventList)
    timeline: Timeline = Field(default_factory=Timeline)


class RoomsSync(ParseModel):
    """
    Attributes:
        join: room ID to the updates for each room the user has joined. The
            order of the homeserver's response is preserved.
        invite: room ID to the stripped state of each room the user has been
            invited to.
        leave: room ID to the final updates for each room the user has left.
    """

    join: dict[StrictStr, JoinedRoomSync] = Field(default_factory=dict)
    invite: dict[StrictStr, InvitedRoomSync] = Field(default_factory=dict)
    leave: dict[StrictStr, LeftRoomSync] = Field(default_factory=dict)


class SyncResponse(ParseModel):
    """
    The body of a `/sync` response.

    Responses are consumed once, by `Syncer.process_response`, which may
    remove rooms from `rooms` while filtering out replayed events.

    Attributes:
        next_batch: the token to pass as `since` to fetch the next batch. Required:
            a response without one is rejected rather than processed.
        rooms: updates to rooms.
        presence: presence updates for other users.
        account_data: global account data for the user.
    """

    next_batch: StrictStr = Field(min_length=1)
    rooms: RoomsSync = Field(default_factory=RoomsSync)
    presence: EventList = Field(default_factory=EventList)
    account_data: EventList = Field(default_factory=EventList)
