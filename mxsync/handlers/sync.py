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
import abc
import logging
from typing import Any, Iterable

from twisted.internet import defer

from mxsync.api.constants import INITIAL_SYNC_TOKEN, EventTypes, Membership
from mxsync.api.errors import SyncProcessingError
from mxsync.events import Event
from mxsync.handlers.dispatcher import EventDispatcher, EventListener
from mxsync.metrics import process_response_timer, rooms_suppressed_counter
from mxsync.state import Room, RoomTable
from mxsync.storage import FilterStore, NextBatchStore
from mxsync.types.rest.client import SyncResponse
from mxsync.util import Duration

logger = logging.getLogger(__name__)

# How long to wait before retrying a failed sync, by default.
DEFAULT_RETRY_DELAY_MS = 10 * Duration.SECOND_MS


class Syncer(metaclass=abc.ABCMeta):
    """The interface that the `SyncPoller` drives.

    Implement this to customise how sync responses are handled, or subclass
    `DefaultSyncer` to replace only parts of it.
    """

    @abc.abstractmethod
    def process_response(self, response: SyncResponse, since: str) -> None:
        """Process a /sync response.

        Args:
            response: the response. May be modified.
            since: the `since` token the response was fetched with. The empty
                string means this was the very first sync.

        Raises:
            SyncProcessingError: processing failed, and syncing must stop
                permanently.
        """

    @property
    @abc.abstractmethod
    def next_batch_store(self) -> NextBatchStore:
        """The store used to load and save the `next_batch` token."""

    @property
    @abc.abstractmethod
    def filter_store(self) -> FilterStore:
        """The store used to load and save the filter ID."""

    @abc.abstractmethod
    def on_failed_sync(self, response: SyncResponse | None, error: Exception) -> float:
        """Called when a sync request fails.

        Args:
            response: the last response successfully received, if any.
            error: the error the request failed with.

        Returns:
            How long to wait, in seconds, before retrying.

        Raises:
            Any exception to stop syncing permanently. The poller fails with it.
        """


class DefaultSyncer(Syncer):
    """Processes sync responses in a way suitable for bots: a stream of
    unrepeated events.

    Keeps the state of every room the user is joined to or invited to, and
    passes every new event to the listeners registered with `on_event_type`.
    Events from the very first sync, and the backlog returned when (re)joining a
    room, are not treated as new.

    Args:
        user_id: the syncing user
        next_batch_store: where to persist the sync position
        filter_store: where to persist the sync filter ID
        retry_delay_ms: how long `on_failed_sync` waits before a retry
    """

    def __init__(
        self,
        user_id: str,
        next_batch_store: NextBatchStore,
        filter_store: FilterStore,
        retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS,
    ):
        self.user_id = user_id
        self.rooms = RoomTable()
        self._next_batch_store = next_batch_store
        self._filter_store = filter_store
        self._retry_delay_ms = retry_delay_ms
        self._dispatcher = EventDispatcher()

    @property
    def next_batch_store(self) -> NextBatchStore:
        return self._next_batch_store

    @property
    def filter_store(self) -> FilterStore:
        return self._filter_store

    def on_event_type(self, event_type: str, callback: EventListener) -> None:
        """Register a callback to be informed of new events of the given type.

        Callbacks are called in registration order, synchronously, from the
        sync loop. There are no duplicate checks: registering a callback twice
        means it is called twice per event.

        Callbacks must not block, and must not modify `rooms`.
        """
        self._dispatcher.on_event_type(event_type, callback)

    def process_response(self, response: SyncResponse, since: str) -> None:
        if not self._should_process_response(since):
            return

        try:
            with process_response_timer.time():
                self._suppress_rejoined_rooms(response)
                self._process_rooms(response)
        except defer.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "Failed to process sync response for %s since=%s", self.user_id, since
            )
            raise SyncProcessingError(self.user_id, since, e) from e

    def on_failed_sync(self, response: SyncResponse | None, error: Exception) -> float:
        """Always retries, after a fixed delay (10 seconds unless configured)."""
        return self._retry_delay_ms / Duration.SECOND_MS

    def _should_process_response(self, since: str) -> bool:
        if since == INITIAL_SYNC_TOKEN:
            # The first sync returns the current state of every room rather than
            # what has changed, so none of it is new.
            logger.debug("Ignoring initial sync response for %s", self.user_id)
            return False
        return True

    def _suppress_rejoined_rooms(self, response: SyncResponse) -> None:
        """Remove rooms that the user has just joined from the response.

        /sync returns the most recent messages for a room as soon as you join
        it. They may already have been processed (if the user left and rejoined
        the room), so we drop the room entirely if the user's latest membership
        in its timeline is "join".
        """
        rooms = response.rooms
        for room_id, room_data in list(rooms.join.items()):
            membership = self._latest_own_membership(room_data.timeline.events)
            if membership != Membership.JOIN:
                continue

            logger.debug(
                "Skipping room %s: %s has just joined it", room_id, self.user_id
            )
            rooms_suppressed_counter.inc()
            rooms.join.pop(room_id, None)
            rooms.invite.pop(room_id, None)

    def _latest_own_membership(self, timeline: list[dict[str, Any]]) -> str | None:
        """Scan the timeline backwards for our own m.room.member event, returning
        the membership of the first one with a string membership."""
        for raw_event in reversed(timeline):
            event = Event.from_dict(raw_event)
            if event.type != EventTypes.Member or event.state_key != self.user_id:
                continue
            membership = event.membership
            if membership is None:
                # Not a shape we understand: not applicable.
                continue
            return membership
        return None

    def _process_rooms(self, response: SyncResponse) -> None:
        for room_id, joined in response.rooms.join.items():
            room = self.rooms.get_or_create(room_id)
            self._process_state(room, joined.state.events)
            for raw_event in joined.timeline.events:
                self._dispatcher.notify(Event.from_dict(raw_event, room_id=room_id))

        for room_id, invited in response.rooms.invite.items():
            room = self.rooms.get_or_create(room_id)
            self._process_state(room, invited.invite_state.events)

    def _process_state(self, room: Room, raw_events: Iterable[dict[str, Any]]) -> None:
        for raw_event in raw_events:
            event = Event.from_dict(raw_event, room_id=room.room_id)
            room.update_state(event)
            self._dispatcher.notify(event)
