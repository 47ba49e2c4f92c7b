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
from unittest.mock import Mock

from mxsync.api.constants import EventTypes
from mxsync.api.errors import InvalidEventError, SyncProcessingError
from mxsync.events import Event
from mxsync.handlers.sync import DefaultSyncer
from mxsync.storage import InMemoryFilterStore, InMemoryNextBatchStore
from mxsync.types import JsonDict
from mxsync.types.rest.client import SyncResponse

from tests import unittest

USER_ID = "@bot:example.org"
ROOM_ID = "!r:example.org"


def _member(user_id: str, membership: Any) -> JsonDict:
    return {
        "type": EventTypes.Member,
        "state_key": user_id,
        "sender": user_id,
        "content": {"membership": membership},
    }


def _message(body: str) -> JsonDict:
    return {
        "type": EventTypes.Message,
        "sender": "@alice:example.org",
        "content": {"msgtype": "m.text", "body": body},
    }


def _name(name: str) -> JsonDict:
    return {
        "type": EventTypes.Name,
        "state_key": "",
        "sender": "@alice:example.org",
        "content": {"name": name},
    }


def _response(
    join: dict[str, JsonDict] | None = None,
    invite: dict[str, JsonDict] | None = None,
    next_batch: str = "s2",
) -> SyncResponse:
    return SyncResponse.model_validate(
        {
            "next_batch": next_batch,
            "rooms": {"join": join or {}, "invite": invite or {}},
        }
    )


def _joined(
    state: list[JsonDict] | None = None, timeline: list[JsonDict] | None = None
) -> JsonDict:
    return {
        "state": {"events": state or []},
        "timeline": {"events": timeline or []},
    }


class DefaultSyncerTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.syncer = DefaultSyncer(
            USER_ID,
            next_batch_store=InMemoryNextBatchStore(),
            filter_store=InMemoryFilterStore({}),
        )
        self.seen: list[Event] = []
        for event_type in (EventTypes.Name, EventTypes.Message, EventTypes.Member):
            self.syncer.on_event_type(event_type, self.seen.append)

    def test_initial_sync_is_ignored(self) -> None:
        """The response to the first sync changes nothing and dispatches nothing."""
        response = _response(join={ROOM_ID: _joined(state=[_name("Test")])})

        self.syncer.process_response(response, "")

        self.assertEqual(len(self.syncer.rooms), 0)
        self.assertEqual(self.seen, [])

    def test_state_then_timeline(self) -> None:
        response = _response(
            join={ROOM_ID: _joined(state=[_name("Test")], timeline=[_message("hi")])}
        )

        self.syncer.process_response(response, "s1")

        room = self.syncer.rooms.get(ROOM_ID)
        assert room is not None
        name_event = room.get_state_event(EventTypes.Name)
        assert name_event is not None
        self.assertEqual(name_event.content["name"], "Test")
        self.assertEqual(name_event.room_id, ROOM_ID)

        self.assertEqual(
            [e.type for e in self.seen], [EventTypes.Name, EventTypes.Message]
        )
        self.assertEqual(self.seen[1].body, "hi")
        self.assertEqual(self.seen[1].room_id, ROOM_ID)

    def test_timeline_events_are_not_state(self) -> None:
        response = _response(join={ROOM_ID: _joined(timeline=[_message("hi")])})

        self.syncer.process_response(response, "s1")

        room = self.syncer.rooms.get(ROOM_ID)
        assert room is not None
        self.assertEqual(room.state, {})

    def test_dispatch_order(self) -> None:
        """All state events are dispatched, in order, before the timeline."""
        state = [_name("one"), _member("@alice:example.org", "join"), _name("two")]
        timeline = [_message("a"), _message("b")]
        response = _response(join={ROOM_ID: _joined(state=state, timeline=timeline)})

        self.syncer.process_response(response, "s1")

        self.assertEqual(
            [(e.type, e.content.get("name") or e.body) for e in self.seen],
            [
                (EventTypes.Name, "one"),
                (EventTypes.Member, None),
                (EventTypes.Name, "two"),
                (EventTypes.Message, "a"),
                (EventTypes.Message, "b"),
            ],
        )

    def test_state_last_write_wins(self) -> None:
        response = _response(
            join={ROOM_ID: _joined(state=[_name("first"), _name("second")])}
        )

        self.syncer.process_response(response, "s1")

        room = self.syncer.rooms.get(ROOM_ID)
        assert room is not None
        self.assertEqual(len(room.state), 1)
        self.assertEqual(room.get_name(), "second")

    def test_unknown_event_type(self) -> None:
        """Events nobody listens for are silently skipped."""
        listener = Mock()
        self.syncer.on_event_type("m.room.topic", listener)
        response = _response(
            join={
                ROOM_ID: _joined(
                    timeline=[{"type": "org.example.custom", "content": {}}]
                )
            }
        )

        self.syncer.process_response(response, "s1")

        listener.assert_not_called()
        self.assertEqual(self.seen, [])
        self.assertIn(ROOM_ID, self.syncer.rooms)

    def test_invited_rooms(self) -> None:
        invite_state = [_name("Invite"), _member(USER_ID, "invite")]
        response = _response(
            invite={"!i:example.org": {"invite_state": {"events": invite_state}}}
        )

        self.syncer.process_response(response, "s1")

        room = self.syncer.rooms.get("!i:example.org")
        assert room is not None
        self.assertEqual(room.get_name(), "Invite")
        self.assertEqual(room.get_membership_state(USER_ID), "invite")
        self.assertEqual(
            [e.type for e in self.seen], [EventTypes.Name, EventTypes.Member]
        )

    def test_rejoined_room_is_skipped(self) -> None:
        """A room the user has just joined is dropped, along with any invite."""
        response = _response(
            join={
                ROOM_ID: _joined(
                    state=[_name("Test")],
                    timeline=[_message("old"), _member(USER_ID, "join")],
                ),
                "!other:example.org": _joined(timeline=[_message("new")]),
            },
            invite={ROOM_ID: {"invite_state": {"events": [_name("Test")]}}},
        )

        self.syncer.process_response(response, "s1")

        self.assertNotIn(ROOM_ID, self.syncer.rooms)
        self.assertNotIn(ROOM_ID, response.rooms.join)
        self.assertNotIn(ROOM_ID, response.rooms.invite)
        self.assertEqual([e.body for e in self.seen], ["new"])
        self.assertEqual(self.seen[0].room_id, "!other:example.org")

    def test_latest_own_membership_decides(self) -> None:
        """Only the most recent membership of the syncing user matters."""
        # join then leave: the leave is the latest, so the room is processed.
        response = _response(
            join={
                ROOM_ID: _joined(
                    timeline=[
                        _member(USER_ID, "join"),
                        _message("hi"),
                        _member(USER_ID, "leave"),
                    ]
                )
            }
        )

        self.syncer.process_response(response, "s1")

        self.assertIn(ROOM_ID, self.syncer.rooms)
        self.assertEqual(
            [e.type for e in self.seen],
            [EventTypes.Member, EventTypes.Message, EventTypes.Member],
        )

    def test_leave_then_rejoin_is_skipped(self) -> None:
        response = _response(
            join={
                ROOM_ID: _joined(
                    timeline=[
                        _member(USER_ID, "leave"),
                        _message("backlog"),
                        _member(USER_ID, "join"),
                    ]
                )
            }
        )

        self.syncer.process_response(response, "s1")

        self.assertNotIn(ROOM_ID, self.syncer.rooms)
        self.assertEqual(self.seen, [])

    def test_other_users_membership_is_ignored(self) -> None:
        response = _response(
            join={
                ROOM_ID: _joined(
                    timeline=[_member("@alice:example.org", "join"), _message("hi")]
                )
            }
        )

        self.syncer.process_response(response, "s1")

        self.assertIn(ROOM_ID, self.syncer.rooms)
        self.assertEqual(len(self.seen), 2)

    def test_malformed_membership_is_skipped(self) -> None:
        """A membership that is not a string is passed over by the scan."""
        response = _response(
            join={
                ROOM_ID: _joined(
                    timeline=[_member(USER_ID, "join"), _member(USER_ID, 42)]
                )
            }
        )

        self.syncer.process_response(response, "s1")

        self.assertNotIn(ROOM_ID, self.syncer.rooms)
        self.assertEqual(self.seen, [])

    def test_same_response_twice(self) -> None:
        """Replaying a response that contains our own join dispatches nothing."""
        raw = {
            "next_batch": "s2",
            "rooms": {
                "join": {
                    ROOM_ID: _joined(
                        state=[_name("Test")],
                        timeline=[_message("hi"), _member(USER_ID, "join")],
                    )
                }
            },
        }

        self.syncer.process_response(SyncResponse.model_validate(raw), "s1")
        self.syncer.process_response(SyncResponse.model_validate(raw), "s2")

        self.assertEqual(self.seen, [])
        self.assertEqual(len(self.syncer.rooms), 0)

    def test_listener_failure(self) -> None:
        """A failing listener stops processing of the response and is reported."""
        error = ValueError("bad listener")
        failing = Mock(side_effect=error)
        after = Mock()
        syncer = DefaultSyncer(
            USER_ID,
            next_batch_store=InMemoryNextBatchStore(),
            filter_store=InMemoryFilterStore({}),
        )
        syncer.on_event_type(EventTypes.Message, failing)
        syncer.on_event_type(EventTypes.Message, after)

        response = _response(
            join={ROOM_ID: _joined(timeline=[_message("a"), _message("b")])}
        )
        with self.assertRaises(SyncProcessingError) as cm:
            syncer.process_response(response, "s1")

        self.assertObjectHasAttributes(
            {"user_id": USER_ID, "since": "s1", "cause": error}, cm.exception
        )
        self.assertIn("bad listener", str(cm.exception))
        self.assertIn(USER_ID, str(cm.exception))
        self.assertEqual(failing.call_count, 1)
        after.assert_not_called()

    def test_malformed_event(self) -> None:
        response = _response(
            join={ROOM_ID: _joined(state=[{"state_key": "", "content": {}}])}
        )

        with self.assertRaises(SyncProcessingError) as cm:
            self.syncer.process_response(response, "s1")

        self.assertIsInstance(cm.exception.cause, InvalidEventError)

    def test_state_event_without_state_key(self) -> None:
        response = _response(join={ROOM_ID: _joined(state=[_message("not state")])})

        with self.assertRaises(SyncProcessingError) as cm:
            self.syncer.process_response(response, "s1")

        self.assertIsInstance(cm.exception.cause, ValueError)

    def test_on_failed_sync(self) -> None:
        """By default, failed syncs are always retried after ten seconds."""
        self.assertEqual(self.syncer.on_failed_sync(None, Exception("boom")), 10.0)

        syncer = DefaultSyncer(
            USER_ID,
            next_batch_store=InMemoryNextBatchStore(),
            filter_store=InMemoryFilterStore({}),
            retry_delay_ms=1500,
        )
        self.assertEqual(syncer.on_failed_sync(_response(), Exception("boom")), 1.5)
