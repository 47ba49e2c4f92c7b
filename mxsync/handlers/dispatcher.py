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
import logging
from typing import Callable

from mxsync.events import Event
from mxsync.metrics import events_dispatched_counter

logger = logging.getLogger(__name__)

EventListener = Callable[[Event], object]


class EventDispatcher:
    """Fans events out to the listeners registered for their type.

    Listeners are called in the order they were registered. Registering the
    same callback twice means it is called twice.

    Unlike a fire-and-forget signal, exceptions raised by a listener are not
    caught here: they abort the dispatch and propagate to the caller, which is
    expected to stop processing.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[EventListener]] = {}

    def on_event_type(self, event_type: str, callback: EventListener) -> None:
        """Register a callback to be called with every new event of the given type.

        There are no duplicate checks.
        """
        self._listeners.setdefault(event_type, []).append(callback)

    def listeners_for(self, event_type: str) -> list[EventListener]:
        return list(self._listeners.get(event_type, ()))

    def notify(self, event: Event) -> None:
        listeners = self._listeners.get(event.type)
        if not listeners:
            return

        events_dispatched_counter.labels(type=event.type).inc()
        for listener in listeners:
            logger.debug(
                "Dispatching %s event %s in %s to %r",
                event.type,
                event.event_id,
                event.room_id,
                listener,
            )
            listener(event)
