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


from twisted.internet import defer
from twisted.internet.interfaces import IReactorTime


class Clock:
    """
    A Clock wraps a Twisted reactor and provides utilities on top of it.

    This clock should be used in place of calls to the base reactor wherever
    `DelayedCall`s are made (such as when calling `reactor.callLater`), so that
    tests can drive time with a `MemoryReactorClock`.

    Args:
        reactor: The Twisted reactor to use.
    """

    _reactor: IReactorTime

    def __init__(self, reactor: IReactorTime) -> None:
        self._reactor = reactor

    def sleep(self, seconds: float) -> "defer.Deferred[None]":
        """Returns a Deferred which fires after `seconds`.

        Cancelling the returned Deferred cancels the underlying delayed call, so
        nothing is left scheduled on the reactor.
        """

        def _cancel(_: "defer.Deferred[None]") -> None:
            if call.active():
                call.cancel()

        d: defer.Deferred[None] = defer.Deferred(_cancel)
        call = self._reactor.callLater(seconds, d.callback, None)
        return d
