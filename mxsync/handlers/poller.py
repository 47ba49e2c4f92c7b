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
from typing import Awaitable, TypeVar

from typing_extensions import Protocol

from twisted.internet import defer

from mxsync.handlers.sync import Syncer
from mxsync.metrics import sync_requests_counter
from mxsync.types import JsonDict
from mxsync.types.rest.client import SyncResponse
from mxsync.util.clock import Clock

logger = logging.getLogger(__name__)

T = TypeVar("T")

# How long the homeserver should hold a /sync request open, by default.
DEFAULT_SYNC_TIMEOUT_MS = 30000


class SyncTransport(Protocol):
    """Performs the requests the sync loop needs against the homeserver."""

    def sync(self, since: str, filter_id: str, timeout_ms: int) -> Awaitable[SyncResponse]:
        """Long-poll /sync.

        Args:
            since: the token to sync from, or the empty string for an initial sync.
            filter_id: the filter to apply, or the empty string for none.
            timeout_ms: how long the homeserver may wait for new events.
        """
        ...

    def create_filter(self, user_id: str, filter_json: JsonDict) -> Awaitable[str]:
        """Upload a filter definition, returning the new filter ID."""
        ...


class _Stopped(Exception):
    """Raised inside the loop when `stop` cancels what it was waiting on."""


class SyncPoller:
    """Drives a `Syncer` with repeated long-poll /sync requests.

    Each iteration fetches a response with the last `next_batch` token, hands
    it to `Syncer.process_response` along with the token it was fetched with,
    and then persists the new token.

    Failed requests are passed to `Syncer.on_failed_sync`, which decides how
    long to wait before retrying, or raises to stop syncing. A failure in
    `process_response` stops syncing immediately: it is not retried.

    Only one loop may run at a time.

    Args:
        clock: the clock to schedule retries with
        transport: used to make requests to the homeserver
        syncer: processes the responses
        user_id: the syncing user, used as the key for the stores
        timeout_ms: the long-poll timeout to ask the homeserver for
    """

    def __init__(
        self,
        clock: Clock,
        transport: SyncTransport,
        syncer: Syncer,
        user_id: str,
        timeout_ms: int = DEFAULT_SYNC_TIMEOUT_MS,
    ):
        self._clock = clock
        self._transport = transport
        self._syncer = syncer
        self._user_id = user_id
        self._timeout_ms = timeout_ms

        self._running = False
        self._stopping = False

        # The request or retry delay that the loop is currently waiting on.
        self._waiting_on: defer.Deferred | None = None

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> "defer.Deferred[None]":
        """Start syncing.

        Returns:
            A Deferred which resolves with None once `stop` has been called and
            the loop has finished, or fails with the error that stopped it.
        """
        if self._running:
            raise RuntimeError("Sync loop for %s is already running" % self._user_id)

        self._running = True
        self._stopping = False
        return defer.ensureDeferred(self._run())

    def stop(self) -> None:
        """Stop syncing, aborting any in-flight request without processing it.

        Does nothing if the loop is not running.
        """
        if not self._running or self._stopping:
            return

        logger.info("Stopping sync loop for %s", self._user_id)
        self._stopping = True
        if self._waiting_on is not None:
            self._waiting_on.cancel()

    async def _run(self) -> None:
        try:
            await self._sync_loop()
        except _Stopped:
            pass
        finally:
            self._running = False
            self._waiting_on = None
        logger.info("Sync loop for %s stopped", self._user_id)

    async def _sync_loop(self) -> None:
        next_batch_store = self._syncer.next_batch_store
        filter_store = self._syncer.filter_store

        since = next_batch_store.load_next_batch(self._user_id)
        filter_id = filter_store.load_filter_id(self._user_id)
        last_response: SyncResponse | None = None

        logger.info(
            "Starting sync loop for %s since=%r filter=%r",
            self._user_id,
            since,
            filter_id,
        )

        while not self._stopping:
            try:
                if not filter_id:
                    filter_id = await self._create_filter()
                    filter_store.save_filter_id(self._user_id, filter_id)

                response = await self._wait_for(
                    self._transport.sync(since, filter_id, self._timeout_ms)
                )
            except (_Stopped, defer.CancelledError):
                raise
            except Exception as e:
                sync_requests_counter.labels(outcome="error").inc()
                # Raises to stop syncing.
                delay = self._syncer.on_failed_sync(last_response, e)
                logger.warning(
                    "Sync for %s failed (%s); retrying in %ss",
                    self._user_id,
                    e,
                    delay,
                )
                await self._wait_for(self._clock.sleep(delay))
                continue

            sync_requests_counter.labels(outcome="success").inc()
            last_response = response

            # Raises SyncProcessingError to stop syncing.
            self._syncer.process_response(response, since)

            since = response.next_batch
            next_batch_store.save_next_batch(self._user_id, since)

    async def _create_filter(self) -> str:
        filter_json = self._syncer.filter_store.get_filter_json(self._user_id)
        filter_id = await self._wait_for(
            self._transport.create_filter(self._user_id, filter_json)
        )
        logger.info("Created sync filter %s for %s", filter_id, self._user_id)
        return filter_id

    async def _wait_for(self, awaitable: Awaitable[T]) -> T:
        """Wait for a request or delay in a way that `stop` can cancel.

        Raises:
            _Stopped if `stop` was called.
        """
        if self._stopping:
            raise _Stopped()

        d = defer.ensureDeferred(awaitable)
        self._waiting_on = d
        try:
            return await d
        except defer.CancelledError:
            if self._stopping:
                raise _Stopped()
            raise
        finally:
            self._waiting_on = None
