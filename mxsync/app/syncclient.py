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

"""Runs a sync loop for a single user, logging the messages it receives."""

import logging
import sys
from typing import Any

from mxsync.api.constants import EventTypes
from mxsync.config._base import ConfigError
from mxsync.config.client import SyncClientConfig
from mxsync.config.logger import setup_logging
from mxsync.events import Event
from mxsync.handlers.poller import SyncPoller
from mxsync.handlers.sync import DefaultSyncer
from mxsync.http.client import MatrixSyncTransport
from mxsync.metrics import start_metrics_listener
from mxsync.storage import InMemoryFilterStore, InMemoryNextBatchStore
from mxsync.storage.sqlite import SqliteSyncStore
from mxsync.util import MXSYNC_VERSION, log_failure
from mxsync.util.clock import Clock

logger = logging.getLogger("mxsync.app.syncclient")


def build_syncer(config: SyncClientConfig) -> DefaultSyncer:
    """Create the syncer, with the stores the config asks for."""
    sync_config = config.sync
    if sync_config.store_path:
        store = SqliteSyncStore(sync_config.store_path, sync_config.filter)
        return DefaultSyncer(
            sync_config.user_id,
            next_batch_store=store,
            filter_store=store,
            retry_delay_ms=sync_config.retry_delay_ms,
        )

    return DefaultSyncer(
        sync_config.user_id,
        next_batch_store=InMemoryNextBatchStore(),
        filter_store=InMemoryFilterStore(sync_config.filter),
        retry_delay_ms=sync_config.retry_delay_ms,
    )


def _log_message(event: Event) -> None:
    logger.info("[%s] <%s> %s", event.room_id, event.sender, event.body)


def setup(reactor: Any, config: SyncClientConfig) -> SyncPoller:
    """Wire up a poller for the configured user. Does not start it.

    The poller is stopped, and its stores closed, when the reactor shuts down.
    """
    clock = Clock(reactor)
    syncer = build_syncer(config)
    syncer.on_event_type(EventTypes.Message, _log_message)

    transport = MatrixSyncTransport(
        reactor, config.sync.homeserver_url, config.sync.access_token
    )
    poller = SyncPoller(
        clock,
        transport,
        syncer,
        config.sync.user_id,
        timeout_ms=config.sync.sync_timeout_ms,
    )

    reactor.addSystemEventTrigger("before", "shutdown", poller.stop)
    store = syncer.next_batch_store
    if isinstance(store, SqliteSyncStore):
        reactor.addSystemEventTrigger("before", "shutdown", store.close)

    return poller


def run(reactor: Any, config: SyncClientConfig) -> None:
    """Runs the sync loop until it stops or the reactor is shut down."""
    poller = setup(reactor, config)

    def _start() -> None:
        d = poller.start()
        d.addErrback(log_failure, "Sync loop failed")
        d.addBoth(lambda _: reactor.stop() if reactor.running else None)

    reactor.callWhenRunning(_start)
    reactor.run()


def main() -> None:
    try:
        config = SyncClientConfig.load_config("mxsync sync client", sys.argv[1:])
    except ConfigError as e:
        sys.stderr.write("\n" + str(e) + "\n")
        sys.exit(1)

    setup_logging(config)
    logger.info("mxsync version %s", MXSYNC_VERSION)

    if config.metrics.enable_metrics:
        start_metrics_listener(
            config.metrics.metrics_bind_host, config.metrics.metrics_port
        )

    from twisted.internet import reactor

    run(reactor, config)


if __name__ == "__main__":
    main()
