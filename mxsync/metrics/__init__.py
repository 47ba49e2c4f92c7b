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

from prometheus_client import Counter, Histogram, start_http_server

logger = logging.getLogger(__name__)


# Outcome of each /sync (or filter creation) request: "success" or "error".
sync_requests_counter = Counter(
    "mxsync_sync_requests", "Number of /sync requests made", labelnames=["outcome"]
)

# Counts events which had at least one listener.
events_dispatched_counter = Counter(
    "mxsync_sync_events_dispatched",
    "Number of events passed to listeners",
    labelnames=["type"],
)

rooms_suppressed_counter = Counter(
    "mxsync_sync_rooms_suppressed",
    "Number of joined rooms skipped because the user has just (re)joined them",
)

process_response_timer = Histogram(
    "mxsync_sync_process_time_seconds",
    "Time taken to process a sync response",
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, "+Inf"),
)


def start_metrics_listener(bind_host: str, port: int) -> None:
    """Serve the metrics over HTTP, from a daemon thread."""
    logger.info("Metrics listening on %s:%d", bind_host, port)
    start_http_server(port, addr=bind_host)
