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
import os
from typing import Any

from mxsync.handlers.poller import DEFAULT_SYNC_TIMEOUT_MS
from mxsync.handlers.sync import DEFAULT_RETRY_DELAY_MS
from mxsync.types import JsonDict

from ._base import Config, ConfigError
from ._util import validate_config

logger = logging.getLogger(__name__)

# Only fetch a modest amount of history per room.
DEFAULT_FILTER: JsonDict = {"room": {"timeline": {"limit": 50}}}

_DURATION_SCHEMA = {"type": ["string", "integer"]}

SYNC_CONFIG_SCHEMA = {
    "type": "object",
    "required": ["user_id", "homeserver_url", "access_token"],
    "properties": {
        "user_id": {"type": "string", "pattern": "^@[^:]+:.+$"},
        "homeserver_url": {"type": "string", "pattern": "^https?://"},
        "access_token": {"type": "string", "minLength": 1},
        "sync_timeout": _DURATION_SCHEMA,
        "retry_delay": _DURATION_SCHEMA,
        "filter": {"type": "object"},
        "store_path": {"type": ["string", "null"]},
    },
}


class SyncConfig(Config):
    section = "sync"

    def read_config(self, config: JsonDict, **kwargs: Any) -> None:
        sync_config = config.get("sync")
        if sync_config is None:
            raise ConfigError("Missing 'sync' section", ("sync",))
        validate_config(SYNC_CONFIG_SCHEMA, sync_config, ("sync",))

        self.user_id: str = sync_config["user_id"]
        self.homeserver_url: str = sync_config["homeserver_url"]
        self.access_token: str = sync_config["access_token"]

        try:
            self.sync_timeout_ms = self.parse_duration(
                sync_config.get("sync_timeout", DEFAULT_SYNC_TIMEOUT_MS)
            )
            self.retry_delay_ms = self.parse_duration(
                sync_config.get("retry_delay", DEFAULT_RETRY_DELAY_MS)
            )
        except ValueError as e:
            raise ConfigError("Invalid duration: %s" % (e,), ("sync",)) from e

        if self.sync_timeout_ms < 0 or self.retry_delay_ms < 0:
            raise ConfigError("Durations must not be negative", ("sync",))

        self.filter: JsonDict = sync_config.get("filter", DEFAULT_FILTER)

        # Where to keep the sync position. If unset, it is kept in memory, so a
        # restart does an initial sync again.
        store_path = sync_config.get("store_path")
        self.store_path: str | None = None
        if store_path:
            config_dir_path = kwargs.get("config_dir_path") or ""
            self.store_path = self.abspath(os.path.join(config_dir_path, store_path))
