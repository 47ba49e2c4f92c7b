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

from mxsync.types import JsonDict

from ._base import Config, ConfigError


class MetricsConfig(Config):
    section = "metrics"

    def read_config(self, config: JsonDict, **kwargs: Any) -> None:
        metrics_config = config.get("metrics") or {}

        self.enable_metrics = metrics_config.get("enable_metrics", False)
        if not isinstance(self.enable_metrics, bool):
            raise ConfigError("Must be a boolean", ("metrics", "enable_metrics"))

        self.metrics_bind_host = metrics_config.get("metrics_bind_host", "127.0.0.1")
        if not isinstance(self.metrics_bind_host, str):
            raise ConfigError("Must be a string", ("metrics", "metrics_bind_host"))

        self.metrics_port = metrics_config.get("metrics_port", 9000)
        if (
            type(self.metrics_port) is not int  # noqa: E721
            or not 0 < self.metrics_port < 65536
        ):
            raise ConfigError("Must be a port number", ("metrics", "metrics_port"))
