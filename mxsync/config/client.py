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

from ._base import RootConfig
from .logger import LoggingConfig
from .metrics import MetricsConfig
from .sync import SyncConfig


class SyncClientConfig(RootConfig):
    """The configuration of the sync client application."""

    sync: SyncConfig
    logging: LoggingConfig
    metrics: MetricsConfig

    config_classes = [SyncConfig, LoggingConfig, MetricsConfig]
