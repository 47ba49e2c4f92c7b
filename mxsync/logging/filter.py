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
from typing import Any, Literal, Mapping


class MetadataFilter(logging.Filter):
    """Logging filter that adds constant values to each record.

    Used to stamp the syncing user's ID onto every record, so that logs from
    several bots can be told apart.

    Args:
        metadata: Key-value pairs to add to each record.
    """

    def __init__(self, metadata: Mapping[str, Any]):
        super().__init__()
        self._metadata = dict(metadata)

    def filter(self, record: logging.LogRecord) -> Literal[True]:
        for key, value in self._metadata.items():
            # Don't clobber values set by the caller via `extra=`.
            if not hasattr(record, key):
                setattr(record, key, value)
        return True
