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

"""Persistence of the sync position and the sync filter.

Both contracts are best-effort and synchronous: implementations must not raise
from any of their methods. Failures should be logged instead.
"""

from typing_extensions import Protocol

from mxsync.types import JsonDict, JsonMapping
from mxsync.util.frozenutils import freeze, unfreeze


class NextBatchStore(Protocol):
    """Controls loading and saving of `next_batch` sync tokens for users."""

    def save_next_batch(self, user_id: str, next_batch: str) -> None:
        """Saves a `next_batch` token for the given user. Best effort."""
        ...

    def load_next_batch(self, user_id: str) -> str:
        """Loads the `next_batch` token for the given user. Returns the empty
        string if no token exists."""
        ...


class FilterStore(Protocol):
    """Controls loading and saving of sync filter IDs for users."""

    def save_filter_id(self, user_id: str, filter_id: str) -> None:
        """Saves a filter ID for the given user. Best effort."""
        ...

    def load_filter_id(self, user_id: str) -> str:
        """Loads the filter ID for the given user. Returns the empty string if
        no filter ID exists."""
        ...

    def get_filter_json(self, user_id: str) -> JsonDict:
        """The filter definition to upload for the given user when no filter ID
        is known yet."""
        ...


class InMemoryNextBatchStore:
    """Stores `next_batch` tokens in memory."""

    def __init__(self) -> None:
        self.user_to_next_batch: dict[str, str] = {}

    def save_next_batch(self, user_id: str, next_batch: str) -> None:
        self.user_to_next_batch[user_id] = next_batch

    def load_next_batch(self, user_id: str) -> str:
        return self.user_to_next_batch.get(user_id, "")


class InMemoryFilterStore:
    """Stores filter IDs in memory. Always returns the filter definition it was
    created with."""

    def __init__(self, filter_json: JsonMapping) -> None:
        self._filter_json = freeze(filter_json)
        self.user_to_filter_id: dict[str, str] = {}

    def save_filter_id(self, user_id: str, filter_id: str) -> None:
        self.user_to_filter_id[user_id] = filter_id

    def load_filter_id(self, user_id: str) -> str:
        return self.user_to_filter_id.get(user_id, "")

    def get_filter_json(self, user_id: str) -> JsonDict:
        return unfreeze(self._filter_json)
