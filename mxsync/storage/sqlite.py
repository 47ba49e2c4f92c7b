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
import sqlite3

from mxsync.types import JsonDict, JsonMapping
from mxsync.util.frozenutils import freeze, unfreeze
from mxsync.util.json import json_decoder, json_encoder

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS sync_next_batch (
    user_id TEXT NOT NULL PRIMARY KEY,
    next_batch TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS sync_filters (
    user_id TEXT NOT NULL PRIMARY KEY,
    filter_id TEXT NOT NULL,
    -- the filter definition the filter ID was created from
    filter_json TEXT NOT NULL
);
"""


class SqliteSyncStore:
    """Persists `next_batch` tokens and filter IDs in a SQLite database.

    Implements both the `NextBatchStore` and `FilterStore` contracts. Like
    them, it never raises: database errors are logged, saves are dropped and
    loads return the empty string.

    A filter ID is only returned if it was created from the same filter
    definition that this store was given: changing the filter in the config
    causes a new one to be uploaded.

    Args:
        database: path to the database file, or ":memory:".
        filter_json: the filter definition to upload for new filters.
    """

    def __init__(self, database: str, filter_json: JsonMapping):
        self._database = database
        self._filter_json = freeze(filter_json)
        self._filter_json_str = json_encoder.encode(self._filter_json)

        self._db_conn: sqlite3.Connection | None = None
        try:
            self._db_conn = sqlite3.connect(database, check_same_thread=False)
            self._db_conn.executescript(SCHEMA)
            self._db_conn.commit()
        except sqlite3.Error:
            logger.exception(
                "Failed to open sync store %s: sync position will not be saved",
                database,
            )
            self._db_conn = None

    def close(self) -> None:
        if self._db_conn is not None:
            self._db_conn.close()
            self._db_conn = None

    def _execute(self, desc: str, sql: str, *args: object) -> list[tuple]:
        if self._db_conn is None:
            return []
        try:
            txn = self._db_conn.execute(sql, args)
            rows = txn.fetchall()
            self._db_conn.commit()
            return rows
        except sqlite3.Error:
            logger.exception("[%s] Failed to access sync store %s", desc, self._database)
            return []

    def save_next_batch(self, user_id: str, next_batch: str) -> None:
        self._execute(
            "save_next_batch",
            """
            INSERT INTO sync_next_batch (user_id, next_batch) VALUES (?, ?)
            ON CONFLICT (user_id) DO UPDATE SET next_batch = EXCLUDED.next_batch
            """,
            user_id,
            next_batch,
        )

    def load_next_batch(self, user_id: str) -> str:
        rows = self._execute(
            "load_next_batch",
            "SELECT next_batch FROM sync_next_batch WHERE user_id = ?",
            user_id,
        )
        if not rows:
            return ""
        return rows[0][0]

    def save_filter_id(self, user_id: str, filter_id: str) -> None:
        self._execute(
            "save_filter_id",
            """
            INSERT INTO sync_filters (user_id, filter_id, filter_json) VALUES (?, ?, ?)
            ON CONFLICT (user_id) DO UPDATE SET
                filter_id = EXCLUDED.filter_id, filter_json = EXCLUDED.filter_json
            """,
            user_id,
            filter_id,
            self._filter_json_str,
        )

    def load_filter_id(self, user_id: str) -> str:
        rows = self._execute(
            "load_filter_id",
            "SELECT filter_id, filter_json FROM sync_filters WHERE user_id = ?",
            user_id,
        )
        if not rows:
            return ""

        filter_id, filter_json_str = rows[0]
        try:
            saved_filter = json_decoder.decode(filter_json_str)
        except ValueError:
            logger.warning("Ignoring unreadable filter saved for %s", user_id)
            return ""

        if freeze(saved_filter) != self._filter_json:
            logger.info("Filter definition for %s has changed; ignoring saved ID", user_id)
            return ""
        return filter_id

    def get_filter_json(self, user_id: str) -> JsonDict:
        return unfreeze(self._filter_json)
