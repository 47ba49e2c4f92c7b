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

"""Contains exceptions and error codes."""

import logging
import traceback
from http import HTTPStatus
from typing import Any

from mxsync.util.json import json_decoder

logger = logging.getLogger(__name__)


class Codes:
    """Error codes the homeserver may return in a JSON error body."""

    UNKNOWN = "M_UNKNOWN"
    UNKNOWN_TOKEN = "M_UNKNOWN_TOKEN"
    MISSING_TOKEN = "M_MISSING_TOKEN"
    FORBIDDEN = "M_FORBIDDEN"
    LIMIT_EXCEEDED = "M_LIMIT_EXCEEDED"
    NOT_JSON = "M_NOT_JSON"
    BAD_JSON = "M_BAD_JSON"


class MxSyncError(Exception):
    """Base class for all errors raised by mxsync."""


class CodeMessageException(MxSyncError):
    """An exception with integer code, a message string attributes and optional headers.

    Attributes:
        code: HTTP error code
        msg: string describing the error
    """

    def __init__(self, code: int | HTTPStatus, msg: str):
        super().__init__("%d: %s" % (code, msg))

        # Some calls to this method pass instances of http.HTTPStatus for `code`.
        # While HTTPStatus is a subclass of int, it has magic __str__ methods
        # which emit `HTTPStatus.FORBIDDEN` when converted to a str, instead of `403`.
        # This causes inconsistency in our log lines.
        #
        # To eliminate this behaviour, we convert them to their integer equivalents here.
        self.code = int(code)
        self.msg = msg


class HttpResponseException(CodeMessageException):
    """
    Represents an HTTP-level failure of an outbound request

    Attributes:
        response: body of response
        errcode: the Matrix error code from the JSON body, if there was one
    """

    def __init__(self, code: int, msg: str, response: bytes):
        """

        Args:
            code: HTTP status code
            msg: reason phrase from HTTP response status line
            response: body of response
        """
        super().__init__(code, msg)
        self.response = response
        self.errcode = Codes.UNKNOWN

        # try to parse the body as json, to get better errcode/msg, but
        # default to M_UNKNOWN with the HTTP status as the error text
        try:
            j = json_decoder.decode(self.response.decode("utf-8"))
        except ValueError:
            j = {}

        if isinstance(j, dict):
            errcode = j.get("errcode")
            if isinstance(errcode, str):
                self.errcode = errcode
            error = j.get("error")
            if isinstance(error, str):
                self.msg = error


class InvalidResponseError(MxSyncError):
    """The homeserver returned a response we could not parse."""


class InvalidEventError(MxSyncError):
    """An event in a sync response is missing a required field."""


class ContentShapeError(MxSyncError):
    """An event's content did not have the shape the caller asked for.

    Attributes:
        key: the content key that was read
        expected: the name of the type the caller asked for
        actual: the value found (None when the key is absent)
    """

    def __init__(self, key: str, expected: str, actual: Any):
        if actual is None:
            found = "nothing"
        else:
            found = type(actual).__name__
        super().__init__(
            "Expected content key %r to be %s, found %s" % (key, expected, found)
        )
        self.key = key
        self.expected = expected
        self.actual = actual


class SyncProcessingError(MxSyncError):
    """Processing a sync response failed. Syncing must stop.

    Raised by `Syncer.process_response` for any fault hit while reducing a
    response, including exceptions raised by event listeners.

    Attributes:
        user_id: the syncing user
        since: the sync token that the failed response was fetched with
        cause: the underlying exception
    """

    def __init__(self, user_id: str, since: str, cause: BaseException):
        formatted = "".join(
            traceback.format_exception(type(cause), cause, cause.__traceback__)
        )
        super().__init__(
            "process_response failed! user_id=%s since=%s error=%r\n%s"
            % (user_id, since, cause, formatted)
        )
        self.user_id = user_id
        self.since = since
        self.cause = cause
