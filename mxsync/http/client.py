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
import urllib.parse
from io import BytesIO
from typing import Mapping

from pydantic import ValidationError

from twisted.internet.interfaces import IReactorTime
from twisted.web.client import Agent, FileBodyProducer, readBody
from twisted.web.http_headers import Headers
from twisted.web.iweb import IAgent

from mxsync.api.constants import CLIENT_API_PREFIX
from mxsync.api.errors import HttpResponseException, InvalidResponseError
from mxsync.types import JsonDict, JsonMapping
from mxsync.types.rest.client import SyncResponse
from mxsync.util import MXSYNC_VERSION
from mxsync.util.json import json_decoder, json_encoder

logger = logging.getLogger(__name__)


class MatrixSyncTransport:
    """Makes the client-server API requests needed by the sync loop.

    Args:
        reactor: the reactor to make requests with
        homeserver_url: the base URL of the homeserver, e.g. "https://example.org"
        access_token: the access token of the syncing user
        agent: the agent to make requests with. Defaults to a new `Agent`.
    """

    def __init__(
        self,
        reactor: IReactorTime,
        homeserver_url: str,
        access_token: str,
        agent: IAgent | None = None,
    ):
        self._base_url = homeserver_url.rstrip("/")
        self._access_token = access_token
        self._agent = agent if agent is not None else Agent(reactor)
        self._user_agent = ("mxsync/%s" % (MXSYNC_VERSION,)).encode("ascii")

    async def sync(self, since: str, filter_id: str, timeout_ms: int) -> SyncResponse:
        args = {"timeout": str(timeout_ms)}
        if since:
            args["since"] = since
        if filter_id:
            args["filter"] = filter_id

        body = await self._request(b"GET", self._client_url("/sync", args))
        try:
            return SyncResponse.model_validate(body)
        except ValidationError as e:
            raise InvalidResponseError("Invalid /sync response: %s" % (e,)) from e

    async def create_filter(self, user_id: str, filter_json: JsonMapping) -> str:
        path = "/user/%s/filter" % (urllib.parse.quote(user_id, safe=""),)
        body = await self._request(b"POST", self._client_url(path), filter_json)

        filter_id = body.get("filter_id")
        if not isinstance(filter_id, str) or not filter_id:
            raise InvalidResponseError("Homeserver returned no filter_id")
        return filter_id

    def _client_url(self, path: str, args: Mapping[str, str] | None = None) -> bytes:
        url = self._base_url + CLIENT_API_PREFIX + path
        if args:
            url += "?" + urllib.parse.urlencode(args)
        return url.encode("ascii")

    async def _request(
        self, method: bytes, uri: bytes, json_body: JsonMapping | None = None
    ) -> JsonDict:
        """Make a request and decode the JSON object in the response.

        Raises:
            HttpResponseException: the homeserver returned a non-2xx code.
            InvalidResponseError: the response body is not a JSON object.
        """
        headers = Headers(
            {
                b"Authorization": [b"Bearer " + self._access_token.encode("ascii")],
                b"User-Agent": [self._user_agent],
            }
        )

        body_producer = None
        if json_body is not None:
            headers.addRawHeader(b"Content-Type", b"application/json")
            body_producer = FileBodyProducer(
                BytesIO(json_encoder.encode(json_body).encode("utf-8"))
            )

        logger.debug("Sending request %s %s", method.decode("ascii"), _redact(uri))
        response = await self._agent.request(method, uri, headers, body_producer)
        body = await readBody(response)

        if not 200 <= response.code < 300:
            raise HttpResponseException(
                response.code, response.phrase.decode("ascii", errors="replace"), body
            )

        try:
            result = json_decoder.decode(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise InvalidResponseError("Response body is not JSON: %s" % (e,)) from e

        if not isinstance(result, dict):
            raise InvalidResponseError("Response body is not a JSON object")
        return result


def _redact(uri: bytes) -> str:
    """Strip the query string, for logging."""
    return uri.decode("ascii").split("?", 1)[0]
