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
import logging.config
import os
import sys
from typing import TYPE_CHECKING, Any

import yaml

from twisted.logger import (
    LogBeginner,
    STDLibLogObserver,
    eventAsText,
    globalLogBeginner,
)

from mxsync.logging.filter import MetadataFilter
from mxsync.logging.formatter import LogFormatter
from mxsync.types import JsonDict

from ._base import Config, ConfigError

if TYPE_CHECKING:
    from mxsync.config.client import SyncClientConfig

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(lineno)d - %(levelname)s - %(user_id)s - %(message)s"


class LoggingConfig(Config):
    section = "logging"

    def read_config(self, config: JsonDict, **kwargs: Any) -> None:
        log_config = (config.get("logging") or {}).get("log_config")
        self.log_config: str | None = None
        if log_config:
            config_dir_path = kwargs.get("config_dir_path") or ""
            self.log_config = self.abspath(os.path.join(config_dir_path, log_config))
            if not os.path.exists(self.log_config):
                raise ConfigError(
                    "Log config file %s does not exist" % (self.log_config,),
                    ("logging", "log_config"),
                )


def _default_log_config() -> JsonDict:
    return {
        "version": 1,
        "formatters": {
            "precise": {"()": LogFormatter, "fmt": LOG_FORMAT},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "precise",
                "stream": "ext://sys.stderr",
            },
        },
        "loggers": {
            # Twisted's own logs are mostly noise at INFO.
            "twisted": {"level": "WARNING"},
        },
        "root": {"level": "INFO", "handlers": ["console"]},
        "disable_existing_loggers": False,
    }


def _setup_stdlib_logging(
    config: "SyncClientConfig", log_config: JsonDict, logBeginner: LogBeginner
) -> None:
    """
    Set up Python standard library logging.
    """
    logging.config.dictConfig(log_config)

    # Every record gets the syncing user, so formats can use %(user_id)s even
    # when the log config does not add the filter itself.
    metadata_filter = MetadataFilter({"user_id": config.sync.user_id})
    for handler in logging.getLogger().handlers:
        handler.addFilter(metadata_filter)

    # Route Twisted's native logging through to the standard library logging
    # system.
    observer = STDLibLogObserver()

    def _log(event: dict) -> None:
        if "log_text" in event:
            if event["log_text"].startswith("DNSDatagramProtocol starting on "):
                return

            if event["log_text"].startswith("(UDP Port "):
                return

            if event["log_text"].startswith("Timing out client"):
                return

        # this is a workaround to make sure we don't get stack overflows when the
        # logging system raises an error which is written to stderr which is
        # redirected to the logging system, etc.
        try:
            observer(event)
        except Exception as e:
            print("Exception in logging observer: %s" % (e,), file=sys.__stderr__)
            print(eventAsText(event), file=sys.__stderr__)

    logBeginner.beginLoggingTo([_log], redirectStandardIO=False)


def setup_logging(
    config: "SyncClientConfig", logBeginner: LogBeginner = globalLogBeginner
) -> None:
    """
    Set up the logging subsystem.

    Args:
        config: configuration data

        logBeginner: The Twisted logBeginner to use.
    """
    log_config_path = config.logging.log_config
    if log_config_path:
        with open(log_config_path, "rb") as f:
            log_config = yaml.safe_load(f.read())
        if not isinstance(log_config, dict):
            raise ConfigError("Log config %s is not a mapping" % (log_config_path,))
    else:
        log_config = _default_log_config()

    _setup_stdlib_logging(config, log_config, logBeginner=logBeginner)

    logging.getLogger("mxsync").info(
        "Logging configured for %s", config.sync.user_id
    )
