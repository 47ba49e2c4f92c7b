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

import argparse
import logging
import os
from typing import (
    Any,
    ClassVar,
    Collection,
    Iterator,
    MutableMapping,
    TypeVar,
)

import yaml

from mxsync.types import StrSequence

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Represents a problem parsing the configuration

    Args:
        msg:  A textual description of the error.
        path: Where appropriate, an indication of where in the configuration
           the problem lies.
    """

    def __init__(self, msg: str, path: StrSequence | None = None):
        self.msg = msg
        self.path = path

    def __str__(self) -> str:
        return "".join(format_config_error(self))


def format_config_error(e: ConfigError) -> Iterator[str]:
    """
    Formats a config error neatly

    The idea is to format the immediate error, plus the "causes" of those errors,
    hopefully in a way that makes sense to the user. For example:

        Error in configuration at 'sync.user_id':
          'bot' does not match '^@[^:]+:.+$'

    Args:
        e: the error to be formatted

    Returns: An iterator which yields string fragments to be formatted
    """
    yield "Error in configuration"

    if e.path:
        yield " at '%s'" % (".".join(e.path),)

    yield ":\n  %s" % (e.msg,)

    parent_e = e.__cause__
    indent = 1
    while parent_e:
        indent += 1
        yield ":\n%s%s" % ("  " * indent, str(parent_e))
        parent_e = parent_e.__cause__


class Config:
    """
    A configuration section, containing configuration keys and values.

    Attributes:
        section: The section title of this config object, such as
            "sync" or "logging". This is used as the attribute name on the
            root config.
    """

    section: ClassVar[str]

    def __init__(self, root_config: "RootConfig | None" = None):
        self.root = root_config

    def read_config(self, config: dict[str, Any], **kwargs: Any) -> None:
        """Read the relevant keys out of the (merged) config dict."""
        raise NotImplementedError()

    @staticmethod
    def parse_duration(value: str | int) -> int:
        """Convert a duration as a string or integer to a number of milliseconds.

        If an integer is provided it is treated as milliseconds and is unchanged.

        String durations can have a suffix of 'ms', 's', 'm', 'h', 'd', 'w', or
        'y'. No suffix is treated as milliseconds.

        Args:
            value: The duration to parse.

        Returns:
            The number of milliseconds in the duration.

        Raises:
            TypeError, if given something other than an integer or a string
            ValueError, if given a string not of the form described above.
        """
        if type(value) is int:  # noqa: E721
            return value
        elif isinstance(value, str):
            second = 1000
            minute = 60 * second
            hour = 60 * minute
            day = 24 * hour
            week = 7 * day
            year = 365 * day
            sizes = {
                "ms": 1,
                "s": second,
                "m": minute,
                "h": hour,
                "d": day,
                "w": week,
                "y": year,
            }
            size = 1
            for suffix in ("ms", "s", "m", "h", "d", "w", "y"):
                if value.endswith(suffix):
                    value = value[: -len(suffix)]
                    size = sizes[suffix]
                    break
            return int(value) * size
        else:
            raise TypeError(f"Bad duration {value!r}")

    @staticmethod
    def abspath(file_path: str | None) -> str:
        return os.path.abspath(file_path) if file_path else ""


TRootConfig = TypeVar("TRootConfig", bound="RootConfig")


class RootConfig:
    """
    Holder of an application's configuration.

    What configuration this object holds is defined by `config_classes`, a list
    of Config classes that will be instantiated and given the contents of a
    configuration file to read. They can then be accessed on this class by
    their section name.
    """

    config_classes: list[type[Config]] = []

    def __init__(self, config_files: Collection[str] = ()):
        # Capture absolute paths here, so we can reload config after we daemonize.
        self.config_files = [os.path.abspath(path) for path in config_files]

        for config_class in self.config_classes:
            if getattr(config_class, "section", None) is None:
                raise ValueError("%r requires a section name" % (config_class,))

            try:
                conf = config_class(self)
            except Exception as e:
                raise Exception("Failed making %s: %r" % (config_class.section, e))
            setattr(self, config_class.section, conf)

    def invoke_all(
        self, func_name: str, *args: Any, **kwargs: Any
    ) -> MutableMapping[str, Any]:
        """
        Invoke a function on all instantiated config objects this RootConfig is
        configured to use.

        Args:
            func_name: Name of function to invoke
            *args
            **kwargs

        Returns:
            ordered dictionary of config section name and the result of the
            function from it.
        """
        res = {}

        for config_class in self.config_classes:
            config = getattr(self, config_class.section)

            if hasattr(config, func_name):
                res[config_class.section] = getattr(config, func_name)(*args, **kwargs)

        return res

    def parse_config_dict(
        self, config_dict: dict[str, Any], config_dir_path: str = ""
    ) -> None:
        """Read the information from the config dict into this Config object.

        Args:
            config_dict: Configuration data, as read from the yaml

            config_dir_path: The path where the config files are kept. Used to
                resolve relative paths in the configuration.
        """
        self.invoke_all("read_config", config_dict, config_dir_path=config_dir_path)

    @classmethod
    def add_arguments_to_parser(cls, config_parser: argparse.ArgumentParser) -> None:
        """Adds all the config flags to an ArgumentParser.

        Args:
            config_parser: App description
        """

        config_parser.add_argument(
            "-c",
            "--config-path",
            action="append",
            metavar="CONFIG_FILE",
            help="Specify config file. Can be given multiple times and"
            " may specify directories containing *.yaml files.",
        )

    @classmethod
    def load_config(
        cls: type[TRootConfig], description: str, argv_options: list[str]
    ) -> TRootConfig:
        """Parse the commandline and config files

        Args:
            description: App description
            argv_options: The options passed to the app on the command line.

        Returns:
            Config object.
        """
        config_parser = argparse.ArgumentParser(description=description)
        cls.add_arguments_to_parser(config_parser)
        config_args = config_parser.parse_args(argv_options)

        config_files = find_config_files(search_paths=config_args.config_path)
        if not config_files:
            config_parser.error("Must supply a config file.")

        config_dir_path = os.path.dirname(config_files[-1])
        config_dict = read_config_files(config_files)

        obj = cls(config_files)
        obj.parse_config_dict(config_dict, config_dir_path=config_dir_path)
        return obj


def read_config_files(config_files: Collection[str]) -> dict[str, Any]:
    """Read the config files and shallowly merge them into a dict.

    Successive configurations are shallowly merged into ones provided earlier,
    i.e., entirely replacing top-level sections of the configuration.

    Args:
        config_files: A list of the config files to read

    Returns:
        The configuration dictionary.
    """
    specified_config = {}
    for config_file in config_files:
        with open(config_file) as file_stream:
            yaml_config = yaml.safe_load(file_stream)

        if not isinstance(yaml_config, dict):
            err = "File %r is empty or doesn't parse into a key-value map. IGNORING."
            print(err % (config_file,))
            continue

        specified_config.update(yaml_config)

    return specified_config


def find_config_files(search_paths: list[str] | None) -> list[str]:
    """Finds config files using a list of search paths. If a path is a file
    then that file path is added to the list. If a search path is a directory
    then all the "*.yaml" files in that directory are added to the list in
    sorted order.

    Args:
        search_paths: A list of paths to search.

    Returns:
        A list of file paths.
    """

    config_files = []
    if search_paths:
        for config_path in search_paths:
            if os.path.isdir(config_path):
                # We accept specifying directories as config paths, we search
                # inside that directory for all files matching *.yaml, and then
                # we apply them in *sorted* order.
                files = []
                for entry in os.listdir(config_path):
                    entry_path = os.path.join(config_path, entry)
                    if not os.path.isfile(entry_path):
                        err = "Found subdirectory in config directory: %r. IGNORING."
                        print(err % (entry_path,))
                        continue

                    if not entry.endswith(".yaml"):
                        err = (
                            "Found file in config directory that does not end in "
                            "'.yaml': %r. IGNORING."
                        )
                        print(err % (entry_path,))
                        continue

                    files.append(entry_path)

                config_files.extend(sorted(files))
            else:
                config_files.append(config_path)
    return config_files
