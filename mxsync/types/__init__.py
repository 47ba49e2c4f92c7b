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
from typing import (
    AbstractSet,
    Any,
    Mapping,
    Sequence,
    TypeAlias,
)

# Define a state map type from type/state_key to T (usually an event).
StateKey: TypeAlias = tuple[str, str]

# the type of a JSON-serialisable dict. This could be made stronger, but it will
# do for now.
JsonDict: TypeAlias = dict[str, Any]

# Ideally these would be Json(Mapping|Sequence|...) and work with mypy's
# recursive type aliases, but that isn't quite there yet.
JsonMapping: TypeAlias = Mapping[str, Any]
JsonSerializable: TypeAlias = object

# Collection[str] that does not include str itself; str being a Sequence[str]
# is very misleading and results in bugs.
#
# Unfortunately there is currently no way to express this in the type system,
# so the best we can do is list the common collection types.
StrCollection: TypeAlias = tuple[str, ...] | list[str] | AbstractSet[str]
"""Collection[str] that does not include str itself; str being a Sequence[str]
is very misleading and results in bugs.

Note that this does not include `Iterable[str]`: that can only be iterated once.
"""

StrSequence: TypeAlias = tuple[str, ...] | list[str]
"""Sequence[str] that does not include str itself; str being a Sequence[str]
is very misleading and results in bugs.
"""

JsonList: TypeAlias = Sequence[Any]
