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

from pydantic import BaseModel, ConfigDict


class ParseModel(BaseModel):
    """A custom version of Pydantic's BaseModel which

     - ignores unknown fields and
     - does not allow fields to be overwritten after construction,

    but otherwise uses Pydantic's default behaviour.

    Homeservers add fields to responses over time, so unknown fields are
    ignored rather than rejected. Nested models are built from plain dicts, so
    strictness is requested per field (`StrictStr`, `StrictBool`, ...) rather
    than for the whole model.

    Note that "frozen" only prevents reassigning fields: containers held by a
    model (such as the room maps of a sync response) may still be mutated.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)
