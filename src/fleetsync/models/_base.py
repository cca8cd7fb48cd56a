"""Base model for fleetsync wire and domain types.

Every model inherits from :class:`FleetBaseModel` which provides
``alias_generator=to_camel`` so the camelCase keys used on the wire
(``deviceId``, ``lastUpdate``) map to snake_case attributes, while still
accepting snake_case names when constructing models in Python.
"""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


class FleetBaseModel(BaseModel):
    """Base for fleetsync models."""

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict[str, Any]:
        """JSON-compatible dict using the camelCase wire names."""
        return self.model_dump(mode="json", by_alias=True)
