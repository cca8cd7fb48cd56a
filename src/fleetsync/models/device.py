"""Device record model and the bounded history rules shared by server and client."""

from __future__ import annotations

import bisect
from collections.abc import Iterable
from enum import StrEnum

from pydantic import Field

from fleetsync.models._base import FleetBaseModel
from fleetsync.models.location import Location

DEFAULT_HISTORY_CAP = 100


class DeviceStatus(StrEnum):
    ONLINE = "online"
    OFFLINE = "offline"
    WARNING = "warning"


def _sample_key(sample: Location) -> int:
    return sample.timestamp


class Device(FleetBaseModel):
    """Mutable state of one tracked device.

    ``locations`` is kept in ascending timestamp order and never grows past
    the history cap; ``last_update`` never moves backwards.
    """

    id: str
    status: DeviceStatus = DeviceStatus.ONLINE
    locations: list[Location] = Field(default_factory=list)
    last_update: int = 0

    @property
    def latest_location(self) -> Location | None:
        return self.locations[-1] if self.locations else None

    def touch(self, timestamp: int) -> None:
        self.last_update = max(self.last_update, timestamp)

    def add_location(self, sample: Location, cap: int = DEFAULT_HISTORY_CAP) -> None:
        """Insert *sample* by timestamp and evict the oldest beyond *cap*.

        Samples arriving in order are appended; a late sample is placed after
        any existing samples with the same or earlier timestamp.
        """
        bisect.insort_right(self.locations, sample, key=_sample_key)
        if len(self.locations) > cap:
            del self.locations[: len(self.locations) - cap]
        self.touch(sample.timestamp)

    def merge_locations(self, samples: Iterable[Location], cap: int = DEFAULT_HISTORY_CAP) -> int:
        """Merge backfilled *samples*, skipping ones already present.

        Returns the number of samples actually added.
        """
        known = set(self.locations)
        added = 0
        for sample in samples:
            if sample in known:
                continue
            bisect.insort_right(self.locations, sample, key=_sample_key)
            known.add(sample)
            added += 1
        if len(self.locations) > cap:
            del self.locations[: len(self.locations) - cap]
        return added

    def snapshot(self) -> Device:
        """Copy safe to hand out; later mutations of this record do not leak into it."""
        return self.model_copy(update={"locations": list(self.locations)})
