"""Client-side mirror of device state.

Rebuilt from each snapshot and patched by broadcast events. Reads return
copies; nothing here talks to the network.
"""

from __future__ import annotations

from collections.abc import Iterable

from fleetsync.models.device import DEFAULT_HISTORY_CAP, Device, DeviceStatus
from fleetsync.models.location import Location


class DeviceMirror:
    def __init__(self, *, history_cap: int = DEFAULT_HISTORY_CAP) -> None:
        self._history_cap = history_cap
        self._devices: dict[str, Device] = {}

    def __len__(self) -> int:
        return len(self._devices)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._devices

    def reset(self, devices: Iterable[Device] = ()) -> None:
        """Discard everything and load *devices* (a snapshot)."""
        self._devices = {}
        for device in devices:
            copy = device.snapshot()
            if len(copy.locations) > self._history_cap:
                del copy.locations[: len(copy.locations) - self._history_cap]
            self._devices[copy.id] = copy

    def clear(self) -> None:
        self._devices = {}

    def _adopt(self, device: Device) -> Device:
        copy = device.snapshot()
        self._devices[copy.id] = copy
        return copy

    def apply_location(
        self,
        device_id: str,
        location: Location,
        timestamp: int,
        device: Device | None = None,
    ) -> Device:
        """Record a location update; unknown devices are adopted from the event's snapshot."""
        current = self._devices.get(device_id)
        if current is None:
            if device is not None:
                current = self._adopt(device)
                current.touch(timestamp)
                return current.snapshot()
            current = Device(id=device_id, status=DeviceStatus.ONLINE)
            self._devices[device_id] = current
        current.add_location(location, self._history_cap)
        current.touch(timestamp)
        return current.snapshot()

    def apply_status(
        self,
        device_id: str,
        status: DeviceStatus,
        timestamp: int,
        device: Device | None = None,
    ) -> Device:
        current = self._devices.get(device_id)
        if current is None:
            if device is not None:
                current = self._adopt(device)
            else:
                current = Device(id=device_id)
                self._devices[device_id] = current
        current.status = status
        current.touch(timestamp)
        return current.snapshot()

    def apply_history(self, device_id: str, locations: Iterable[Location]) -> Device:
        """Merge backfilled samples into the mirrored history."""
        current = self._devices.get(device_id)
        if current is None:
            current = Device(id=device_id, status=DeviceStatus.OFFLINE)
            self._devices[device_id] = current
        current.merge_locations(locations, self._history_cap)
        if current.last_update == 0 and current.latest_location is not None:
            current.last_update = current.latest_location.timestamp
        return current.snapshot()

    def get(self, device_id: str) -> Device | None:
        device = self._devices.get(device_id)
        return device.snapshot() if device is not None else None

    def all(self) -> list[Device]:
        return [device.snapshot() for device in self._devices.values()]

    def history(self, device_id: str, limit: int = 50) -> list[Location]:
        device = self._devices.get(device_id)
        if device is None or limit <= 0:
            return []
        return list(device.locations[-limit:])
