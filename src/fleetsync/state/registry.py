"""Authoritative in-memory device registry.

This is the only component allowed to mutate device records on the server.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from fleetsync._normalize import is_clean_id
from fleetsync.exceptions import DeviceNotFoundError
from fleetsync.models._base import now_ms
from fleetsync.models.device import DEFAULT_HISTORY_CAP, Device, DeviceStatus
from fleetsync.models.location import Location
from fleetsync.state.events import ChangeKind, DeviceChangeEvent

_logger = logging.getLogger(__name__)

ChangeListener = Callable[[DeviceChangeEvent], None]


class DeviceRegistry:
    """Mapping of device id to device record.

    Reads hand out snapshots; callers never get a reference to the live
    record. Each accepted mutation is announced to change listeners
    synchronously, before the mutating call returns, so mutation and
    notification happen as one step on the event loop. A mutation is applied
    to a copy and committed only once its event has been built.
    """

    def __init__(
        self,
        *,
        history_cap: int = DEFAULT_HISTORY_CAP,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        if history_cap < 1:
            raise ValueError("history_cap must be positive")
        self._history_cap = history_cap
        self._clock = clock
        self._devices: dict[str, Device] = {}
        self._listeners: list[ChangeListener] = []

    @property
    def history_cap(self) -> int:
        return self._history_cap

    def __len__(self) -> int:
        return len(self._devices)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._devices

    def _record(self, device_id: str) -> Device:
        device = self._devices.get(device_id)
        if device is None:
            raise DeviceNotFoundError(device_id)
        return device

    # ------------------------------------------------------------------
    # Change listeners
    # ------------------------------------------------------------------

    def add_change_listener(self, listener: ChangeListener) -> Callable[[], None]:
        """Register *listener*; returns a callable that removes it again."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _emit(self, event: DeviceChangeEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                _logger.warning("Change listener failed for %s on %s", event.kind, event.device_id, exc_info=True)

    # ------------------------------------------------------------------
    # Registration and reads
    # ------------------------------------------------------------------

    def register(
        self,
        device_id: str,
        *,
        locations: Iterable[Location],
        status: DeviceStatus | str = DeviceStatus.ONLINE,
        last_update: int | None = None,
    ) -> Device:
        """Add a new device with its initial history. Does not emit a change event.

        Raises :class:`ValueError` for an empty or whitespace-padded id, a
        duplicate id, or an empty history.
        """
        if not is_clean_id(device_id):
            raise ValueError(f"Invalid device id: {device_id!r}")
        if device_id in self._devices:
            raise ValueError(f"Device already registered: {device_id}")
        device = Device(id=device_id, status=DeviceStatus(status))
        for sample in locations:
            device.add_location(sample, self._history_cap)
        if not device.locations:
            raise ValueError(f"Device {device_id} needs at least one location")
        device.last_update = last_update if last_update is not None else self._clock()
        self._devices[device_id] = device
        _logger.debug("Registered device %s with %d samples", device_id, len(device.locations))
        return device.snapshot()

    def get(self, device_id: str) -> Device | None:
        device = self._devices.get(device_id)
        return device.snapshot() if device is not None else None

    def require(self, device_id: str) -> Device:
        """Like :meth:`get` but raises :class:`DeviceNotFoundError`."""
        return self._record(device_id).snapshot()

    def list(self) -> list[Device]:
        """All devices, in order of first registration."""
        return [device.snapshot() for device in self._devices.values()]

    def device_ids(self) -> list[str]:
        return list(self._devices)

    def latest_location(self, device_id: str) -> Location:
        latest = self._record(device_id).latest_location
        if latest is None:
            raise ValueError(f"Device {device_id} has no location history")
        return latest

    def status_of(self, device_id: str) -> DeviceStatus:
        return self._record(device_id).status

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def append_location(self, device_id: str, sample: Location) -> DeviceChangeEvent:
        """Add *sample* to the device history and announce it."""
        updated = self._record(device_id).snapshot()
        updated.add_location(sample, self._history_cap)
        event = DeviceChangeEvent(
            kind=ChangeKind.LOCATION,
            device_id=device_id,
            timestamp=sample.timestamp,
            device=updated.snapshot(),
            location=sample,
        )
        self._devices[device_id] = updated
        self._emit(event)
        return event

    def set_status(self, device_id: str, status: DeviceStatus | str) -> DeviceChangeEvent | None:
        """Change the device status.

        Returns ``None`` (and emits nothing) when *status* equals the current one.
        Raises :class:`ValueError` for values outside :class:`DeviceStatus`.
        """
        new_status = DeviceStatus(status)
        device = self._record(device_id)
        if device.status == new_status:
            return None
        timestamp = self._clock()
        updated = device.snapshot()
        updated.status = new_status
        updated.touch(timestamp)
        event = DeviceChangeEvent(
            kind=ChangeKind.STATUS,
            device_id=device_id,
            timestamp=timestamp,
            device=updated.snapshot(),
            status=new_status,
            previous_status=device.status,
        )
        self._devices[device_id] = updated
        self._emit(event)
        return event

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def query_history(
        self,
        device_id: str,
        start_time: int | None = None,
        end_time: int | None = None,
        limit: int | None = DEFAULT_HISTORY_CAP,
    ) -> list[Location]:
        """Samples within the inclusive ``[start_time, end_time]`` window.

        Returns at most *limit* samples, the most recent ones that match, in
        ascending timestamp order. Missing bounds are unbounded, ``limit=None``
        means no limit, ``limit <= 0`` yields nothing. Unknown devices yield
        an empty list.
        """
        device = self._devices.get(device_id)
        if device is None:
            return []
        if limit is not None and limit <= 0:
            return []
        matching = [
            sample
            for sample in device.locations
            if (start_time is None or sample.timestamp >= start_time)
            and (end_time is None or sample.timestamp <= end_time)
        ]
        if limit is not None:
            matching = matching[-limit:]
        return matching
