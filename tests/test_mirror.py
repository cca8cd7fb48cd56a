from __future__ import annotations

from fleetsync.client.mirror import DeviceMirror
from fleetsync.models.device import Device, DeviceStatus
from fleetsync.models.location import Location

NOW = 1_700_000_000_000


def _loc(ts: int, lat: float = 39.9) -> Location:
    return Location(lat=lat, lng=116.4, timestamp=ts, speed=5.0, heading=10.0)


def _fleet() -> list[Device]:
    devices = []
    for n in range(1, 6):
        history = [_loc(NOW - (50 - i) * 60_000) for i in range(50)]
        devices.append(Device(id=f"device_{n:03d}", locations=history, last_update=NOW - 60_000))
    return devices


def test_reset_loads_snapshot_copies() -> None:
    fleet = _fleet()
    mirror = DeviceMirror()
    mirror.reset(fleet)

    fleet[0].locations.clear()
    assert len(mirror) == 5
    assert len(mirror.history("device_001", limit=100)) == 50


def test_location_update_on_known_device_appends_one_sample() -> None:
    mirror = DeviceMirror()
    mirror.reset(_fleet())

    sample = _loc(NOW, lat=40.0)
    device = mirror.apply_location("device_003", sample, NOW)

    assert len(device.locations) == 51
    assert device.locations[50] == sample
    assert device.last_update == NOW
    assert len(mirror.history("device_003", limit=100)) == 51
    assert len(mirror.history("device_002", limit=100)) == 50


def test_unknown_device_is_adopted_from_event_snapshot() -> None:
    mirror = DeviceMirror()
    sample = _loc(NOW)
    snapshot = Device(id="device_099", status=DeviceStatus.WARNING, locations=[_loc(NOW - 1), sample], last_update=NOW)

    device = mirror.apply_location("device_099", sample, NOW, snapshot)

    assert [s.timestamp for s in device.locations] == [NOW - 1, NOW]
    assert device.status == DeviceStatus.WARNING
    assert "device_099" in mirror


def test_unknown_device_without_snapshot_starts_fresh() -> None:
    mirror = DeviceMirror()
    device = mirror.apply_location("device_042", _loc(NOW), NOW)
    assert device.status == DeviceStatus.ONLINE
    assert len(device.locations) == 1


def test_location_history_respects_cap() -> None:
    mirror = DeviceMirror(history_cap=50)
    mirror.reset(_fleet())
    mirror.apply_location("device_001", _loc(NOW), NOW)

    history = mirror.history("device_001", limit=100)
    assert len(history) == 50
    assert history[-1].timestamp == NOW


def test_status_update() -> None:
    mirror = DeviceMirror()
    mirror.reset(_fleet())
    device = mirror.apply_status("device_002", DeviceStatus.OFFLINE, NOW + 5)
    assert device.status == DeviceStatus.OFFLINE
    assert device.last_update == NOW + 5

    created = mirror.apply_status("device_077", DeviceStatus.WARNING, NOW)
    assert created.status == DeviceStatus.WARNING
    assert created.locations == []


def test_history_merge_dedupes() -> None:
    mirror = DeviceMirror()
    mirror.reset(_fleet())
    before = mirror.history("device_001", limit=100)

    device = mirror.apply_history("device_001", before[-10:] + [_loc(NOW - 30_000)])

    assert len(device.locations) == 51
    timestamps = [s.timestamp for s in device.locations]
    assert timestamps == sorted(timestamps)


def test_history_for_unknown_device_creates_offline_placeholder() -> None:
    mirror = DeviceMirror()
    device = mirror.apply_history("device_500", [_loc(10), _loc(20)])
    assert device.status == DeviceStatus.OFFLINE
    assert device.last_update == 20


def test_history_limit_and_unknown_device() -> None:
    mirror = DeviceMirror()
    mirror.reset(_fleet())
    latest = mirror.history("device_004", limit=5)
    assert len(latest) == 5
    assert latest[-1].timestamp == NOW - 60_000
    assert len(mirror.history("device_004")) == 50
    assert mirror.history("device_004", limit=0) == []
    assert mirror.history("nope") == []


def test_reads_are_copies() -> None:
    mirror = DeviceMirror()
    mirror.reset(_fleet())
    copy = mirror.get("device_001")
    assert copy is not None
    copy.locations.clear()
    assert len(mirror.all()[0].locations) == 50
    assert mirror.get("nope") is None

    mirror.clear()
    assert len(mirror) == 0
