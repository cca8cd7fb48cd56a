from __future__ import annotations

import pytest
from pydantic import ValidationError

from fleetsync.exceptions import DeviceNotFoundError
from fleetsync.models.device import Device, DeviceStatus
from fleetsync.models.location import Location
from fleetsync.state.events import ChangeKind, DeviceChangeEvent
from fleetsync.state.registry import DeviceRegistry


def _loc(ts: int, lat: float = 39.9, lng: float = 116.4) -> Location:
    return Location(lat=lat, lng=lng, timestamp=ts, speed=10.0, heading=45.0)


def _registry(cap: int = 100, now: int = 5_000) -> DeviceRegistry:
    registry = DeviceRegistry(history_cap=cap, clock=lambda: now)
    registry.register("device_001", locations=[_loc(1_000), _loc(2_000)])
    return registry


def test_register_does_not_emit_and_stamps_last_update() -> None:
    registry = DeviceRegistry(clock=lambda: 7_000)
    seen: list[DeviceChangeEvent] = []
    registry.add_change_listener(seen.append)

    device = registry.register("device_001", locations=[_loc(2_000), _loc(1_000)])

    assert seen == []
    assert [s.timestamp for s in device.locations] == [1_000, 2_000]
    assert device.last_update == 7_000
    assert device.status == DeviceStatus.ONLINE


def test_register_rejects_duplicates_and_empty_history() -> None:
    registry = _registry()
    with pytest.raises(ValueError):
        registry.register("device_001", locations=[_loc(1)])
    with pytest.raises(ValueError):
        registry.register("device_002", locations=[])


def test_reads_return_snapshots() -> None:
    registry = _registry()
    snapshot = registry.get("device_001")
    assert snapshot is not None
    snapshot.locations.clear()
    snapshot.status = DeviceStatus.WARNING

    fresh = registry.require("device_001")
    assert len(fresh.locations) == 2
    assert fresh.status == DeviceStatus.ONLINE


def test_list_preserves_registration_order() -> None:
    registry = DeviceRegistry()
    for device_id in ("b", "a", "c"):
        registry.register(device_id, locations=[_loc(1)])
    assert [d.id for d in registry.list()] == ["b", "a", "c"]
    assert registry.device_ids() == ["b", "a", "c"]


def test_append_location_emits_one_event_with_post_mutation_snapshot() -> None:
    registry = _registry()
    seen: list[DeviceChangeEvent] = []
    registry.add_change_listener(seen.append)

    sample = _loc(3_000)
    event = registry.append_location("device_001", sample)

    assert seen == [event]
    assert event.kind == ChangeKind.LOCATION
    assert event.location == sample
    assert event.timestamp == 3_000
    assert event.device.locations[-1] == sample
    assert event.device.last_update == 5_000


def test_history_cap_evicts_oldest() -> None:
    registry = _registry(cap=3)
    for ts in (3_000, 4_000, 5_000):
        registry.append_location("device_001", _loc(ts))

    history = registry.query_history("device_001", limit=None)
    assert [s.timestamp for s in history] == [3_000, 4_000, 5_000]


def test_late_sample_is_inserted_in_order_and_last_update_holds() -> None:
    registry = _registry(now=1_500)
    registry.append_location("device_001", _loc(9_000))
    registry.append_location("device_001", _loc(1_500))

    device = registry.require("device_001")
    assert [s.timestamp for s in device.locations] == [1_000, 1_500, 2_000, 9_000]
    assert device.last_update == 9_000
    assert device.latest_location is not None
    assert device.latest_location.timestamp == 9_000


def test_set_status_unchanged_is_a_no_op() -> None:
    registry = _registry()
    seen: list[DeviceChangeEvent] = []
    registry.add_change_listener(seen.append)

    assert registry.set_status("device_001", DeviceStatus.ONLINE) is None
    assert seen == []


def test_set_status_change_records_previous_value() -> None:
    registry = _registry(now=8_000)
    event = registry.set_status("device_001", "warning")

    assert event is not None
    assert event.kind == ChangeKind.STATUS
    assert event.status == DeviceStatus.WARNING
    assert event.previous_status == DeviceStatus.ONLINE
    assert event.timestamp == 8_000
    assert registry.status_of("device_001") == DeviceStatus.WARNING
    assert registry.require("device_001").last_update == 8_000


def test_set_status_rejects_unknown_values() -> None:
    registry = _registry()
    with pytest.raises(ValueError):
        registry.set_status("device_001", "exploded")


def test_mutations_on_unknown_device_raise() -> None:
    registry = _registry()
    with pytest.raises(DeviceNotFoundError) as excinfo:
        registry.append_location("nope", _loc(1))
    assert excinfo.value.device_id == "nope"
    with pytest.raises(DeviceNotFoundError):
        registry.set_status("nope", DeviceStatus.OFFLINE)
    assert registry.get("nope") is None


def test_query_history_bounds_are_inclusive_and_limit_keeps_latest() -> None:
    registry = DeviceRegistry()
    registry.register("d", locations=[_loc(ts) for ts in range(1_000, 11_000, 1_000)])

    window = registry.query_history("d", start_time=3_000, end_time=6_000)
    assert [s.timestamp for s in window] == [3_000, 4_000, 5_000, 6_000]

    latest = registry.query_history("d", start_time=3_000, limit=2)
    assert [s.timestamp for s in latest] == [9_000, 10_000]

    assert registry.query_history("d", limit=0) == []
    assert registry.query_history("d", start_time=20_000) == []
    assert registry.query_history("unknown") == []


def test_failing_change_listener_does_not_block_others() -> None:
    registry = _registry()
    seen: list[DeviceChangeEvent] = []

    def _boom(_event: DeviceChangeEvent) -> None:
        raise RuntimeError("listener bug")

    registry.add_change_listener(_boom)
    registry.add_change_listener(seen.append)

    registry.append_location("device_001", _loc(3_000))
    assert len(seen) == 1


def test_removed_change_listener_stops_receiving() -> None:
    registry = _registry()
    seen: list[DeviceChangeEvent] = []
    remove = registry.add_change_listener(seen.append)
    remove()
    remove()

    registry.append_location("device_001", _loc(3_000))
    assert seen == []


@pytest.mark.parametrize("device_id", ["", " d1", "d1 ", "\t", "d1\n"])
def test_register_rejects_empty_or_padded_ids(device_id: str) -> None:
    registry = DeviceRegistry()
    with pytest.raises(ValueError, match="Invalid device id"):
        registry.register(device_id, locations=[_loc(1)])
    assert len(registry) == 0


def test_event_device_id_matches_record_id() -> None:
    registry = _registry()
    location_event = registry.append_location("device_001", _loc(3_000))
    status_event = registry.set_status("device_001", DeviceStatus.OFFLINE)

    assert status_event is not None
    for event in (location_event, status_event):
        assert event.device_id == "device_001"
        assert event.device.id == event.device_id


def test_change_event_keeps_id_verbatim_and_rejects_empty() -> None:
    device = Device(id="d 1")
    event = DeviceChangeEvent(kind=ChangeKind.STATUS, device_id="d 1", timestamp=1, device=device, status="online")
    assert event.device_id == "d 1"
    with pytest.raises(ValidationError):
        DeviceChangeEvent(kind=ChangeKind.STATUS, device_id="", timestamp=1, device=device, status="online")


def test_mutation_is_not_committed_when_event_cannot_be_built(monkeypatch: pytest.MonkeyPatch) -> None:
    registry = _registry()
    seen: list[DeviceChangeEvent] = []
    registry.add_change_listener(seen.append)

    def _broken_event(**_kwargs: object) -> DeviceChangeEvent:
        raise RuntimeError("event construction failed")

    monkeypatch.setattr("fleetsync.state.registry.DeviceChangeEvent", _broken_event)

    with pytest.raises(RuntimeError):
        registry.append_location("device_001", _loc(3_000))
    with pytest.raises(RuntimeError):
        registry.set_status("device_001", DeviceStatus.WARNING)

    device = registry.require("device_001")
    assert [s.timestamp for s in device.locations] == [1_000, 2_000]
    assert device.status == DeviceStatus.ONLINE
    assert device.last_update == 5_000
    assert seen == []


def test_latest_location() -> None:
    registry = _registry()
    assert registry.latest_location("device_001").timestamp == 2_000
    with pytest.raises(DeviceNotFoundError):
        registry.latest_location("nope")

    registry._devices["empty"] = Device(id="empty")  # type: ignore[attr-defined]  # noqa: SLF001
    with pytest.raises(ValueError, match="no location history"):
        registry.latest_location("empty")
