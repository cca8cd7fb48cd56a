from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest
from aiohttp import WSCloseCode

from fleetsync.models.device import DeviceStatus
from fleetsync.models.location import Location
from fleetsync.server.transport import SIMULATED_COMMAND_MESSAGE, SubscriberConnection, SyncTransport
from fleetsync.state.registry import DeviceRegistry


class _FakeSocket:
    closed = False

    async def send_str(self, data: str) -> None:  # pragma: no cover
        raise AssertionError("writer task not started in these tests")


def _loc(ts: int) -> Location:
    return Location(lat=39.9, lng=116.4, timestamp=ts)


def _registry() -> DeviceRegistry:
    registry = DeviceRegistry(clock=lambda: 50_000)
    registry.register("device_001", locations=[_loc(ts) for ts in range(1_000, 6_000, 1_000)])
    registry.register("device_002", locations=[_loc(1_000)])
    return registry


def _drain(conn: SubscriberConnection) -> list[dict[str, Any]]:
    frames = []
    while not conn._outbox.empty():  # type: ignore[attr-defined]  # noqa: SLF001
        frame = conn._outbox.get_nowait()  # type: ignore[attr-defined]  # noqa: SLF001
        if frame is not None:
            frames.append(json.loads(frame))
    return frames


@pytest.mark.asyncio
async def test_snapshot_is_queued_before_any_broadcast() -> None:
    registry = _registry()
    transport = SyncTransport(registry)
    conn = transport.attach(_FakeSocket(), "127.0.0.1")  # type: ignore[arg-type]

    registry.append_location("device_001", _loc(6_000))

    frames = _drain(conn)
    assert [f["type"] for f in frames] == ["initial_data", "device_location_update"]
    assert [d["id"] for d in frames[0]["data"]["devices"]] == ["device_001", "device_002"]
    assert len(frames[0]["data"]["devices"][0]["locations"]) == 5
    update = frames[1]["data"]
    assert update["deviceId"] == "device_001"
    assert update["location"]["timestamp"] == 6_000
    assert len(update["device"]["locations"]) == 6
    assert transport.connection_count == 1


@pytest.mark.asyncio
async def test_warning_status_adds_system_alert() -> None:
    registry = _registry()
    transport = SyncTransport(registry)
    conn = transport.attach(_FakeSocket())  # type: ignore[arg-type]
    _drain(conn)

    registry.set_status("device_002", DeviceStatus.WARNING)
    registry.set_status("device_002", DeviceStatus.WARNING)
    registry.set_status("device_002", DeviceStatus.OFFLINE)

    frames = _drain(conn)
    assert [f["type"] for f in frames] == ["device_status_update", "system_alert", "device_status_update"]
    assert frames[0]["data"]["status"] == "warning"
    assert frames[1]["data"]["deviceId"] == "device_002"
    assert frames[1]["data"]["level"] == "warning"
    assert frames[2]["data"]["status"] == "offline"


@pytest.mark.asyncio
async def test_alerts_can_be_disabled() -> None:
    registry = _registry()
    transport = SyncTransport(registry, alert_on_warning=False)
    conn = transport.attach(_FakeSocket())  # type: ignore[arg-type]
    _drain(conn)

    registry.set_status("device_001", DeviceStatus.WARNING)
    assert [f["type"] for f in _drain(conn)] == ["device_status_update"]


@pytest.mark.asyncio
async def test_history_request_answers_only_the_requester() -> None:
    registry = _registry()
    transport = SyncTransport(registry)
    asking = transport.attach(_FakeSocket())  # type: ignore[arg-type]
    bystander = transport.attach(_FakeSocket())  # type: ignore[arg-type]
    _drain(asking)
    _drain(bystander)

    transport.handle_frame(
        asking,
        '{"type": "request_historical_data", "data": {"deviceId": "device_001", "startTime": 2000, "limit": 2}}',
    )

    frames = _drain(asking)
    assert len(frames) == 1
    assert frames[0]["type"] == "historical_data"
    assert [s["timestamp"] for s in frames[0]["data"]["locations"]] == [4_000, 5_000]
    assert _drain(bystander) == []


@pytest.mark.asyncio
async def test_unknown_device_and_invalid_frames_are_dropped() -> None:
    registry = _registry()
    transport = SyncTransport(registry)
    conn = transport.attach(_FakeSocket())  # type: ignore[arg-type]
    _drain(conn)

    transport.handle_frame(conn, '{"type": "request_historical_data", "data": {"deviceId": "ghost"}}')
    transport.handle_frame(conn, "not json at all")
    transport.handle_frame(conn, '{"type": "initial_data", "data": {}}')

    assert _drain(conn) == []
    assert transport.connection_count == 1


@pytest.mark.asyncio
async def test_device_command_is_acknowledged() -> None:
    transport = SyncTransport(_registry(), clock=lambda: 77)
    conn = transport.attach(_FakeSocket())  # type: ignore[arg-type]
    _drain(conn)

    transport.handle_frame(
        conn,
        '{"type": "device_command", "data": {"deviceId": "device_001", "command": "reboot", "params": {"now": true}}}',
    )

    frames = _drain(conn)
    assert frames == [
        {
            "type": "command_result",
            "data": {
                "deviceId": "device_001",
                "command": "reboot",
                "success": True,
                "message": SIMULATED_COMMAND_MESSAGE,
                "timestamp": 77,
            },
        }
    ]


@pytest.mark.asyncio
async def test_released_connection_stops_receiving_and_detach_stops_relay() -> None:
    registry = _registry()
    transport = SyncTransport(registry)
    gone = transport.attach(_FakeSocket())  # type: ignore[arg-type]
    stays = transport.attach(_FakeSocket())  # type: ignore[arg-type]
    _drain(gone)
    _drain(stays)

    transport.release(gone)
    assert transport.connection_count == 1
    registry.append_location("device_002", _loc(2_000))
    assert _drain(gone) == []
    assert len(_drain(stays)) == 1

    transport.detach()
    registry.append_location("device_002", _loc(3_000))
    assert _drain(stays) == []


class _SlowClosingSocket:
    def __init__(self, gate: asyncio.Event) -> None:
        self.closed = False
        self.close_started = False
        self.close_code: int | None = None
        self._gate = gate

    async def close(self, *, code: int, message: bytes = b"") -> bool:
        self.close_started = True
        self.close_code = code
        await self._gate.wait()
        self.closed = True
        return True


class _BrokenClosingSocket:
    closed = False

    async def close(self, *, code: int, message: bytes = b"") -> bool:
        raise ConnectionResetError("peer vanished")


@pytest.mark.asyncio
async def test_close_all_closes_sockets_concurrently() -> None:
    transport = SyncTransport(_registry())
    gate = asyncio.Event()
    silent = _SlowClosingSocket(gate)
    responsive = _SlowClosingSocket(gate)
    transport.attach(silent)  # type: ignore[arg-type]
    transport.attach(_BrokenClosingSocket())  # type: ignore[arg-type]
    transport.attach(responsive)  # type: ignore[arg-type]

    closing = asyncio.create_task(transport.close_all())
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert silent.close_started
    assert responsive.close_started
    assert not closing.done()

    gate.set()
    await asyncio.wait_for(closing, 1.0)
    assert silent.close_code == WSCloseCode.GOING_AWAY
    assert responsive.closed
