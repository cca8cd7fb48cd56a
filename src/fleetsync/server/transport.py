"""Websocket sync transport.

Owns:
- accepting subscriber connections and priming each with a snapshot
- relaying registry change events to every subscriber
- answering point-to-point history requests and device commands

Each connection has its own outbox queue drained by a dedicated writer task.
Frames are queued synchronously from the registry change callback, so the
order frames leave a connection is the order the registry mutated.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from collections.abc import Callable

from aiohttp import WSCloseCode, WSMsgType, web

from fleetsync._logfmt import compact_for_log
from fleetsync.exceptions import FleetProtocolError
from fleetsync.models._base import FleetBaseModel, now_ms
from fleetsync.models.device import DeviceStatus
from fleetsync.models.messages import (
    AlertLevel,
    CommandResultData,
    CommandResultMessage,
    DeviceCommandData,
    DeviceCommandMessage,
    DeviceLocationUpdateMessage,
    DeviceStatusUpdateMessage,
    HistoricalData,
    HistoricalDataMessage,
    HistoricalDataRequest,
    InitialData,
    InitialDataMessage,
    LocationUpdateData,
    RequestHistoricalDataMessage,
    StatusUpdateData,
    SystemAlertData,
    SystemAlertMessage,
    encode_message,
    parse_client_message,
)
from fleetsync.state.events import ChangeKind, DeviceChangeEvent
from fleetsync.state.registry import DeviceRegistry

_logger = logging.getLogger(__name__)

SIMULATED_COMMAND_MESSAGE = "Command accepted (simulated; no device actuation)"


class SubscriberConnection:
    """One connected subscriber and its outbound queue."""

    def __init__(self, ws: web.WebSocketResponse, remote: str | None = None) -> None:
        self.id = secrets.token_hex(4)
        self.ws = ws
        self.remote = remote or "unknown"
        self.frames_sent = 0
        self._outbox: asyncio.Queue[str | None] = asyncio.Queue()

    def enqueue(self, frame: str) -> None:
        self._outbox.put_nowait(frame)

    def finish(self) -> None:
        """Let the writer stop once everything queued so far was sent."""
        self._outbox.put_nowait(None)

    async def drain(self) -> None:
        while True:
            frame = await self._outbox.get()
            if frame is None:
                return
            if self.ws.closed:
                return
            try:
                await self.ws.send_str(frame)
            except ConnectionResetError:
                _logger.debug("Subscriber %s went away mid-send", self.id)
                return
            self.frames_sent += 1


class SyncTransport:
    """Bridges a :class:`DeviceRegistry` to any number of websocket subscribers."""

    def __init__(
        self,
        registry: DeviceRegistry,
        *,
        alert_on_warning: bool = True,
        heartbeat: float | None = 30.0,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._registry = registry
        self._alert_on_warning = alert_on_warning
        self._heartbeat = heartbeat or None
        self._clock = clock
        self._connections: dict[str, SubscriberConnection] = {}
        self._detach = registry.add_change_listener(self.publish_change)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def detach(self) -> None:
        """Stop relaying registry changes."""
        self._detach()

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def snapshot_message(self) -> InitialDataMessage:
        return InitialDataMessage(data=InitialData(devices=self._registry.list()))

    def broadcast(self, message: FleetBaseModel) -> int:
        """Queue *message* for every subscriber; returns how many got it."""
        frame = encode_message(message)
        targets = list(self._connections.values())
        for conn in targets:
            conn.enqueue(frame)
        return len(targets)

    def publish_change(self, event: DeviceChangeEvent) -> None:
        """Registry change listener: turn one mutation into broadcast frames."""
        if event.kind == ChangeKind.LOCATION and event.location is not None:
            self.broadcast(
                DeviceLocationUpdateMessage(
                    data=LocationUpdateData(
                        device_id=event.device_id,
                        location=event.location,
                        timestamp=event.timestamp,
                        device=event.device,
                    )
                )
            )
            return

        if event.kind == ChangeKind.STATUS and event.status is not None:
            self.broadcast(
                DeviceStatusUpdateMessage(
                    data=StatusUpdateData(
                        device_id=event.device_id,
                        status=event.status,
                        timestamp=event.timestamp,
                        device=event.device,
                    )
                )
            )
            if self._alert_on_warning and event.status == DeviceStatus.WARNING:
                self.broadcast(
                    SystemAlertMessage(
                        data=SystemAlertData(
                            device_id=event.device_id,
                            level=AlertLevel.WARNING,
                            message=f"Device {event.device_id} reported a warning",
                            timestamp=event.timestamp,
                        )
                    )
                )

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def handle_frame(self, conn: SubscriberConnection, frame: str) -> None:
        """Decode and answer one client frame; invalid frames are logged and dropped."""
        try:
            message = parse_client_message(frame)
        except FleetProtocolError:
            _logger.warning("Ignoring invalid frame from %s: %s", conn.id, compact_for_log(frame), exc_info=True)
            return

        if isinstance(message, RequestHistoricalDataMessage):
            self._answer_history(conn, message.data)
        elif isinstance(message, DeviceCommandMessage):
            self._answer_command(conn, message.data)

    def _answer_history(self, conn: SubscriberConnection, request: HistoricalDataRequest) -> None:
        if request.device_id not in self._registry:
            _logger.debug("History requested by %s for unknown device %s", conn.id, request.device_id)
            return
        locations = self._registry.query_history(
            request.device_id,
            request.start_time,
            request.end_time,
            request.limit if request.limit is not None else self._registry.history_cap,
        )
        _logger.debug("Sending %d samples of %s to %s", len(locations), request.device_id, conn.id)
        conn.enqueue(encode_message(HistoricalDataMessage(data=HistoricalData(device_id=request.device_id, locations=locations))))

    def _answer_command(self, conn: SubscriberConnection, command: DeviceCommandData) -> None:
        _logger.info(
            "Device command from %s: %s %s params=%s",
            conn.id,
            command.device_id,
            command.command,
            compact_for_log(command.params),
        )
        result = CommandResultData(
            device_id=command.device_id,
            command=command.command,
            success=True,
            message=SIMULATED_COMMAND_MESSAGE,
            timestamp=self._clock(),
        )
        conn.enqueue(encode_message(CommandResultMessage(data=result)))

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def attach(self, ws: web.WebSocketResponse, remote: str | None = None) -> SubscriberConnection:
        """Register a prepared socket and queue its snapshot ahead of any broadcast."""
        conn = SubscriberConnection(ws, remote)
        conn.enqueue(encode_message(self.snapshot_message()))
        self._connections[conn.id] = conn
        _logger.info("Subscriber %s connected from %s (%d total)", conn.id, conn.remote, len(self._connections))
        return conn

    def release(self, conn: SubscriberConnection) -> None:
        if self._connections.pop(conn.id, None) is not None:
            _logger.info(
                "Subscriber %s disconnected after %d frames (%d left)",
                conn.id,
                conn.frames_sent,
                len(self._connections),
            )
        conn.finish()

    async def handle(self, request: web.Request) -> web.WebSocketResponse:
        """aiohttp websocket handler."""
        ws = web.WebSocketResponse(heartbeat=self._heartbeat)
        await ws.prepare(request)

        conn = self.attach(ws, request.remote)
        writer = asyncio.create_task(conn.drain(), name=f"fleetsync-writer-{conn.id}")
        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    self.handle_frame(conn, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    _logger.warning("Subscriber %s socket error: %s", conn.id, ws.exception())
        finally:
            self.release(conn)
            await writer
        return ws

    async def close_all(self) -> None:
        """Close every subscriber socket, e.g. on application shutdown."""
        conns = list(self._connections.values())
        results = await asyncio.gather(
            *(conn.ws.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutdown") for conn in conns),
            return_exceptions=True,
        )
        for conn, result in zip(conns, results, strict=True):
            if isinstance(result, BaseException):
                _logger.warning("Closing subscriber %s failed", conn.id, exc_info=result)
