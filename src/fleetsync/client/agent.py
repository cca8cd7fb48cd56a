"""Client sync agent.

Keeps one websocket to the fleet server, mirrors device state locally and
fans incoming events out to registered listeners. Connection loss triggers a
fixed-interval reconnect with a hard cap on consecutive attempts; every state
transition is published on the ``connection_state`` listener kind.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Mapping
from typing import Any

import aiohttp

from fleetsync._logfmt import compact_for_log
from fleetsync.client.listeners import Listener, ListenerRegistry, Subscription
from fleetsync.client.mirror import DeviceMirror
from fleetsync.config import FleetConfig
from fleetsync.exceptions import FleetConnectionError, FleetError, FleetNotConnectedError, FleetProtocolError
from fleetsync.models._base import now_ms
from fleetsync.models.client_events import (
    ConnectionState,
    ConnectionStatus,
    EventKind,
    HistoricalDataLoaded,
    InitialDataLoaded,
)
from fleetsync.models.device import Device
from fleetsync.models.location import Location
from fleetsync.models.messages import (
    CommandResultData,
    CommandResultMessage,
    DeviceCommandData,
    DeviceCommandMessage,
    DeviceLocationUpdateMessage,
    DeviceStatusUpdateMessage,
    HistoricalDataMessage,
    HistoricalDataRequest,
    InitialDataMessage,
    LocationUpdateData,
    RequestHistoricalDataMessage,
    ServerMessage,
    StatusUpdateData,
    SystemAlertData,
    SystemAlertMessage,
    encode_message,
    parse_server_message,
)

_logger = logging.getLogger(__name__)

_CLOSED_TYPES = frozenset({aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED})


class FleetSyncAgent:
    """Async client that mirrors the server's device registry.

    Usage::

        async with FleetSyncAgent(config) as agent:
            agent.on_location_update(print)
            await agent.initialize()
    """

    def __init__(
        self,
        config: FleetConfig | None = None,
        *,
        url: str | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config or FleetConfig()
        self._url = url or self._config.server_url
        self._external_session = session is not None
        self._http = session
        self._ws: Any = None
        self._reader: asyncio.Task[None] | None = None
        self._connect_task: asyncio.Task[bool] | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._state = ConnectionState.DISCONNECTED
        self._reconnect_attempts = 0
        self._exhausted = False
        self._closing = False
        self._mirror = DeviceMirror(history_cap=self._config.history_cap)
        self._listeners = ListenerRegistry()

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> FleetSyncAgent:
        if self._http is None:
            self._http = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.disconnect()
        if not self._external_session and self._http is not None:
            await self._http.close()
            self._http = None

    # ------------------------------------------------------------------
    # Connection state
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    def get_connection_status(self) -> ConnectionStatus:
        return ConnectionStatus(
            state=self._state,
            reconnect_attempts=self._reconnect_attempts,
            exhausted=self._exhausted,
        )

    def _set_state(self, state: ConnectionState) -> None:
        self._state = state
        self._listeners.dispatch(EventKind.CONNECTION_STATE, self.get_connection_status())

    def _require_http(self) -> aiohttp.ClientSession:
        if self._http is None:
            raise FleetError("Agent not started. Use 'async with FleetSyncAgent(...) as agent:'")
        return self._http

    # ------------------------------------------------------------------
    # Connecting
    # ------------------------------------------------------------------

    async def initialize(self) -> bool:
        """Connect, load the snapshot and start relaying events.

        Returns ``True`` once connected. On failure the agent is left
        ``disconnected`` with a reconnect scheduled (unless the cap was hit)
        and ``False`` is returned; connection errors are never raised.
        """
        self._cancel_reconnect()
        if self._state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            _logger.debug("initialize() ignored, agent already %s", self._state)
            return self._state == ConnectionState.CONNECTED
        if self._exhausted:
            self._exhausted = False
            self._reconnect_attempts = 0
        self._closing = False
        return await self._connect()

    async def _open(self, http: aiohttp.ClientSession) -> tuple[Any, InitialDataMessage]:
        ws = await http.ws_connect(self._url, heartbeat=self._config.heartbeat or None)
        try:
            snapshot = self._decode_snapshot(await ws.receive())
        except BaseException:
            await ws.close()
            raise
        return ws, snapshot

    @staticmethod
    def _decode_snapshot(msg: Any) -> InitialDataMessage:
        if msg.type != aiohttp.WSMsgType.TEXT:
            raise FleetProtocolError(f"Connection ended before snapshot ({msg.type})")
        message = parse_server_message(msg.data)
        if not isinstance(message, InitialDataMessage):
            raise FleetProtocolError(f"Expected initial_data first, got {message.type}", frame=str(msg.data))
        return message

    async def _connect(self) -> bool:
        http = self._require_http()
        self._set_state(ConnectionState.CONNECTING)
        _logger.debug("Connecting to %s", self._url)
        try:
            ws, snapshot = await asyncio.wait_for(self._open(http), self._config.connect_timeout or None)
        except (aiohttp.ClientError, TimeoutError, OSError, FleetProtocolError) as exc:
            _logger.warning("Connection to %s failed: %s", self._url, exc)
            self._on_connection_lost()
            return False

        if self._closing:
            await ws.close()
            return False

        self._ws = ws
        self._mirror.reset(snapshot.data.devices)
        self._reconnect_attempts = 0
        self._exhausted = False
        self._set_state(ConnectionState.CONNECTED)
        _logger.info("Connected to %s, mirroring %d devices", self._url, len(self._mirror))
        self._reader = asyncio.get_running_loop().create_task(self._read_loop(ws), name="fleetsync-agent-reader")
        self._listeners.dispatch(EventKind.INITIAL_DATA_LOADED, InitialDataLoaded(devices=self._mirror.all()))
        return True

    async def _read_loop(self, ws: Any) -> None:
        while True:
            msg = await ws.receive()
            if msg.type == aiohttp.WSMsgType.TEXT:
                self._on_frame(msg.data)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                _logger.warning("Websocket error: %s", ws.exception())
                break
            elif msg.type in _CLOSED_TYPES:
                break

        if ws is not self._ws or self._closing:
            return
        with contextlib.suppress(Exception):
            await ws.close()
        _logger.info("Connection to %s lost", self._url)
        self._on_connection_lost()

    # ------------------------------------------------------------------
    # Reconnecting
    # ------------------------------------------------------------------

    def _on_connection_lost(self) -> None:
        self._ws = None
        self._reader = None
        self._set_state(ConnectionState.DISCONNECTED)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._closing or self._reconnect_handle is not None:
            return
        limit = self._config.max_reconnect_attempts
        if self._reconnect_attempts >= limit:
            self._exhausted = True
            _logger.error("Reconnect cap reached (%d attempts); staying disconnected", limit)
            self._set_state(ConnectionState.DISCONNECTED)
            return

        self._reconnect_attempts += 1
        interval = self._config.reconnect_interval
        self._reconnect_handle = asyncio.get_running_loop().call_later(interval, self._fire_reconnect)
        _logger.info("Reconnect attempt %d/%d in %.1fs", self._reconnect_attempts, limit, interval)
        self._set_state(ConnectionState.RECONNECTING)

    def _fire_reconnect(self) -> None:
        self._reconnect_handle = None
        if self._closing:
            return
        self._connect_task = asyncio.get_running_loop().create_task(self._connect(), name="fleetsync-agent-reconnect")

    def _cancel_reconnect(self) -> None:
        handle = self._reconnect_handle
        self._reconnect_handle = None
        if handle is not None:
            handle.cancel()

    async def disconnect(self) -> None:
        """Drop the connection immediately and stop reconnecting."""
        self._closing = True
        self._cancel_reconnect()

        current = asyncio.current_task()
        for task in (self._reader, self._connect_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._reader = None
        self._connect_task = None

        ws = self._ws
        self._ws = None
        if ws is not None and not ws.closed:
            await ws.close()
        if self._state != ConnectionState.DISCONNECTED:
            self._set_state(ConnectionState.DISCONNECTED)
            _logger.info("Disconnected from %s", self._url)

    async def destroy(self) -> None:
        """Disconnect and drop the mirror and every listener."""
        await self.disconnect()
        self._mirror.clear()
        self._listeners.clear()

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def _on_frame(self, frame: str) -> None:
        try:
            message = parse_server_message(frame)
        except FleetProtocolError:
            _logger.warning("Skipping undecodable frame: %s", compact_for_log(frame), exc_info=True)
            return
        self._on_message(message)

    def _on_message(self, message: ServerMessage) -> None:
        if _logger.isEnabledFor(logging.DEBUG):
            _logger.debug("Received %s %s", message.type, compact_for_log(message.data.to_wire()))

        if isinstance(message, DeviceLocationUpdateMessage):
            data = message.data
            device = self._mirror.apply_location(data.device_id, data.location, data.timestamp, data.device)
            self._listeners.dispatch(
                EventKind.DEVICE_LOCATION_UPDATE,
                LocationUpdateData(
                    device_id=data.device_id,
                    location=data.location,
                    timestamp=data.timestamp,
                    device=device,
                ),
            )
        elif isinstance(message, DeviceStatusUpdateMessage):
            data_s = message.data
            device = self._mirror.apply_status(data_s.device_id, data_s.status, data_s.timestamp, data_s.device)
            self._listeners.dispatch(
                EventKind.DEVICE_STATUS_UPDATE,
                StatusUpdateData(
                    device_id=data_s.device_id,
                    status=data_s.status,
                    timestamp=data_s.timestamp,
                    device=device,
                ),
            )
        elif isinstance(message, HistoricalDataMessage):
            history = message.data
            device = self._mirror.apply_history(history.device_id, history.locations)
            self._listeners.dispatch(
                EventKind.HISTORICAL_DATA_LOADED,
                HistoricalDataLoaded(device_id=history.device_id, locations=history.locations, device=device),
            )
        elif isinstance(message, SystemAlertMessage):
            _logger.info("System alert: %s", message.data.message)
            self._listeners.dispatch(EventKind.SYSTEM_ALERT, message.data)
        elif isinstance(message, CommandResultMessage):
            self._listeners.dispatch(EventKind.COMMAND_RESULT, message.data)
        elif isinstance(message, InitialDataMessage):
            self._mirror.reset(message.data.devices)
            self._listeners.dispatch(EventKind.INITIAL_DATA_LOADED, InitialDataLoaded(devices=self._mirror.all()))

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def _require_connection(self) -> Any:
        ws = self._ws
        if self._state != ConnectionState.CONNECTED or ws is None or ws.closed:
            raise FleetNotConnectedError(f"Not connected to {self._url} (state={self._state})")
        return ws

    async def _send(self, frame: str) -> None:
        ws = self._require_connection()
        try:
            await ws.send_str(frame)
        except ConnectionResetError as exc:
            raise FleetConnectionError(f"Send to {self._url} failed") from exc

    async def request_historical_data(
        self,
        device_id: str,
        start_time: int | None = None,
        end_time: int | None = None,
        *,
        limit: int | None = None,
    ) -> None:
        """Ask the server for history.

        The answer arrives later as a ``historical_data_loaded`` event; nothing
        arrives for a device the server does not know.
        """
        request = HistoricalDataRequest(device_id=device_id, start_time=start_time, end_time=end_time, limit=limit)
        await self._send(encode_message(RequestHistoricalDataMessage(data=request)))

    async def send_device_command(
        self,
        device_id: str,
        command: str,
        params: Mapping[str, Any] | None = None,
    ) -> None:
        """Fire a command; the acknowledgment arrives later as a ``command_result`` event."""
        data = DeviceCommandData(device_id=device_id, command=command, params=dict(params or {}), timestamp=now_ms())
        await self._send(encode_message(DeviceCommandMessage(data=data)))

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, kind: EventKind | str, callback: Listener) -> Subscription:
        return self._listeners.add(EventKind(kind), callback)

    def remove_listener(self, kind: EventKind | str, callback: Listener) -> bool:
        return self._listeners.remove(EventKind(kind), callback)

    def on_initial_data(self, callback: Callable[[InitialDataLoaded], None]) -> Subscription:
        return self._listeners.add(EventKind.INITIAL_DATA_LOADED, callback)

    def on_location_update(self, callback: Callable[[LocationUpdateData], None]) -> Subscription:
        return self._listeners.add(EventKind.DEVICE_LOCATION_UPDATE, callback)

    def on_status_update(self, callback: Callable[[StatusUpdateData], None]) -> Subscription:
        return self._listeners.add(EventKind.DEVICE_STATUS_UPDATE, callback)

    def on_system_alert(self, callback: Callable[[SystemAlertData], None]) -> Subscription:
        return self._listeners.add(EventKind.SYSTEM_ALERT, callback)

    def on_historical_data(self, callback: Callable[[HistoricalDataLoaded], None]) -> Subscription:
        return self._listeners.add(EventKind.HISTORICAL_DATA_LOADED, callback)

    def on_command_result(self, callback: Callable[[CommandResultData], None]) -> Subscription:
        return self._listeners.add(EventKind.COMMAND_RESULT, callback)

    def on_connection_state(self, callback: Callable[[ConnectionStatus], None]) -> Subscription:
        return self._listeners.add(EventKind.CONNECTION_STATE, callback)

    # ------------------------------------------------------------------
    # Mirror reads (never touch the network)
    # ------------------------------------------------------------------

    def get_device_data(self, device_id: str) -> Device | None:
        return self._mirror.get(device_id)

    def get_all_device_data(self) -> list[Device]:
        return self._mirror.all()

    def get_device_location_history(self, device_id: str, limit: int = 50) -> list[Location]:
        return self._mirror.history(device_id, limit)
