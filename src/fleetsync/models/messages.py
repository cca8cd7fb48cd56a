"""Websocket wire messages.

Every frame is a JSON object ``{"type": <kind>, "data": {...}}``. Frames in
each direction form a discriminated union on ``type`` so receivers can
dispatch on the parsed class instead of on raw strings.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import ConfigDict, Field, TypeAdapter, ValidationError

from fleetsync.exceptions import FleetProtocolError
from fleetsync.models._base import FleetBaseModel, now_ms
from fleetsync.models.device import Device, DeviceStatus
from fleetsync.models.location import Location


class AlertLevel(StrEnum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


class InitialData(FleetBaseModel):
    devices: list[Device] = Field(default_factory=list)


class LocationUpdateData(FleetBaseModel):
    device_id: str
    location: Location
    timestamp: int
    device: Device


class StatusUpdateData(FleetBaseModel):
    device_id: str
    status: DeviceStatus
    timestamp: int
    device: Device


class SystemAlertData(FleetBaseModel):
    device_id: str | None = None
    level: AlertLevel = AlertLevel.WARNING
    message: str = ""
    timestamp: int = Field(default_factory=now_ms)


class HistoricalData(FleetBaseModel):
    device_id: str
    locations: list[Location] = Field(default_factory=list)


class CommandResultData(FleetBaseModel):
    """Acknowledgment of a device command.

    The server has no actuation path to real devices; ``success`` only means
    the command was received.
    """

    device_id: str
    command: str
    success: bool
    message: str = ""
    timestamp: int = Field(default_factory=now_ms)


class HistoricalDataRequest(FleetBaseModel):
    device_id: str
    start_time: int | None = None
    end_time: int | None = None
    limit: int | None = None


class DeviceCommandData(FleetBaseModel):
    device_id: str
    command: str
    params: dict[str, Any] = Field(default_factory=dict)
    timestamp: int | None = None


# ---------------------------------------------------------------------------
# Frames
# ---------------------------------------------------------------------------


class _Frame(FleetBaseModel):
    model_config = ConfigDict(frozen=True)


class InitialDataMessage(_Frame):
    type: Literal["initial_data"] = "initial_data"
    data: InitialData


class DeviceLocationUpdateMessage(_Frame):
    type: Literal["device_location_update"] = "device_location_update"
    data: LocationUpdateData


class DeviceStatusUpdateMessage(_Frame):
    type: Literal["device_status_update"] = "device_status_update"
    data: StatusUpdateData


class SystemAlertMessage(_Frame):
    type: Literal["system_alert"] = "system_alert"
    data: SystemAlertData


class HistoricalDataMessage(_Frame):
    type: Literal["historical_data"] = "historical_data"
    data: HistoricalData


class CommandResultMessage(_Frame):
    type: Literal["command_result"] = "command_result"
    data: CommandResultData


class RequestHistoricalDataMessage(_Frame):
    type: Literal["request_historical_data"] = "request_historical_data"
    data: HistoricalDataRequest


class DeviceCommandMessage(_Frame):
    type: Literal["device_command"] = "device_command"
    data: DeviceCommandData


ServerMessage = Annotated[
    InitialDataMessage
    | DeviceLocationUpdateMessage
    | DeviceStatusUpdateMessage
    | SystemAlertMessage
    | HistoricalDataMessage
    | CommandResultMessage,
    Field(discriminator="type"),
]
"""Frames sent from server to client."""

ClientMessage = Annotated[
    RequestHistoricalDataMessage | DeviceCommandMessage,
    Field(discriminator="type"),
]
"""Frames sent from client to server."""

_SERVER_ADAPTER: TypeAdapter[ServerMessage] = TypeAdapter(ServerMessage)
_CLIENT_ADAPTER: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)


def parse_server_message(frame: str | bytes) -> ServerMessage:
    """Decode a server→client frame, raising :class:`FleetProtocolError` if invalid."""
    try:
        return _SERVER_ADAPTER.validate_json(frame)
    except ValidationError as exc:
        raise FleetProtocolError(f"Invalid server frame: {exc.error_count()} error(s)", frame=str(frame)) from exc


def parse_client_message(frame: str | bytes) -> ClientMessage:
    """Decode a client→server frame, raising :class:`FleetProtocolError` if invalid."""
    try:
        return _CLIENT_ADAPTER.validate_json(frame)
    except ValidationError as exc:
        raise FleetProtocolError(f"Invalid client frame: {exc.error_count()} error(s)", frame=str(frame)) from exc


def encode_message(message: FleetBaseModel) -> str:
    """Serialize a frame to its JSON wire form."""
    return message.model_dump_json(by_alias=True)
