"""Data models for fleetsync devices, wire frames and listener payloads."""

from fleetsync.models._base import FleetBaseModel, now_ms
from fleetsync.models.client_events import (
    ConnectionState,
    ConnectionStatus,
    EventKind,
    HistoricalDataLoaded,
    InitialDataLoaded,
)
from fleetsync.models.device import DEFAULT_HISTORY_CAP, Device, DeviceStatus
from fleetsync.models.location import Location
from fleetsync.models.messages import (
    AlertLevel,
    ClientMessage,
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
    ServerMessage,
    StatusUpdateData,
    SystemAlertData,
    SystemAlertMessage,
    encode_message,
    parse_client_message,
    parse_server_message,
)

__all__ = [
    "AlertLevel",
    "ClientMessage",
    "CommandResultData",
    "CommandResultMessage",
    "ConnectionState",
    "ConnectionStatus",
    "DEFAULT_HISTORY_CAP",
    "Device",
    "DeviceCommandData",
    "DeviceCommandMessage",
    "DeviceLocationUpdateMessage",
    "DeviceStatus",
    "DeviceStatusUpdateMessage",
    "EventKind",
    "FleetBaseModel",
    "HistoricalData",
    "HistoricalDataLoaded",
    "HistoricalDataMessage",
    "HistoricalDataRequest",
    "InitialData",
    "InitialDataLoaded",
    "InitialDataMessage",
    "Location",
    "LocationUpdateData",
    "RequestHistoricalDataMessage",
    "ServerMessage",
    "StatusUpdateData",
    "SystemAlertData",
    "SystemAlertMessage",
    "encode_message",
    "now_ms",
    "parse_client_message",
    "parse_server_message",
]
