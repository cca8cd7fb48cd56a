"""fleetsync - Real-time fleet telemetry server and client sync agent."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("fleetsync")
except PackageNotFoundError:
    __version__ = "0+local"
from fleetsync.client import FleetSyncAgent, Subscription
from fleetsync.config import FleetConfig
from fleetsync.exceptions import (
    DeviceNotFoundError,
    FleetConfigError,
    FleetConnectionError,
    FleetError,
    FleetListenerError,
    FleetNotConnectedError,
    FleetProtocolError,
)
from fleetsync.models import (
    AlertLevel,
    CommandResultData,
    ConnectionState,
    ConnectionStatus,
    Device,
    DeviceStatus,
    EventKind,
    HistoricalDataLoaded,
    InitialDataLoaded,
    Location,
    LocationUpdateData,
    StatusUpdateData,
    SystemAlertData,
)
from fleetsync.server import SyncTransport, TelemetrySimulator, create_app
from fleetsync.state.registry import DeviceRegistry

__all__ = [
    "AlertLevel",
    "CommandResultData",
    "ConnectionState",
    "ConnectionStatus",
    "Device",
    "DeviceNotFoundError",
    "DeviceRegistry",
    "DeviceStatus",
    "EventKind",
    "FleetConfig",
    "FleetConfigError",
    "FleetConnectionError",
    "FleetError",
    "FleetListenerError",
    "FleetNotConnectedError",
    "FleetProtocolError",
    "FleetSyncAgent",
    "HistoricalDataLoaded",
    "InitialDataLoaded",
    "Location",
    "LocationUpdateData",
    "StatusUpdateData",
    "Subscription",
    "SyncTransport",
    "SystemAlertData",
    "TelemetrySimulator",
    "__version__",
    "create_app",
]
