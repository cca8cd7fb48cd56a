"""Payloads delivered to listeners registered on a client sync agent."""

from __future__ import annotations

from enum import StrEnum

from pydantic import ConfigDict, Field, computed_field

from fleetsync.models._base import FleetBaseModel
from fleetsync.models.device import Device
from fleetsync.models.location import Location


class EventKind(StrEnum):
    INITIAL_DATA_LOADED = "initial_data_loaded"
    DEVICE_LOCATION_UPDATE = "device_location_update"
    DEVICE_STATUS_UPDATE = "device_status_update"
    SYSTEM_ALERT = "system_alert"
    HISTORICAL_DATA_LOADED = "historical_data_loaded"
    COMMAND_RESULT = "command_result"
    CONNECTION_STATE = "connection_state"


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class ConnectionStatus(FleetBaseModel):
    """Point-in-time view of an agent's connection.

    ``exhausted`` is set once the reconnect cap was reached; the agent stays
    ``disconnected`` until :meth:`initialize` is called again.
    """

    model_config = ConfigDict(frozen=True)

    state: ConnectionState
    reconnect_attempts: int = 0
    exhausted: bool = False

    @computed_field  # type: ignore[prop-decorator]
    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED


class InitialDataLoaded(FleetBaseModel):
    devices: list[Device] = Field(default_factory=list)


class HistoricalDataLoaded(FleetBaseModel):
    device_id: str
    locations: list[Location] = Field(default_factory=list)
    device: Device
