"""Registry change events.

Emitted synchronously by the registry after each accepted mutation. Only the
sync transport turns them into wire frames.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from fleetsync.models.device import Device, DeviceStatus
from fleetsync.models.location import Location


class ChangeKind(StrEnum):
    LOCATION = "location"
    STATUS = "status"


class DeviceChangeEvent(BaseModel):
    """One accepted registry mutation.

    ``device`` is a snapshot taken right after the mutation, so handlers that
    defer work still see the state as it was when the event fired.
    """

    model_config = ConfigDict(frozen=True)

    kind: ChangeKind
    device_id: str = Field(..., description="Device identifier")
    timestamp: int = Field(..., description="Epoch milliseconds of the mutation")
    device: Device
    location: Location | None = None
    status: DeviceStatus | None = None
    previous_status: DeviceStatus | None = None

    @field_validator("device_id")
    @classmethod
    def _check_device_id(cls, value: str) -> str:
        if not value:
            raise ValueError("device_id must be non-empty")
        return value

    @model_validator(mode="after")
    def _check_value_matches_kind(self) -> DeviceChangeEvent:
        if self.kind == ChangeKind.LOCATION and self.location is None:
            raise ValueError("location change requires a location")
        if self.kind == ChangeKind.STATUS and self.status is None:
            raise ValueError("status change requires a status")
        return self
