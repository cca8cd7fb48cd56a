"""Location sample model."""

from __future__ import annotations

from pydantic import ConfigDict, Field

from fleetsync.models._base import FleetBaseModel


class Location(FleetBaseModel):
    """One immutable position fix.

    Parameters
    ----------
    lat, lng : float
        Coordinates in degrees.
    timestamp : int
        Epoch milliseconds of the fix.
    speed : float
        Speed in km/h, never negative.
    heading : float
        Heading in degrees, ``0 <= heading < 360``.
    """

    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float
    timestamp: int
    speed: float = Field(default=0.0, ge=0.0)
    heading: float = Field(default=0.0, ge=0.0, lt=360.0)
