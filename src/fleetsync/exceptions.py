"""Custom exception hierarchy for fleetsync."""

from __future__ import annotations

from typing import Any


class FleetError(Exception):
    """Base exception for all fleetsync errors."""


class FleetConfigError(FleetError):
    """Invalid or missing configuration."""


class DeviceNotFoundError(FleetError):
    """Query or mutation against a device id the registry does not know."""

    def __init__(self, device_id: str) -> None:
        self.device_id = device_id
        super().__init__(f"Device not found: {device_id}")


class FleetConnectionError(FleetError):
    """Transport-level failure (connect refused, socket closed, timeout)."""


class FleetNotConnectedError(FleetConnectionError):
    """An operation that needs a live connection was called while disconnected."""


class FleetProtocolError(FleetError):
    """A websocket frame could not be decoded or arrived out of place."""

    def __init__(self, message: str, *, frame: str = "") -> None:
        self.frame = frame
        super().__init__(message)


class FleetListenerError(FleetError):
    """A registered listener callback raised.

    Never propagated out of dispatch; dispatch hands these back as records
    with the original exception attached as ``__cause__``.
    """

    def __init__(self, kind: str, callback: Any) -> None:
        self.kind = kind
        self.callback = callback
        name = getattr(callback, "__qualname__", None) or repr(callback)
        super().__init__(f"Listener {name} failed for {kind}")
