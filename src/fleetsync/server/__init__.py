"""Server side: simulator, websocket sync transport and the aiohttp application."""

from fleetsync.server.app import create_app
from fleetsync.server.simulator import TelemetrySimulator
from fleetsync.server.transport import SyncTransport

__all__ = ["SyncTransport", "TelemetrySimulator", "create_app"]
