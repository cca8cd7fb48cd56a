"""aiohttp application wiring for the fleet server.

Routes:
- ``GET /ws``: websocket sync transport
- ``GET /api/config``: client-facing settings
- ``GET /api/devices``: all devices
- ``GET /api/devices/{device_id}``: one device
- ``GET /api/devices/{device_id}/history``: filtered history
"""

from __future__ import annotations

import logging
import random
from collections.abc import Awaitable, Callable

from aiohttp import web

from fleetsync._normalize import safe_integral
from fleetsync.config import FleetConfig
from fleetsync.exceptions import DeviceNotFoundError
from fleetsync.server.simulator import TelemetrySimulator
from fleetsync.server.transport import SyncTransport
from fleetsync.state.registry import DeviceRegistry

_logger = logging.getLogger(__name__)

CONFIG_KEY = web.AppKey("config", FleetConfig)
REGISTRY_KEY = web.AppKey("registry", DeviceRegistry)
SIMULATOR_KEY = web.AppKey("simulator", TelemetrySimulator)
TRANSPORT_KEY = web.AppKey("transport", SyncTransport)

_Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def _json_error(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


@web.middleware
async def error_middleware(request: web.Request, handler: _Handler) -> web.StreamResponse:
    """Render every failure as a JSON body; nothing escapes to crash the server."""
    try:
        return await handler(request)
    except DeviceNotFoundError as exc:
        return _json_error(404, str(exc))
    except web.HTTPNotFound:
        return _json_error(404, "Route not found")
    except web.HTTPException as exc:
        if exc.status >= 400:
            return _json_error(exc.status, exc.reason)
        raise
    except Exception:
        _logger.exception("Unhandled error for %s %s", request.method, request.path)
        return _json_error(500, "Internal server error")


def _query_int(request: web.Request, name: str) -> int | None:
    raw = request.query.get(name)
    if raw is None or raw == "":
        return None
    value = safe_integral(raw)
    if value is None:
        raise web.HTTPBadRequest(reason=f"{name} must be an integer")
    return value


async def get_config(request: web.Request) -> web.Response:
    return web.json_response(request.app[CONFIG_KEY].client_settings())


async def list_devices(request: web.Request) -> web.Response:
    registry = request.app[REGISTRY_KEY]
    return web.json_response([device.to_wire() for device in registry.list()])


async def get_device(request: web.Request) -> web.Response:
    registry = request.app[REGISTRY_KEY]
    device = registry.require(request.match_info["device_id"])
    return web.json_response(device.to_wire())


async def get_device_history(request: web.Request) -> web.Response:
    registry = request.app[REGISTRY_KEY]
    device_id = request.match_info["device_id"]
    if device_id not in registry:
        raise DeviceNotFoundError(device_id)

    start_time = _query_int(request, "startTime")
    end_time = _query_int(request, "endTime")
    limit = _query_int(request, "limit")
    locations = registry.query_history(
        device_id,
        start_time,
        end_time,
        limit if limit is not None else registry.history_cap,
    )
    return web.json_response(
        {
            "deviceId": device_id,
            "locations": [sample.to_wire() for sample in locations],
            "total": len(locations),
        }
    )


async def _start_simulator(app: web.Application) -> None:
    if app[CONFIG_KEY].simulator_enabled:
        app[SIMULATOR_KEY].start()


async def _close_subscribers(app: web.Application) -> None:
    await app[TRANSPORT_KEY].close_all()


async def _stop_simulator(app: web.Application) -> None:
    await app[SIMULATOR_KEY].stop()
    app[TRANSPORT_KEY].detach()


def create_app(
    config: FleetConfig | None = None,
    *,
    registry: DeviceRegistry | None = None,
    rng: random.Random | None = None,
) -> web.Application:
    """Build the server application.

    When *registry* is omitted a new one is created and seeded with the
    configured devices; a supplied registry is used as-is.
    """
    config = config or FleetConfig()
    seeded = registry is None
    registry = registry if registry is not None else DeviceRegistry(history_cap=config.history_cap)
    simulator = TelemetrySimulator(registry, config, rng=rng)
    if seeded:
        simulator.seed()
    transport = SyncTransport(
        registry,
        alert_on_warning=config.alert_on_warning,
        heartbeat=config.heartbeat,
    )

    app = web.Application(middlewares=[error_middleware])
    app[CONFIG_KEY] = config
    app[REGISTRY_KEY] = registry
    app[SIMULATOR_KEY] = simulator
    app[TRANSPORT_KEY] = transport

    app.router.add_get("/ws", transport.handle)
    app.router.add_get("/api/config", get_config)
    app.router.add_get("/api/devices", list_devices)
    app.router.add_get("/api/devices/{device_id}", get_device)
    app.router.add_get("/api/devices/{device_id}/history", get_device_history)

    app.on_startup.append(_start_simulator)
    app.on_shutdown.append(_close_subscribers)
    app.on_cleanup.append(_stop_simulator)
    return app
