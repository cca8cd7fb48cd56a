"""Static configuration handed to the server and client at startup."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from fleetsync._normalize import is_clean_id, safe_float, safe_int
from fleetsync.exceptions import FleetConfigError

DEFAULT_DEVICE_IDS: tuple[str, ...] = (
    "device_001",
    "device_002",
    "device_003",
    "device_004",
    "device_005",
)


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env_key: str, value: str, parse: Any) -> Any:
    parsed = parse(value)
    if parsed is None:
        raise FleetConfigError(f"{env_key} must be numeric, got {value!r}")
    return parsed


@dataclasses.dataclass(frozen=True)
class FleetConfig:
    """Server and client configuration.

    Durations are in seconds; timestamps on the wire are epoch milliseconds.

    Parameters
    ----------
    host : str
        Interface the server binds to.
    port : int
        Server port.
    server_url : str
        Websocket URL the client agent connects to.
    heartbeat : float
        Websocket ping interval for both ends. ``0`` disables pings.
    device_ids : tuple of str
        Devices seeded into the registry at startup.
    tick_interval : float
        Seconds between simulator ticks.
    location_update_probability : float
        Per device, per tick chance of a new location sample.
    status_change_probability : float
        Per device, per tick chance of drawing a new status.
    history_cap : int
        Maximum number of location samples kept per device.
    seed_history_size : int
        Synthetic samples generated per device at startup.
    seed_interval_ms : int
        Spacing between seeded samples.
    base_latitude, base_longitude : float
        Centre of the area devices are scattered around.
    seed_spread : float
        Full width (degrees) of the per-device base coordinate scatter.
    seed_jitter : float
        Full width (degrees) of the scatter of seeded samples around the base.
    location_jitter : float
        Full width (degrees) of the per-tick movement.
    max_speed : float
        Upper bound (exclusive) for simulated speed in km/h.
    simulator_enabled : bool
        Run the periodic simulator task with the server.
    alert_on_warning : bool
        Broadcast a ``system_alert`` whenever a device enters ``warning``.
    reconnect_interval : float
        Fixed delay before each client reconnect attempt.
    max_reconnect_attempts : int
        Consecutive failed attempts after which the client stops retrying.
    connect_timeout : float
        Seconds the client waits for the socket and the initial snapshot.
    """

    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3000
    server_url: str = "ws://localhost:3000/ws"
    heartbeat: float = 30.0
    device_ids: tuple[str, ...] = DEFAULT_DEVICE_IDS
    tick_interval: float = 5.0
    location_update_probability: float = 0.30
    status_change_probability: float = 0.05
    history_cap: int = 100
    seed_history_size: int = 50
    seed_interval_ms: int = 60_000
    base_latitude: float = 39.9042
    base_longitude: float = 116.4074
    seed_spread: float = 0.1
    seed_jitter: float = 0.01
    location_jitter: float = 0.001
    max_speed: float = 60.0
    simulator_enabled: bool = True
    alert_on_warning: bool = True
    reconnect_interval: float = 5.0
    max_reconnect_attempts: int = 10
    connect_timeout: float = 10.0

    def __post_init__(self) -> None:
        for name in ("location_update_probability", "status_change_probability"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise FleetConfigError(f"{name} must be within [0, 1], got {value}")
        if self.history_cap < 1:
            raise FleetConfigError(f"history_cap must be positive, got {self.history_cap}")
        if self.seed_history_size < 1:
            raise FleetConfigError(f"seed_history_size must be positive, got {self.seed_history_size}")
        for name in ("tick_interval", "reconnect_interval", "connect_timeout", "heartbeat"):
            if getattr(self, name) < 0:
                raise FleetConfigError(f"{name} must not be negative")
        if self.max_reconnect_attempts < 0:
            raise FleetConfigError("max_reconnect_attempts must not be negative")
        if not self.device_ids:
            raise FleetConfigError("device_ids must name at least one device")
        if len(set(self.device_ids)) != len(self.device_ids):
            raise FleetConfigError("device_ids must be unique")
        bad_ids = [device_id for device_id in self.device_ids if not is_clean_id(device_id)]
        if bad_ids:
            raise FleetConfigError(f"device_ids must be non-empty and unpadded, got {bad_ids!r}")

    def client_settings(self) -> dict[str, Any]:
        """Settings a connecting client needs, as served at ``/api/config``."""
        return {
            "websocket": {
                "url": self.server_url,
                "reconnectInterval": int(self.reconnect_interval * 1000),
                "maxReconnectAttempts": self.max_reconnect_attempts,
            },
            "simulation": {
                "tickInterval": int(self.tick_interval * 1000),
                "historyCap": self.history_cap,
                "deviceCount": len(self.device_ids),
            },
        }

    @classmethod
    def from_env(cls, **overrides: Any) -> FleetConfig:
        """Create configuration from ``FLEET_*`` environment variables.

        Explicit keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        FleetConfig
            Populated configuration.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        for env_key, field_name in {
            "FLEET_HOST": "host",
            "FLEET_SERVER_URL": "server_url",
        }.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_INT_MAP = {
            "FLEET_PORT": "port",
            "FLEET_HISTORY_CAP": "history_cap",
            "FLEET_SEED_HISTORY_SIZE": "seed_history_size",
            "FLEET_MAX_RECONNECT_ATTEMPTS": "max_reconnect_attempts",
        }
        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = _env_number(env_key, val, safe_int)

        _ENV_FLOAT_MAP = {
            "FLEET_HEARTBEAT": "heartbeat",
            "FLEET_TICK_INTERVAL": "tick_interval",
            "FLEET_LOCATION_UPDATE_PROBABILITY": "location_update_probability",
            "FLEET_STATUS_CHANGE_PROBABILITY": "status_change_probability",
            "FLEET_BASE_LATITUDE": "base_latitude",
            "FLEET_BASE_LONGITUDE": "base_longitude",
            "FLEET_RECONNECT_INTERVAL": "reconnect_interval",
            "FLEET_CONNECT_TIMEOUT": "connect_timeout",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = _env_number(env_key, val, safe_float)

        ids_env = env.get("FLEET_DEVICE_IDS")
        if ids_env is not None:
            config_kwargs["device_ids"] = tuple(part.strip() for part in ids_env.split(",") if part.strip())

        config_kwargs["simulator_enabled"] = _env_bool(env.get("FLEET_SIMULATOR_ENABLED"), True)
        config_kwargs["alert_on_warning"] = _env_bool(env.get("FLEET_ALERT_ON_WARNING"), True)

        if "device_ids" in overrides:
            overrides["device_ids"] = tuple(overrides["device_ids"])
        config_kwargs.update(overrides)

        return cls(**config_kwargs)
