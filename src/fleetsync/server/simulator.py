"""Probabilistic telemetry simulator.

Seeds the registry with synthetic devices and, on every tick, nudges each
device's position and occasionally flips its status. The output is synthetic
load, not a replayable trace; pass a seeded :class:`random.Random` when a test
needs repeatable draws.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
from collections.abc import Callable

from fleetsync.config import FleetConfig
from fleetsync.models._base import now_ms
from fleetsync.models.device import DeviceStatus
from fleetsync.models.location import Location
from fleetsync.state.events import DeviceChangeEvent
from fleetsync.state.registry import DeviceRegistry

_logger = logging.getLogger(__name__)

_STATUSES: tuple[DeviceStatus, ...] = tuple(DeviceStatus)


class TelemetrySimulator:
    """Drives registry state forward on a fixed interval."""

    def __init__(
        self,
        registry: DeviceRegistry,
        config: FleetConfig,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._registry = registry
        self._config = config
        self._rng = rng or random.Random()
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._ticks = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def ticks(self) -> int:
        return self._ticks

    # ------------------------------------------------------------------
    # Sample generation
    # ------------------------------------------------------------------

    def _jitter(self, width: float) -> float:
        return (self._rng.random() - 0.5) * width

    def _draw_motion(self) -> tuple[float, float]:
        speed = self._rng.random() * self._config.max_speed
        heading = self._rng.random() * 360.0
        return speed, heading

    def generate_history(self, count: int | None = None) -> list[Location]:
        """Synthetic history around a random base coordinate, one sample per interval, ending now."""
        count = self._config.seed_history_size if count is None else count
        base_lat = self._config.base_latitude + self._jitter(self._config.seed_spread)
        base_lng = self._config.base_longitude + self._jitter(self._config.seed_spread)
        now = self._clock()
        samples: list[Location] = []
        for i in range(count):
            speed, heading = self._draw_motion()
            samples.append(
                Location(
                    lat=base_lat + self._jitter(self._config.seed_jitter),
                    lng=base_lng + self._jitter(self._config.seed_jitter),
                    timestamp=now - (count - i) * self._config.seed_interval_ms,
                    speed=speed,
                    heading=heading,
                )
            )
        return samples

    def next_location(self, previous: Location) -> Location:
        """A new sample a small random step away from *previous*, stamped now."""
        speed, heading = self._draw_motion()
        return Location(
            lat=previous.lat + self._jitter(self._config.location_jitter),
            lng=previous.lng + self._jitter(self._config.location_jitter),
            timestamp=self._clock(),
            speed=speed,
            heading=heading,
        )

    def seed(self, device_ids: tuple[str, ...] | None = None) -> None:
        """Register every configured device with a synthetic history and random status."""
        for device_id in device_ids or self._config.device_ids:
            self._registry.register(
                device_id,
                locations=self.generate_history(),
                status=self._rng.choice(_STATUSES),
            )
        _logger.info("Seeded %d devices", len(self._registry))

    # ------------------------------------------------------------------
    # Ticking
    # ------------------------------------------------------------------

    def tick(self) -> list[DeviceChangeEvent]:
        """Run one simulation step over every device; returns the events it caused."""
        events: list[DeviceChangeEvent] = []
        for device_id in self._registry.device_ids():
            if self._rng.random() < self._config.location_update_probability:
                sample = self.next_location(self._registry.latest_location(device_id))
                events.append(self._registry.append_location(device_id, sample))

            if self._rng.random() < self._config.status_change_probability:
                drawn = self._rng.choice(_STATUSES)
                if drawn != self._registry.status_of(device_id):
                    event = self._registry.set_status(device_id, drawn)
                    if event is not None:
                        events.append(event)
        self._ticks += 1
        _logger.debug("Tick %d produced %d events", self._ticks, len(events))
        return events

    async def run(self) -> None:
        """Tick forever on the configured interval."""
        interval = self._config.tick_interval
        while True:
            await asyncio.sleep(interval)
            try:
                self.tick()
            except Exception:
                _logger.warning("Simulator tick failed", exc_info=True)

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self.run(), name="fleetsync-simulator")
        _logger.info("Simulator started interval=%.1fs", self._config.tick_interval)

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        _logger.info("Simulator stopped after %d ticks", self._ticks)
