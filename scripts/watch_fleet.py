#!/usr/bin/env python3
"""Watch a running fleet server from the command line.

Connects a ``FleetSyncAgent``, prints the snapshot and then every event as
it arrives. Optionally requests history or sends a command once connected.

Usage
-----
::

    python scripts/watch_fleet.py --url ws://localhost:3000/ws
    python scripts/watch_fleet.py --history device_003 --limit 10
    python scripts/watch_fleet.py --command device_001 locate --duration 5
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from fleetsync import (  # noqa: E402
    CommandResultData,
    ConnectionStatus,
    FleetConfig,
    FleetSyncAgent,
    HistoricalDataLoaded,
    InitialDataLoaded,
    LocationUpdateData,
    StatusUpdateData,
    SystemAlertData,
)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Stream fleet events from a fleetsync server")
    parser.add_argument("--url", default=None, help="Websocket URL (default: FLEET_SERVER_URL)")
    parser.add_argument("--history", metavar="DEVICE_ID", default=None, help="Request history for a device")
    parser.add_argument("--limit", type=int, default=None, help="History sample limit")
    parser.add_argument(
        "--command",
        nargs=2,
        metavar=("DEVICE_ID", "COMMAND"),
        default=None,
        help="Send one device command after connecting.",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=0.0,
        help="Seconds to watch before exiting; 0 watches until interrupted.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Root log level (default: WARNING, so only events are printed).",
    )
    return parser.parse_args()


def _print_snapshot(payload: InitialDataLoaded) -> None:
    print(f"snapshot: {len(payload.devices)} devices")
    for device in payload.devices:
        latest = device.latest_location
        where = f"{latest.lat:.5f},{latest.lng:.5f}" if latest else "-"
        print(f"  {device.id:<14} {device.status:<8} samples={len(device.locations):<4} at {where}")


def _print_location(payload: LocationUpdateData) -> None:
    loc = payload.location
    print(f"location {payload.device_id}: {loc.lat:.5f},{loc.lng:.5f} {loc.speed:.1f}km/h {loc.heading:.0f}°")


def _print_status(payload: StatusUpdateData) -> None:
    print(f"status   {payload.device_id}: {payload.status}")


def _print_alert(payload: SystemAlertData) -> None:
    print(f"ALERT    [{payload.level}] {payload.message}")


def _print_history(payload: HistoricalDataLoaded) -> None:
    print(f"history  {payload.device_id}: {len(payload.locations)} samples")


def _print_command(payload: CommandResultData) -> None:
    outcome = "ok" if payload.success else "failed"
    print(f"command  {payload.device_id} {payload.command}: {outcome} ({payload.message})")


def _print_connection(payload: ConnectionStatus) -> None:
    suffix = " (gave up)" if payload.exhausted else ""
    print(f"connection: {payload.state} attempts={payload.reconnect_attempts}{suffix}")


async def _run(args: argparse.Namespace) -> int:
    overrides: dict[str, Any] = {}
    if args.url is not None:
        overrides["server_url"] = args.url
    config = FleetConfig.from_env(**overrides)

    async with FleetSyncAgent(config) as agent:
        agent.on_initial_data(_print_snapshot)
        agent.on_location_update(_print_location)
        agent.on_status_update(_print_status)
        agent.on_system_alert(_print_alert)
        agent.on_historical_data(_print_history)
        agent.on_command_result(_print_command)
        agent.on_connection_state(_print_connection)

        if not await agent.initialize():
            print(f"Could not connect to {config.server_url}; retrying in the background")

        if agent.is_connected:
            if args.history:
                await agent.request_historical_data(args.history, limit=args.limit)
            if args.command:
                device_id, command = args.command
                await agent.send_device_command(device_id, command)

        if args.duration > 0:
            await asyncio.sleep(args.duration)
        else:
            await asyncio.Event().wait()
    return 0


def main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
