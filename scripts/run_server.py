#!/usr/bin/env python3
"""Run the fleet telemetry server.

Seeds the configured devices, starts the simulator and serves the websocket
sync transport plus the REST endpoints.

Usage
-----
::

    python scripts/run_server.py --port 3000 --tick 2

Every ``FLEET_*`` environment variable understood by
``FleetConfig.from_env`` applies; command-line options win.
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
from pathlib import Path
from typing import Any

from aiohttp import web

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from fleetsync import FleetConfig, FleetConfigError, create_app  # noqa: E402


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the fleetsync telemetry server")
    parser.add_argument("--host", default=None, help="Interface to bind (default: FLEET_HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="Port to bind (default: FLEET_PORT or 3000)")
    parser.add_argument("--tick", type=float, default=None, help="Seconds between simulator ticks")
    parser.add_argument("--seed", type=int, default=None, help="Seed the simulator RNG for repeatable runs")
    parser.add_argument(
        "--no-simulator",
        action="store_true",
        help="Serve the seeded snapshot without advancing it.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Root log level (default: INFO).",
    )
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides: dict[str, Any] = {}
    if args.host is not None:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.tick is not None:
        overrides["tick_interval"] = args.tick
    if args.no_simulator:
        overrides["simulator_enabled"] = False

    try:
        config = FleetConfig.from_env(**overrides)
    except FleetConfigError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2

    rng = random.Random(args.seed) if args.seed is not None else None
    app = create_app(config, rng=rng)
    web.run_app(app, host=config.host, port=config.port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
