"""ESP32 WSS Bridge entry point.

Usage::

    python -m bridge [--host HOST] [--port PORT] [--config PATH]
    python -m bridge --discover          # one-shot scan, JSON to stdout
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="python -m bridge",
        description="Relay secure WebSocket clients to ESP32 devices",
    )
    parser.add_argument("--host", default=None, help="Listen address (default: BRIDGE_HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="Listen port (default: PORT or 3000)")
    parser.add_argument(
        "--config",
        metavar="PATH",
        default=None,
        help="JSON config file (default: BRIDGE_CONFIG env var)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    parser.add_argument(
        "--discover",
        action="store_true",
        help="Scan the configured targets once, print the result and exit",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger = logging.getLogger("bridge")

    from bridge.config import BridgeConfig

    try:
        config = BridgeConfig.load(args.config) if args.config else BridgeConfig.from_env()
        config = config.with_overrides(host=args.host, port=args.port)
    except ValueError as exc:
        logger.error("Invalid configuration: %s", exc)
        sys.exit(2)

    if args.discover:
        from bridge.discovery import DiscoveryCoordinator

        devices = asyncio.run(DiscoveryCoordinator(config).discover())
        print(json.dumps([d.to_dict() for d in devices], indent=2))
        return

    import uvicorn

    from bridge.server import create_app

    logger.info("Starting ESP32 bridge on %s:%d", config.host, config.port)
    logger.info("ESP32 targets: %s", ", ".join(t.address for t in config.socket_targets))
    uvicorn.run(create_app(config), host=config.host, port=config.port)


if __name__ == "__main__":
    main()
