"""SurfaceLink entry point.

Usage:
    python -m surfacelink [--config CONFIG_PATH] [--host HOST] [--port PORT] [--debug]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from surfacelink.config import SurfaceLinkConfig
from surfacelink.server import run
from surfacelink.store import StoreError
from surfacelink.upgrade import StoreTooNewError


def main() -> None:
    parser = argparse.ArgumentParser(description="SurfaceLink virtual surface service")
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to config.json (default: built-in defaults)",
    )
    parser.add_argument("--host", default=None, help="Listen address (overrides config)")
    parser.add_argument("--port", type=int, default=None, help="Listen port (overrides config)")
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args()

    # Logging
    level = logging.DEBUG if args.debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    log = logging.getLogger(__name__)

    if args.config:
        config = SurfaceLinkConfig.load(args.config)
        log.info("Loaded config from %s", args.config)
    else:
        config = SurfaceLinkConfig()
    config.apply_env()

    # CLI overrides
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port

    try:
        asyncio.run(run(config))
    except (StoreTooNewError, StoreError) as e:
        log.critical("Error starting SurfaceLink: %s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
