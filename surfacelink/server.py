"""SurfaceLink service wiring.

Start with::

    python -m surfacelink
    # or
    python -m surfacelink --config surfacelink.json --port 28492

The store is upgraded before anything else touches it; a store written by a
newer release stops startup.
"""

from __future__ import annotations

import logging

from surfacelink.config import SurfaceLinkConfig
from surfacelink.graphics import BankInvalidations, ImageCache
from surfacelink.store import JsonStore
from surfacelink.surfaces import SurfaceRegistry
from surfacelink.upgrade import upgrade_startup
from surfacelink.websocket import PluginService

logger = logging.getLogger(__name__)


def open_store(config: SurfaceLinkConfig) -> JsonStore:
    """Open the store and bring it to the current schema.

    Raises:
        StoreTooNewError: the store was written by a newer release.
    """
    store = JsonStore(config.store_path)
    applied = upgrade_startup(store)
    if applied:
        logger.info("Upgraded store %s from version %d", store.backing_location(), applied[0])
    return store


def build_service(config: SurfaceLinkConfig, store: JsonStore) -> PluginService:
    """Create the renderer, registry and plugin service and connect them."""
    invalidations = BankInvalidations()
    renderer = ImageCache(invalidations)
    registry = SurfaceRegistry(renderer=renderer)
    invalidations.subscribe(registry.handle_bank_changed)

    service = PluginService(
        registry,
        renderer,
        store,
        invalidations=invalidations,
        host=config.host,
        port=config.port,
        enabled=config.enabled,
    )
    service.on_device_startup(registry.plugin_startup)
    return service


async def run(config: SurfaceLinkConfig) -> None:
    store = open_store(config)
    service = build_service(config, store)
    await service.serve()
