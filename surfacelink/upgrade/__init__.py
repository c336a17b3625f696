"""Versioned upgrades for the persisted store and exported configurations.

``page_config_version`` in the store records which schema the stored pages
follow.  Every schema change appends one step to :data:`STEPS`; step ``i``
upgrades version ``i`` to ``i + 1`` and is never edited once released.

Startup runs :func:`upgrade_startup` on the raw store before anything else
reads it.  Imported page/full exports go through :func:`upgrade_import`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from surfacelink import SurfaceLinkError
from surfacelink.store import MappingStore
from surfacelink.upgrade import v1tov2, v2tov3

logger = logging.getLogger(__name__)

VERSION_KEY = "page_config_version"


class StoreTooNewError(SurfaceLinkError):
    """The store was written by a newer release than this one."""

    def __init__(self, current: int, target: int) -> None:
        super().__init__(
            f"Stored configuration is version {current} but this release only "
            f"understands up to version {target}. The configuration files are "
            "incompatible; remove the old config before continuing with this version."
        )
        self.current = current
        self.target = target


@dataclass(frozen=True)
class UpgradeStep:
    name: str
    upgrade_startup: Callable[[MappingStore], None]
    upgrade_import: Callable[[dict], dict] | None = None


STEPS: tuple[UpgradeStep, ...] = (
    UpgradeStep("v1tov2", v1tov2.upgrade_startup, v1tov2.upgrade_import),  # 15 to 32 key
    UpgradeStep("v2tov3", v2tov3.upgrade_startup, v2tov3.upgrade_import),  # action sets
)

TARGET_VERSION = len(STEPS) + 1


def write_snapshot(store: MappingStore, version: int) -> None:
    """Copy the store's current contents next to it as ``<file>.v<version>``."""
    payload = store.get_serialized()
    if payload is None:
        return
    path = store.backing_location()
    snapshot = path.with_name(f"{path.name}.v{version}")
    snapshot.parent.mkdir(parents=True, exist_ok=True)
    snapshot.write_bytes(payload)
    logger.info("Saved pre-upgrade copy of version %d to %s", version, snapshot)


def upgrade_startup(
    store: MappingStore,
    snapshot: Callable[[MappingStore, int], None] = write_snapshot,
    steps: tuple[UpgradeStep, ...] = STEPS,
) -> list[int]:
    """Bring *store* up to the current schema version.

    The caller must hold exclusive access to the store for the duration.

    Returns:
        The versions that were upgraded from, in order (empty when the store
        was already current).

    Raises:
        StoreTooNewError: the store is newer than this release.
    """
    target = len(steps) + 1
    current = int(store.get_key(VERSION_KEY, 1))
    logger.debug("Upgrading store from version %d to %d", current, target)

    if current > target:
        raise StoreTooNewError(current, target)

    applied: list[int] = []
    for i in range(current, target):
        try:
            snapshot(store, i)
        except (OSError, ValueError, TypeError):
            logger.exception("Error saving upgrade copy of version %d", i)

        step = steps[i - 1]
        logger.info("Applying upgrade %s", step.name)
        step.upgrade_startup(store)
        applied.append(i)

    store.set_key(VERSION_KEY, target)
    store.save()
    return applied


def upgrade_import(obj: dict[str, Any], steps: tuple[UpgradeStep, ...] = STEPS) -> dict[str, Any]:
    """Upgrade an exported page or full configuration to the current format."""
    target = len(steps) + 1
    current = int(obj.get("version") or 1)
    if current > target:
        logger.warning(
            "Import was exported by a newer release (version %d, this release writes %d)",
            current, target,
        )

    for i in range(current, target):
        step = steps[i - 1]
        if step.upgrade_import is not None:
            logger.debug("Applying import upgrade %s", step.name)
            obj = step.upgrade_import(obj)

    obj["version"] = target
    return obj
