"""JSON-file key/value store for persisted page configuration.

The whole store is one JSON object on disk.  Reads and writes go to the
in-memory copy; :meth:`JsonStore.save` writes it back atomically.

Usage::

    from surfacelink.store import JsonStore
    store = JsonStore("./data/db")
    store.get_key("page_config_version", 1)
    store.set_key("instance", {})
    store.save()
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Protocol

from surfacelink import SurfaceLinkError

logger = logging.getLogger(__name__)


class StoreError(SurfaceLinkError):
    """Raised when the backing file exists but cannot be read."""


class MappingStore(Protocol):
    """What the migrator and the protocol service need from a store."""

    def get_key(self, name: str, default: Any = None) -> Any: ...

    def set_key(self, name: str, value: Any) -> None: ...

    def delete_key(self, name: str) -> None: ...

    def save(self) -> None: ...

    def get_serialized(self) -> bytes | None: ...

    def backing_location(self) -> Path: ...


class JsonStore:
    """Mapping store backed by a single JSON file.

    Args:
        path: File to load from and save to.  A missing file starts an empty
              store; it is created on the first :meth:`save`.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._data: dict[str, Any] = {}
        self._dirty = False
        self._load()

    def _load(self) -> None:
        if not self._path.exists():
            logger.info("No store at %s, starting empty", self._path)
            return
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Cannot read store {self._path}: {e}") from e
        if not isinstance(data, dict):
            raise StoreError(f"Store {self._path} does not hold a JSON object")
        self._data = data

    # ── Keys ───────────────────────────────────────────────────────

    def get_key(self, name: str, default: Any = None) -> Any:
        return self._data.get(name, default)

    def set_key(self, name: str, value: Any) -> None:
        self._data[name] = value
        self._dirty = True

    def delete_key(self, name: str) -> None:
        if name in self._data:
            del self._data[name]
            self._dirty = True

    def keys(self) -> list[str]:
        return list(self._data)

    # ── Persistence ────────────────────────────────────────────────

    @property
    def dirty(self) -> bool:
        return self._dirty

    def get_serialized(self) -> bytes | None:
        """Return the current contents as the bytes :meth:`save` would write."""
        if not self._data:
            return None
        return json.dumps(self._data, indent=2, sort_keys=True).encode("utf-8")

    def backing_location(self) -> Path:
        return self._path

    def save(self) -> None:
        """Write the store to disk (temp file + rename)."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_name(self._path.name + ".tmp")
        payload = json.dumps(self._data, indent=2, sort_keys=True).encode("utf-8")
        with open(tmp, "wb") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self._path)
        self._dirty = False
        logger.debug("Saved store to %s (%d bytes)", self._path, len(payload))
