"""Configuration for the SurfaceLink service."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

_FALSEY = {"0", "false", "no", "off", ""}


@dataclass
class SurfaceLinkConfig:
    """Service configuration, loaded from a JSON file and then the environment."""

    host: str = "0.0.0.0"
    port: int = 28492
    enabled: bool = True

    # Persistence
    data_dir: str = "./data"
    store_file: str = "db"

    @classmethod
    def load(cls, path: str | Path) -> SurfaceLinkConfig:
        path = Path(path)
        if path.exists():
            with open(path) as f:
                data = json.load(f)
            known = {k for k in cls.__dataclass_fields__}
            filtered = {k: v for k, v in data.items() if k in known}
            return cls(**filtered)
        logger.warning("Config not found at %s, using defaults", path)
        return cls()

    def apply_env(self, environ: dict[str, str] | None = None) -> SurfaceLinkConfig:
        """Override fields from ``SURFACELINK_*`` environment variables."""
        env = os.environ if environ is None else environ
        self.host = env.get("SURFACELINK_HOST", self.host)
        if "SURFACELINK_PORT" in env:
            self.port = int(env["SURFACELINK_PORT"])
        if "SURFACELINK_ENABLED" in env:
            self.enabled = env["SURFACELINK_ENABLED"].strip().lower() not in _FALSEY
        self.data_dir = env.get("SURFACELINK_DATA_DIR", self.data_dir)
        return self

    @property
    def store_path(self) -> Path:
        return Path(self.data_dir) / self.store_file
