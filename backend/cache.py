"""Persisted key-value cache stored as one JSON file per key."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Default cache directory
CACHE_DIR = Path.home() / ".taskboard" / "cache"

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


class FileCache:
    """Survives restarts. Unreadable entries are treated as missing."""

    def __init__(self, directory: Path | None = None) -> None:
        self.directory = directory or CACHE_DIR
        self.directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE.sub('_', key)}.json"

    def get(self, key: str) -> Any | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable cache entry %s: %s", key, e)
            return None

    def set(self, key: str, value: Any) -> None:
        path = self.path_for(key)
        # Entries are replaced atomically
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(value), encoding="utf-8")
        tmp.replace(path)

    def delete(self, key: str) -> None:
        path = self.path_for(key)
        if path.exists():
            path.unlink()
            logger.debug("Deleted cache entry %s", key)

    def keys(self) -> list[str]:
        return sorted(p.stem for p in self.directory.glob("*.json"))
