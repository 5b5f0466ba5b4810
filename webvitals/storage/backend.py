"""Key-value blob backends used for persisting monitor state."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

# Fixed storage keys
TRACKED_URLS_KEY = "webvitals_tracked_urls"
SETTINGS_KEY = "webvitals_settings"
VITALS_DATA_KEY = "webvitals_data"
LAST_REFRESH_KEY = "webvitals_last_refresh"

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class StorageBackend(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryBackend:
    """In-process backend, mostly for tests and one-off runs."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileBackend:
    """Stores each key as ``<directory>/<key>.json``."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        if not _KEY_RE.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)
        logger.debug("Wrote %d bytes to %s", len(value), path)

    def delete(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()
