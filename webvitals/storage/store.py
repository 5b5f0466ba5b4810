"""Vitals store: tracked targets, bounded per-target history and settings."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Iterable, Optional
from urllib.parse import urlparse

from pydantic import TypeAdapter, ValidationError

from webvitals.models.config import MonitorSettings
from webvitals.models.vitals import TrackedTarget, VitalsSnapshot
from webvitals.storage.backend import (
    SETTINGS_KEY,
    TRACKED_URLS_KEY,
    VITALS_DATA_KEY,
    StorageBackend,
)
from webvitals.url_utils import DuplicateTargetError, validate_target_url

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = 30

_targets_adapter = TypeAdapter(list[TrackedTarget])
_history_adapter = TypeAdapter(dict[str, list[VitalsSnapshot]])


class TargetRegistry:
    """Persists the list of tracked URLs."""

    def __init__(self, backend: StorageBackend):
        self.backend = backend

    def list(self) -> list[TrackedTarget]:
        try:
            raw = self.backend.get(TRACKED_URLS_KEY)
            return _targets_adapter.validate_json(raw) if raw else []
        except (OSError, ValueError) as e:
            logger.error("Error reading tracked URLs: %s", e)
            return []

    def _save(self, targets: list[TrackedTarget]) -> bool:
        try:
            self.backend.set(TRACKED_URLS_KEY, _targets_adapter.dump_json(targets).decode())
            return True
        except (OSError, ValueError) as e:
            logger.error("Error saving tracked URLs: %s", e)
            return False

    def get(self, target_id: str) -> Optional[TrackedTarget]:
        for target in self.list():
            if target.id == target_id:
                return target
        return None

    def add(self, url: str, name: Optional[str] = None) -> TrackedTarget:
        """Validate and register a new URL.

        Raises InvalidTargetError for malformed or local URLs and
        DuplicateTargetError when the normalized URL is already tracked.
        """
        normalized = validate_target_url(url)
        targets = self.list()
        if any(t.url == normalized for t in targets):
            raise DuplicateTargetError(f"URL is already tracked: {normalized}")

        target = TrackedTarget(
            url=normalized,
            display_name=name or urlparse(normalized).hostname or normalized,
        )
        targets.append(target)
        self._save(targets)
        logger.info("Tracking %s (id=%s)", normalized, target.id)
        return target

    def remove(self, target_id: str) -> bool:
        targets = self.list()
        remaining = [t for t in targets if t.id != target_id]
        if len(remaining) == len(targets):
            return False
        return self._save(remaining)

    def touch(self, target_id: str, checked_at: datetime) -> None:
        targets = self.list()
        for target in targets:
            if target.id == target_id:
                target.last_checked_at = checked_at
                self._save(targets)
                return
        logger.debug("touch: no tracked target with id %s", target_id)


class VitalsStore:
    """Append-only per-target snapshot history, capped at ``retention`` entries."""

    def __init__(self, backend: StorageBackend, retention: int = DEFAULT_RETENTION):
        self.backend = backend
        self.retention = retention
        self.targets = TargetRegistry(backend)

    def _load_all(self) -> dict[str, list[VitalsSnapshot]]:
        try:
            raw = self.backend.get(VITALS_DATA_KEY)
            return _history_adapter.validate_json(raw) if raw else {}
        except (OSError, ValueError) as e:
            logger.error("Error reading vitals data: %s", e)
            return {}

    def _save_all(self, data: dict[str, list[VitalsSnapshot]]) -> bool:
        try:
            self.backend.set(VITALS_DATA_KEY, _history_adapter.dump_json(data).decode())
            return True
        except (OSError, ValueError) as e:
            logger.error("Error saving vitals data: %s", e)
            return False

    def append(self, target_id: str, snapshot: VitalsSnapshot) -> None:
        """Push a snapshot, evict the oldest beyond the cap, and touch the target."""
        data = self._load_all()
        history = data.setdefault(target_id, [])
        history.append(snapshot)
        if len(history) > self.retention:
            data[target_id] = history[-self.retention:]

        if not self._save_all(data):
            return
        self.targets.touch(target_id, snapshot.timestamp)

    def latest(self, target_id: str) -> Optional[VitalsSnapshot]:
        history = self._load_all().get(target_id)
        if not history:
            return None
        return history[-1]

    def all(self, target_id: str) -> list[VitalsSnapshot]:
        return list(self._load_all().get(target_id, []))

    def latest_by_target(self, target_ids: Iterable[str]) -> dict[str, VitalsSnapshot]:
        data = self._load_all()
        return {tid: data[tid][-1] for tid in target_ids if data.get(tid)}

    def delete_history(self, target_id: str) -> None:
        data = self._load_all()
        if data.pop(target_id, None) is not None:
            self._save_all(data)

    def remove_target(self, target_id: str) -> bool:
        """Stop tracking a target and drop its whole history."""
        removed = self.targets.remove(target_id)
        self.delete_history(target_id)
        if removed:
            logger.info("Removed target %s and its history", target_id)
        return removed

    def clear_all(self) -> None:
        """Drop every target and snapshot; settings are kept."""
        try:
            self.backend.delete(TRACKED_URLS_KEY)
            self.backend.delete(VITALS_DATA_KEY)
        except OSError as e:
            logger.error("Error clearing data: %s", e)


def read_settings_data(backend: StorageBackend) -> dict[str, Any]:
    """The stored settings blob as written, with ``env:`` references intact."""
    try:
        raw = backend.get(SETTINGS_KEY)
        data = json.loads(raw) if raw else {}
    except (OSError, ValueError) as e:
        logger.warning("Failed to read settings: %s", e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring settings blob that is not a JSON object")
        return {}
    return data


def load_settings(backend: StorageBackend) -> MonitorSettings:
    """Load settings; a field that fails validation falls back to its default.

    An unset ``env:`` variable only costs that one secret; the rest of the
    stored settings still apply.
    """
    data = read_settings_data(backend)
    try:
        return MonitorSettings(**data)
    except ValidationError as e:
        invalid = {str(err["loc"][0]) for err in e.errors() if err["loc"]}
        for err in e.errors():
            field = ".".join(str(part) for part in err["loc"]) or "settings"
            logger.warning("Ignoring setting %s: %s", field, err["msg"])

    try:
        return MonitorSettings(**{k: v for k, v in data.items() if k not in invalid})
    except ValidationError as e:
        logger.warning("Failed to load settings: %s. Using defaults.", e)
        return MonitorSettings()


def save_settings(backend: StorageBackend, settings: MonitorSettings) -> None:
    try:
        backend.set(SETTINGS_KEY, json.dumps(settings.model_dump(), indent=2))
    except OSError as e:
        logger.error("Error saving settings: %s", e)
