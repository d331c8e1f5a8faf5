"""Settings file management with validation and change notifications."""

from __future__ import annotations

import json
import os
import sys
from copy import deepcopy
from pathlib import Path
from typing import Any

from jsonschema import ValidationError
from PySide6.QtCore import QObject, Signal

from ..config import CACHE_DIR_NAME, SETTINGS_FILE_NAME
from ..errors import SettingsLoadError, SettingsValidationError
from .schema import DEFAULT_SETTINGS, merge_with_defaults


def default_settings_path() -> Path:
    """Return the default settings.json location for the current platform."""

    if os.name == "nt":
        base = os.environ.get("APPDATA")
        if base:
            return Path(base) / CACHE_DIR_NAME / SETTINGS_FILE_NAME
        return Path.home() / "AppData" / "Roaming" / CACHE_DIR_NAME / SETTINGS_FILE_NAME
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / CACHE_DIR_NAME / SETTINGS_FILE_NAME
    base = os.environ.get("XDG_CONFIG_HOME")
    if base:
        return Path(base) / CACHE_DIR_NAME / SETTINGS_FILE_NAME
    return Path.home() / ".config" / CACHE_DIR_NAME / SETTINGS_FILE_NAME


class SettingsManager(QObject):
    """Load, validate and persist the cache settings."""

    settingsChanged = Signal(str, object)

    def __init__(self, path: Path | None = None) -> None:
        super().__init__()
        self._path = path
        self._data: dict[str, Any] = deepcopy(DEFAULT_SETTINGS)

    @property
    def path(self) -> Path:
        return self._path or default_settings_path()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def load(self) -> None:
        """Load the settings JSON from disk, creating defaults if missing."""

        path = self.path
        self._path = path
        payload = None
        if path.exists():
            try:
                payload = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                raise SettingsLoadError(f"{path}: {exc}") from exc
        try:
            self._data = merge_with_defaults(payload)
        except ValidationError as exc:
            raise SettingsValidationError(exc.message) from exc
        self._write()

    def get(self, key: str, default: Any | None = None) -> Any:
        """Return the value for *key*, supporting dotted access for nested keys."""

        target: Any = self._data
        for part in key.split("."):
            if not isinstance(target, dict) or part not in target:
                return default
            target = target[part]
        return target

    def set(self, key: str, value: Any) -> None:
        """Update *key* with *value*, validate and persist the change."""

        if isinstance(value, Path):
            value = str(value)
        candidate = deepcopy(self._data)
        parts = key.split(".")
        target: dict[str, Any] = candidate
        for part in parts[:-1]:
            branch = target.get(part)
            if not isinstance(branch, dict):
                branch = {}
                target[part] = branch
            target = branch
        target[parts[-1]] = value
        try:
            self._data = merge_with_defaults(candidate)
        except ValidationError as exc:
            raise SettingsValidationError(exc.message) from exc
        self._write()
        self.settingsChanged.emit(key, value)

    def as_dict(self) -> dict[str, Any]:
        return deepcopy(self._data)

    # ------------------------------------------------------------------
    # Internal utilities
    # ------------------------------------------------------------------
    def _write(self) -> None:
        path = self.path
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._data, indent=2, sort_keys=True), encoding="utf-8")
        tmp.replace(path)


__all__ = ["SettingsManager", "default_settings_path"]
