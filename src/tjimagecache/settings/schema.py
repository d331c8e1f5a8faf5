"""Schema helpers for the image cache settings file."""

from __future__ import annotations

import os
from copy import deepcopy
from typing import Any

from jsonschema import Draft202012Validator

from ..config import (
    FETCH_TIMEOUT_SEC,
    IO_WORKERS,
    MEMORY_BUDGET_BYTES,
    MEMORY_CRITICAL_BYTES,
    MEMORY_POLL_INTERVAL_SEC,
    MEMORY_WARNING_BYTES,
)

SETTINGS_SCHEMA: dict[str, Any] = {
    "$id": "tjimagecache/settings.schema.json",
    "type": "object",
    "required": ["schema", "cache", "memory"],
    "properties": {
        "schema": {"const": "tjimagecache/settings@1"},
        "root_path": {"type": ["string", "null"]},
        "cache": {
            "type": "object",
            "properties": {
                "io_workers": {"type": "integer", "minimum": 1},
                "fetch_timeout_sec": {"type": "number", "exclusiveMinimum": 0},
                "force_decode": {"type": "boolean"},
            },
            "additionalProperties": True,
        },
        "memory": {
            "type": "object",
            "properties": {
                "watch": {"type": "boolean"},
                "budget_bytes": {"type": "integer", "minimum": 0},
                "warning_bytes": {"type": "integer", "minimum": 0},
                "critical_bytes": {"type": "integer", "minimum": 0},
                "poll_interval_sec": {"type": "number", "exclusiveMinimum": 0},
            },
            "additionalProperties": True,
        },
    },
    "additionalProperties": True,
}

DEFAULT_SETTINGS: dict[str, Any] = {
    "schema": "tjimagecache/settings@1",
    "root_path": None,
    "cache": {
        "io_workers": IO_WORKERS,
        "fetch_timeout_sec": FETCH_TIMEOUT_SEC,
        "force_decode": False,
    },
    "memory": {
        "watch": False,
        "budget_bytes": MEMORY_BUDGET_BYTES,
        "warning_bytes": MEMORY_WARNING_BYTES,
        "critical_bytes": MEMORY_CRITICAL_BYTES,
        "poll_interval_sec": MEMORY_POLL_INTERVAL_SEC,
    },
}

_validator = Draft202012Validator(SETTINGS_SCHEMA)


def merge_with_defaults(data: dict[str, Any] | None) -> dict[str, Any]:
    """Merge *data* with :data:`DEFAULT_SETTINGS` and validate the result."""

    merged = deepcopy(DEFAULT_SETTINGS)
    if data:
        for key, value in data.items():
            if key in ("cache", "memory") and isinstance(value, dict):
                merged.setdefault(key, {}).update(value)
                continue
            if key == "root_path" and value not in {None, ""}:
                try:
                    merged[key] = os.fspath(value)
                except TypeError:
                    continue
                continue
            merged[key] = value
    _validator.validate(merged)
    return merged


def validate_settings(data: dict[str, Any]) -> None:
    """Validate *data* against the settings schema."""

    _validator.validate(data)


__all__ = ["DEFAULT_SETTINGS", "SETTINGS_SCHEMA", "merge_with_defaults", "validate_settings"]
