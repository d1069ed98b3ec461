# plugpm/app/settings.py
from __future__ import annotations
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import json5
from pydantic import JsonValue

from plugpm.app.paths import PACKAGE_DIR, USER_DIR

import logging
logger = logging.getLogger(__name__)

__all__ = [
    "SETTINGS_DEFAULT_PATH", "SETTINGS", "userSettingsPath", "loadUserSettings",
    "loadSettings", "deepMerge", "getByPath", "settings", "settingsBool", "settingsInt",
]

SETTINGS_DEFAULT_PATH = PACKAGE_DIR / "settings_default.json5"

_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})



def _readJson5Object(path: Path) -> dict[str, JsonValue] | None:
    """Parsed top-level object of a json5 file; None (logged) if unreadable or not an object."""
    try:
        data = json5.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as err:
        logger.error("Failed to parse '%s': %s", path, err)
        return None
    if not isinstance(data, dict):
        logger.error("Ignoring '%s': top level must be an object, got %s", path, type(data).__name__)
        return None
    return data


# Packaged defaults; PackageManagerConfig field defaults apply if this file is missing
SETTINGS: JsonValue = (_readJson5Object(SETTINGS_DEFAULT_PATH) if SETTINGS_DEFAULT_PATH.exists() else None) or {}



def userSettingsPath() -> Path:
    """PLUGPM_SETTINGS when set, otherwise ~/.plugpm/plugpm.json5."""
    override = os.environ.get("PLUGPM_SETTINGS")
    return Path(override).expanduser() if override else USER_DIR / "plugpm.json5"


def loadUserSettings() -> JsonValue:
    filePath = userSettingsPath()
    if not filePath.exists():
        return {}
    loaded = _readJson5Object(filePath)
    if loaded is not None:
        logger.debug("Loaded user settings from %s", filePath)
    return loaded or {}



@lru_cache(maxsize=1)
def loadSettings() -> JsonValue:
    return deepMerge(SETTINGS, loadUserSettings())



def deepMerge(first: JsonValue, second: JsonValue) -> JsonValue:
    """
    `second` layered over `first`. Objects merge key by key; any other value
    (lists included) on the right replaces the left one. Inputs are not mutated.
    """
    if not (isinstance(first, dict) and isinstance(second, dict)):
        return second
    merged = dict(first)
    for key, value in second.items():
        merged[key] = deepMerge(merged[key], value) if key in merged else value
    return merged



def getByPath(obj: Any, path: str, default: Any | None = None) -> Any:
    """Value at dotted `path` ("http.backoff.baseMs") in nested dicts, else `default`."""
    node: Any = obj
    for part in path.split(".") if path else ():
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node if path else default

# ---------- Accessors over merged settings ----------

def settings(path: str, default: Any = None) -> Any:
    val = getByPath(loadSettings(), path)
    return default if val is None else val


def settingsBool(path: str, default: bool = False) -> bool:
    """Booleans as-is; strings "1/true/yes/on" (any case) are true."""
    val = getByPath(loadSettings(), path)
    if val is None:
        return default
    if isinstance(val, str):
        return val.strip().lower() in _TRUE_STRINGS
    return bool(val)


def settingsInt(path: str, default: int = 0) -> int:
    val = getByPath(loadSettings(), path)
    if val is None or isinstance(val, bool):
        return default
    try:
        return int(val)
    except (TypeError, ValueError):
        logger.warning("Setting '%s' is not an integer (%r), using %d", path, val, default)
        return default
