# plugpm/install/manifest.py
from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import json5
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

__all__ = [
    "MANIFEST_FILE",
    "ModuleManifest",
    "readManifest",
    "writeManifest",
    "findInstalledVersions",
]



MANIFEST_FILE = "manifest.json"



class ModuleManifest(BaseModel):
    """manifest.json written alongside an installed module's files."""
    model_config = ConfigDict(extra="allow")

    name: str | None = None                         # Module on-disk name
    version: str | None = None                      # Dot-separated version
    description: str | None = None
    type: str | None = None                         # Free-form ("core", "ui", ...)
    main: dict[str, str] = Field(default_factory=dict) # Variant tag -> entry-point filename

    @field_validator("name", "version", "description", "type", mode="before")
    @classmethod
    def _scalarToStr(cls, value: Any) -> str | None:
        # `"version": 1` is common in hand-written manifests; lists/objects are dropped
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return None

    @field_validator("main", mode="before")
    @classmethod
    def _normalizeMain(cls, value: Any) -> dict[str, str]:
        # Some producers write a single filename instead of a per-variant map
        if value is None:
            return {}
        if isinstance(value, str):
            return {"*": value} if value.strip() else {}
        if isinstance(value, dict):
            return {str(k): str(v) for k, v in value.items() if isinstance(v, str) and v.strip()}
        return {}

    def entryPointFor(self, variants: Iterable[str]) -> str | None:
        for tag in variants:
            if tag in self.main:
                return self.main[tag]
        return self.main.get("*")



def readManifest(manifestPath: Path) -> ModuleManifest | None:
    """Returns the parsed manifest, or None if missing or unreadable (logged)."""
    if not manifestPath.is_file():
        return None
    try:
        raw = json5.loads(manifestPath.read_text(encoding="utf-8"))
    except (OSError, ValueError) as err:
        logger.warning("Unreadable manifest %s: %s", manifestPath, err)
        return None
    if not isinstance(raw, dict):
        logger.warning("Manifest %s is not a JSON object", manifestPath)
        return None
    try:
        return ModuleManifest.model_validate(raw)
    except ValidationError as err:
        logger.warning("Invalid manifest %s: %s", manifestPath, err)
        return None



def writeManifest(moduleDir: Path, payload: dict[str, Any]) -> Path:
    moduleDir.mkdir(parents=True, exist_ok=True)
    target = moduleDir / MANIFEST_FILE
    target.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    return target



def findInstalledVersions(baseDirs: Iterable[Path], moduleName: str) -> list[tuple[Path, str]]:
    """
    (moduleDir, version) for every `<base>/<moduleName>/manifest.json`
    that declares a version, in `baseDirs` order.
    """
    found: list[tuple[Path, str]] = []
    for base in baseDirs:
        moduleDir = Path(base) / moduleName
        manifest = readManifest(moduleDir / MANIFEST_FILE)
        if manifest is not None and manifest.version:
            found.append((moduleDir, manifest.version))
    return found
