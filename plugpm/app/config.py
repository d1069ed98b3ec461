# plugpm/app/config.py
from __future__ import annotations
import tempfile
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from plugpm.app.paths import applicationDir, defaultModulesDir, deriveUiPluginsDir
from plugpm.app.settings import settings, settingsBool, settingsInt
from plugpm.catalog.models import ModuleType
from plugpm.http.client import RetryPolicy

__all__ = ["PackageManagerConfig"]

# Config field -> dotted settings path (defaults live in settings_default.json5 and the fields below)
_SETTINGS_PATHS: dict[str, str] = {
    "baseUrl": "catalog.baseUrl",
    "release": "catalog.release",
    "listFile": "catalog.listFile",
    "timeoutMs": "http.timeoutMs",
    "retries": "http.retries",
    "backoffBaseMs": "http.backoff.baseMs",
    "backoffMaxMs": "http.backoff.maxMs",
    "skipIfNotNewer": "install.skipIfNotNewer",
    "atomicInstall": "install.atomic",
}



class PackageManagerConfig(BaseModel):
    """
    Explicit, immutable configuration handed to the catalog client, install
    engine and orchestrator. Build with `fromSettings()` and derive changed
    copies with `withOverrides()`; nothing here is process-global.
    """
    model_config = ConfigDict(frozen=True)

    modulesDir: Path | None = None                  # Core modules dir; None -> <appDir>/bin/modules
    uiPluginsDir: Path | None = None                # UI plugins dir; None -> sibling "plugins"
    applicationDir: Path | None = None              # Host application dir; None -> running executable
    baseUrl: str = "https://github.com/logos-co/logos-modules"
    release: str = "latest"                         # "latest" or a release tag
    listFile: str = "list.json"                     # Catalog file name inside a release
    tempDir: Path | None = None                     # Download scratch area; None -> system temp
    timeoutMs: int = Field(default=30_000, gt=0)
    retries: int = Field(default=2, ge=0)
    backoffBaseMs: int = Field(default=250, ge=0)
    backoffMaxMs: int = Field(default=1_000, ge=0)
    skipIfNotNewer: bool = False                    # Version-skip policy default
    atomicInstall: bool = True                      # Stage-then-rename module installs

    @classmethod
    def fromSettings(cls, **overrides: Any) -> PackageManagerConfig:
        """Builds a config from merged settings; keyword overrides win (None is ignored)."""
        values: dict[str, Any] = {}
        for key, path in _SETTINGS_PATHS.items():
            default = cls.model_fields[key].default
            if isinstance(default, bool):
                values[key] = settingsBool(path, default)
            elif isinstance(default, int):
                values[key] = settingsInt(path, default)
            elif (raw := settings(path)) is not None:
                values[key] = raw
        for key in ("modulesDir", "uiPluginsDir", "tempDir"):
            raw = settings(f"install.{key}")
            if raw:
                values[key] = Path(str(raw)).expanduser()
        for key, value in overrides.items():
            if value is not None:
                values[key] = value
        return cls.model_validate(values)

    def withOverrides(self, **changes: Any) -> PackageManagerConfig:
        return self.model_copy(update={k: v for k, v in changes.items() if v is not None})

    # ----- Directories -----

    def resolvedModulesDir(self) -> Path:
        if self.modulesDir is not None:
            return Path(self.modulesDir)
        return defaultModulesDir(self.applicationDir or applicationDir())

    def resolvedUiPluginsDir(self) -> Path:
        if self.uiPluginsDir is not None:
            return Path(self.uiPluginsDir)
        return deriveUiPluginsDir(self.resolvedModulesDir())

    def targetDirFor(self, moduleType: ModuleType) -> Path:
        if moduleType == ModuleType.UI:
            return self.resolvedUiPluginsDir()
        return self.resolvedModulesDir()

    def candidateDirs(self) -> list[Path]:
        return [self.resolvedModulesDir(), self.resolvedUiPluginsDir()]

    def resolvedTempDir(self) -> Path:
        return Path(self.tempDir) if self.tempDir is not None else Path(tempfile.gettempdir())

    # ----- Remote locations -----

    def retryPolicy(self) -> RetryPolicy:
        return RetryPolicy(
            timeoutMs=self.timeoutMs,
            retries=self.retries,
            backoffBaseMs=self.backoffBaseMs,
            backoffMaxMs=self.backoffMaxMs,
        )

    def releaseBaseUrl(self) -> str:
        base = self.baseUrl.rstrip("/")
        tag = (self.release or "latest").strip()
        if tag == "latest":
            return f"{base}/releases/latest/download"
        return f"{base}/releases/download/{tag}"

    def catalogUrl(self) -> str:
        return f"{self.releaseBaseUrl()}/{self.listFile}"

    def containerUrl(self, containerFile: str) -> str:
        return f"{self.releaseBaseUrl()}/{containerFile}"
