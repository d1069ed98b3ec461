# plugpm/catalog/models.py
from __future__ import annotations
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = ["ModuleType", "PackageRecord"]



class ModuleType(str, Enum):
    CORE = "core"
    UI = "ui"

    @classmethod
    def fromRaw(cls, raw: object) -> ModuleType:
        # Anything that is not explicitly "ui" installs as a core module
        if isinstance(raw, ModuleType):
            return raw
        if isinstance(raw, str) and raw.strip().lower() == "ui":
            return cls.UI
        return cls.CORE



class PackageRecord(BaseModel):
    """
    One catalog entry. Immutable snapshot of the remote list; `installed`
    is derived locally and never sent back anywhere.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    name: str                                                       # Unique key
    description: str = ""
    category: str = ""
    moduleType: ModuleType = Field(default=ModuleType.CORE, alias="type")
    moduleName: str = ""                                            # On-disk identifier
    author: str = ""
    dependencies: tuple[str, ...] = ()                              # Package names, ordered
    containerFile: str = Field(default="", alias="package")         # Remote container filename
    installed: bool = False

    @field_validator("moduleType", mode="before")
    @classmethod
    def _normalizeType(cls, value: Any) -> ModuleType:
        return ModuleType.fromRaw(value)

    @field_validator("description", "category", "moduleName", "author", "containerFile", mode="before")
    @classmethod
    def _noneToEmpty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("dependencies", mode="before")
    @classmethod
    def _normalizeDependencies(cls, value: Any) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple)):
            return ()
        out: list[str] = []
        for dep in value:
            if isinstance(dep, str) and dep.strip():
                out.append(dep.strip())
        return tuple(out)

    @property
    def isCoreModule(self) -> bool:
        return self.moduleType != ModuleType.UI

    def withInstalled(self, installed: bool) -> PackageRecord:
        return self.model_copy(update={"installed": bool(installed)})

    def toCatalogJson(self) -> dict[str, Any]:
        """Catalog-shaped dict ("type", "package"), including the derived `installed` flag."""
        return self.model_dump(mode="json", by_alias=True)
