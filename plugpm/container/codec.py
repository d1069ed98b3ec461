# plugpm/container/codec.py
from __future__ import annotations

import io
import json
import logging
import shutil
import tarfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Protocol

from plugpm.core.errors import ExtractError

logger = logging.getLogger(__name__)

__all__ = [
    "ContainerMetadata",
    "Container",
    "ContainerCodec",
    "TarContainer",
    "TarContainerCodec",
    "buildContainer",
]



_MANIFEST_MEMBER = "manifest.json"
_VARIANTS_PREFIX = "variants"



@dataclass(slots=True, frozen=True)
class ContainerMetadata:
    name: str | None
    version: str | None
    description: str | None



class Container(Protocol):
    """A loaded package container. Read-only."""

    def listVariants(self) -> list[str]: ...

    def hasVariant(self, tag: str) -> bool: ...

    def extractVariant(self, tag: str, outputDir: Path) -> Path:
        """Extract the variant's file tree to `outputDir/<tag>` and return that path."""
        ...

    def getMetadata(self) -> ContainerMetadata: ...

    def getManifestJson(self) -> dict[str, Any]: ...



class ContainerCodec(Protocol):
    def load(self, path: Path) -> Container:
        """Raises ExtractError when `path` is not a readable container."""
        ...



# ------------------------------------------------------------------ #
# Tar-based container
#
#   manifest.json                 package manifest (name, version, main, ...)
#   variants/<tag>/...            one file tree per platform variant
# ------------------------------------------------------------------ #

def _safeRelPath(name: str) -> PurePosixPath | None:
    rel = PurePosixPath(name)
    if rel.is_absolute() or any(part in ("..", "") for part in rel.parts):
        return None
    return rel



@dataclass(slots=True)
class TarContainer:
    path: Path
    manifest: dict[str, Any]
    variants: dict[str, list[str]] = field(default_factory=dict) # tag -> member names

    def listVariants(self) -> list[str]:
        return sorted(self.variants)

    def hasVariant(self, tag: str) -> bool:
        return tag in self.variants

    def getMetadata(self) -> ContainerMetadata:
        def _str(key: str) -> str | None:
            value = self.manifest.get(key)
            return str(value) if value is not None else None
        return ContainerMetadata(
            name=_str("name"),
            version=_str("version"),
            description=_str("description"),
        )

    def getManifestJson(self) -> dict[str, Any]:
        return json.loads(json.dumps(self.manifest))

    def extractVariant(self, tag: str, outputDir: Path) -> Path:
        if tag not in self.variants:
            raise ExtractError(f"Package does not contain variant {tag!r}")

        variantRoot = Path(outputDir) / tag
        variantRoot.mkdir(parents=True, exist_ok=True)
        prefix = PurePosixPath(_VARIANTS_PREFIX, tag)

        try:
            with tarfile.open(self.path, "r:*") as tar:
                for memberName in self.variants[tag]:
                    member = tar.getmember(memberName)
                    rel = PurePosixPath(memberName).relative_to(prefix)
                    if not rel.parts:
                        continue
                    target = variantRoot.joinpath(*rel.parts)
                    if member.isdir():
                        target.mkdir(parents=True, exist_ok=True)
                        continue
                    if not member.isfile():
                        logger.warning("Skipping non-regular member %s in %s", memberName, self.path.name)
                        continue
                    source = tar.extractfile(member)
                    if source is None:
                        raise ExtractError(f"Cannot read member {memberName!r}")
                    target.parent.mkdir(parents=True, exist_ok=True)
                    with source, target.open("wb") as fh:
                        shutil.copyfileobj(source, fh)
                    # Keep the executable bit for libraries and helper binaries
                    if member.mode & 0o111:
                        target.chmod(0o755)
        except (tarfile.TarError, OSError, KeyError) as err:
            raise ExtractError(f"Failed to extract variant {tag!r}: {err}") from err

        logger.debug("Extracted variant %s of %s to %s", tag, self.path.name, variantRoot)
        return variantRoot



class TarContainerCodec:
    def load(self, path: Path) -> TarContainer:
        path = Path(path)
        try:
            with tarfile.open(path, "r:*") as tar:
                manifest: dict[str, Any] = {}
                variants: dict[str, list[str]] = {}
                for member in tar.getmembers():
                    rel = _safeRelPath(member.name.rstrip("/"))
                    if rel is None:
                        raise ExtractError(f"Unsafe member path {member.name!r} in {path.name}")
                    if rel.parts == (_MANIFEST_MEMBER,):
                        source = tar.extractfile(member)
                        if source is None:
                            raise ExtractError(f"Unreadable manifest in {path.name}")
                        with source:
                            raw = json.loads(source.read().decode("utf-8"))
                        if not isinstance(raw, dict):
                            raise ExtractError(f"Manifest in {path.name} is not a JSON object")
                        manifest = raw
                    elif len(rel.parts) >= 2 and rel.parts[0] == _VARIANTS_PREFIX:
                        variants.setdefault(rel.parts[1], []).append(member.name)
        except (tarfile.TarError, OSError, ValueError) as err:
            raise ExtractError(f"Failed to load package {path.name}: {err}") from err

        logger.debug("Loaded %s: variants=%s", path.name, sorted(variants))
        return TarContainer(path=path, manifest=manifest, variants=variants)



def buildContainer(
    path: Path,
    manifest: Mapping[str, Any],
    variants: Mapping[str, Path],
) -> Path:
    """
    Write a container with `manifest` and one subtree per variant tag,
    each copied from a local directory.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(dict(manifest), ensure_ascii=False, indent=2).encode("utf-8")
    with tarfile.open(path, "w:gz") as tar:
        info = tarfile.TarInfo(_MANIFEST_MEMBER)
        info.size = len(payload)
        tar.addfile(info, io.BytesIO(payload))
        for tag, sourceDir in variants.items():
            tar.add(str(sourceDir), arcname=f"{_VARIANTS_PREFIX}/{tag}")
    return path
