# plugpm/install/engine.py
from __future__ import annotations

import logging
import shutil
import tempfile
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import httpx

from plugpm.app.config import PackageManagerConfig
from plugpm.catalog.models import ModuleType, PackageRecord
from plugpm.container.codec import Container, ContainerCodec, TarContainerCodec
from plugpm.core.errors import (
    CopyError,
    DownloadError,
    ExtractError,
    UnsupportedPlatformError,
)
from plugpm.core.ids import shortId
from plugpm.http import client as httpClient
from plugpm.install.events import InstallEvents
from plugpm.install.manifest import (
    MANIFEST_FILE,
    ModuleManifest,
    findInstalledVersions,
    readManifest,
    writeManifest,
)
from plugpm.platforms.variants import LIBRARY_EXTENSIONS, libraryExtension, variantsToTry
from plugpm.versions.version import tryParseModuleVersion

logger = logging.getLogger(__name__)

__all__ = [
    "InstallStatus",
    "InstallOutcome",
    "InstallEngine",
]



class InstallStatus(str, Enum):
    INSTALLED = "installed"
    SKIPPED = "skipped"



@dataclass(slots=True, frozen=True)
class InstallOutcome:
    """
    Result of one container installation.

    - INSTALLED: moduleDir holds the new files; entryPoint is set when the
      declared entry-point file exists (and was announced).
    - SKIPPED: an installed version >= the incoming one was found at
      installedDir; nothing was written.
    """
    status: InstallStatus
    packageName: str | None
    moduleName: str | None
    moduleType: ModuleType
    variant: str | None
    version: str | None
    moduleDir: Path | None = None
    entryPoint: Path | None = None
    installedVersion: str | None = None
    installedDir: Path | None = None

    @property
    def skipped(self) -> bool:
        return self.status == InstallStatus.SKIPPED



class InstallEngine:
    """
    Downloads, unpacks and installs single package containers.

    Every failure raises a PackageManagerError subclass and leaves no
    temporary files behind. With atomicInstall the module directory is
    swapped in only after a complete copy, otherwise files are copied in
    place without rollback.
    """
    def __init__(
        self,
        config: PackageManagerConfig,
        *,
        codec: ContainerCodec | None = None,
        events: InstallEvents | None = None,
        variants: Sequence[str] | None = None,
    ) -> None:
        self.config = config
        self.codec: ContainerCodec = codec or TarContainerCodec()
        self.events = events or InstallEvents()
        self._variants: list[str] | None = list(variants) if variants else None

    def variantsToTry(self) -> list[str]:
        return list(self._variants) if self._variants else variantsToTry()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def installOne(
        self,
        record: PackageRecord,
        *,
        skipIfNotNewer: bool | None = None,
    ) -> InstallOutcome:
        """Download `record`'s container and install it."""
        downloadDir = self.makeDownloadDir()
        try:
            containerPath = await self.downloadContainer(record, downloadDir)
            return self.installContainer(
                containerPath,
                moduleType=record.moduleType,
                packageName=record.name,
                skipIfNotNewer=skipIfNotNewer,
            )
        finally:
            self.cleanupDownload(downloadDir)

    def installPluginFile(
        self,
        containerPath: Path,
        *,
        moduleType: ModuleType | None = None,
        skipIfNotNewer: bool | None = None,
    ) -> InstallOutcome:
        """Install a local container file (the file itself is left untouched)."""
        containerPath = Path(containerPath)
        if not containerPath.is_file():
            raise ExtractError(f"Source package file does not exist or is not a file: {containerPath}")
        return self.installContainer(
            containerPath,
            moduleType=moduleType,
            packageName=None,
            skipIfNotNewer=skipIfNotNewer,
        )

    # ------------------------------------------------------------------ #
    # Download
    # ------------------------------------------------------------------ #

    def makeDownloadDir(self) -> Path:
        tempRoot = self.config.resolvedTempDir()
        try:
            tempRoot.mkdir(parents=True, exist_ok=True)
            return Path(tempfile.mkdtemp(prefix="plugpm-dl-", dir=tempRoot))
        except OSError as err:
            raise DownloadError(f"Failed to create temp directory in {tempRoot}: {err}") from err

    def cleanupDownload(self, downloadDir: Path) -> None:
        shutil.rmtree(downloadDir, ignore_errors=True)
        logger.debug("Cleaned up temp dir %s", downloadDir)

    async def downloadContainer(self, record: PackageRecord, downloadDir: Path) -> Path:
        if not record.containerFile:
            raise DownloadError("Package has no package file specified", packageName=record.name)

        url = self.config.containerUrl(record.containerFile)
        destination = Path(downloadDir) / Path(record.containerFile).name
        logger.info("Downloading package file %s", url)
        try:
            written = await httpClient.download(url, destination, policy=self.config.retryPolicy())
        except (httpClient.HTTPError, httpx.HTTPError, OSError) as err:
            destination.unlink(missing_ok=True)
            raise DownloadError(
                f"Failed to download {record.containerFile}: {err}",
                packageName=record.name,
            ) from err

        logger.debug("Downloaded %s (%d bytes)", destination, written)
        return destination

    # ------------------------------------------------------------------ #
    # Install
    # ------------------------------------------------------------------ #

    def installContainer(
        self,
        containerPath: Path,
        *,
        moduleType: ModuleType | None = None,
        packageName: str | None = None,
        skipIfNotNewer: bool | None = None,
    ) -> InstallOutcome:
        if skipIfNotNewer is None:
            skipIfNotNewer = self.config.skipIfNotNewer

        container = self.codec.load(Path(containerPath))
        manifestJson = container.getManifestJson()
        if moduleType is None:
            moduleType = ModuleType.fromRaw(manifestJson.get("type"))
        baseDir = self.config.targetDirFor(moduleType)

        tag = self._selectVariant(container, packageName)

        if skipIfNotNewer:
            skipped = self._checkSkip(container, moduleType, packageName, tag, baseDir)
            if skipped is not None:
                return skipped

        scratchDir = self._makeScratchDir(packageName)
        try:
            variantDir = container.extractVariant(tag, scratchDir)
            if manifestJson:
                try:
                    writeManifest(variantDir, manifestJson)
                except OSError as err:
                    raise ExtractError(f"Failed to write manifest: {err}", packageName=packageName) from err
            manifest = readManifest(variantDir / MANIFEST_FILE) or ModuleManifest()

            moduleName = self._moduleNameFor(manifest, variantDir, packageName)
            moduleDir = baseDir / moduleName

            if self.config.atomicInstall:
                self._installAtomic(variantDir, baseDir, moduleName, packageName)
            else:
                self._installInPlace(variantDir, moduleDir, packageName)
            logger.info("Installed %s (%s) to %s", moduleName, tag, moduleDir)

            entryPoint = self._announceEntryPoint(manifest, moduleName, moduleDir, tag, moduleType)
        finally:
            shutil.rmtree(scratchDir, ignore_errors=True)

        return InstallOutcome(
            status=InstallStatus.INSTALLED,
            packageName=packageName,
            moduleName=moduleName,
            moduleType=moduleType,
            variant=tag,
            version=manifest.version,
            moduleDir=moduleDir,
            entryPoint=entryPoint,
        )

    # ------------------------------------------------------------------ #
    # Steps
    # ------------------------------------------------------------------ #

    def _makeScratchDir(self, packageName: str | None) -> Path:
        tempRoot = self.config.resolvedTempDir()
        try:
            tempRoot.mkdir(parents=True, exist_ok=True)
            return Path(tempfile.mkdtemp(prefix="plugpm-x-", dir=tempRoot))
        except OSError as err:
            raise ExtractError(f"Failed to create scratch directory in {tempRoot}: {err}", packageName=packageName) from err

    def _selectVariant(self, container: Container, packageName: str | None) -> str:
        tried = self.variantsToTry()
        for tag in tried:
            if container.hasVariant(tag):
                logger.debug("Selected variant %s", tag)
                return tag
        available = tuple(container.listVariants())
        raise UnsupportedPlatformError(
            f"Package does not contain a variant for platform {tried[0]} "
            f"(tried {', '.join(tried)}; available: {', '.join(available) or 'none'})",
            packageName=packageName,
            triedVariants=tuple(tried),
            availableVariants=available,
        )

    def _checkSkip(
        self,
        container: Container,
        moduleType: ModuleType,
        packageName: str | None,
        tag: str,
        baseDir: Path,
    ) -> InstallOutcome | None:
        meta = container.getMetadata()
        incoming = tryParseModuleVersion(meta.version)
        if not meta.name or incoming is None:
            logger.debug("Skip check not possible (name=%r, version=%r)", meta.name, meta.version)
            return None

        candidates = [baseDir] + [d for d in self.config.candidateDirs() if d != baseDir]
        for installedDir, rawVersion in findInstalledVersions(candidates, meta.name):
            installed = tryParseModuleVersion(rawVersion)
            if installed is None:
                logger.warning("Ignoring unparsable installed version %r in %s", rawVersion, installedDir)
                continue
            if installed >= incoming:
                logger.info(
                    "Skipping %s: installed version %s >= %s (%s)",
                    meta.name, rawVersion, meta.version, installedDir,
                )
                return InstallOutcome(
                    status=InstallStatus.SKIPPED,
                    packageName=packageName,
                    moduleName=meta.name,
                    moduleType=moduleType,
                    variant=tag,
                    version=meta.version,
                    installedVersion=rawVersion,
                    installedDir=installedDir,
                )
        return None

    def _moduleNameFor(self, manifest: ModuleManifest, variantDir: Path, packageName: str | None) -> str:
        name = (manifest.name or "").strip()
        if not name:
            name = self._firstLibraryStem(variantDir) or ""
            if name:
                logger.warning("Manifest has no name, using library file name %r", name)
        if not name:
            raise ExtractError("Cannot determine module name: no manifest name and no library file", packageName=packageName)
        if name in (".", "..") or "/" in name or "\\" in name:
            raise ExtractError(f"Invalid module name {name!r}", packageName=packageName)
        return name

    @staticmethod
    def _firstLibraryStem(variantDir: Path) -> str | None:
        preferred = libraryExtension()
        suffixes = [preferred] + [ext for ext in LIBRARY_EXTENSIONS.values() if ext != preferred]
        files = sorted(p for p in variantDir.rglob("*") if p.is_file())
        for suffix in suffixes:
            for path in files:
                if path.suffix == suffix:
                    return path.stem
        return None

    def _copyTree(self, sourceDir: Path, targetDir: Path, packageName: str | None) -> int:
        """Copy every file, replacing same-named ones. The first failure aborts."""
        copied = 0
        try:
            targetDir.mkdir(parents=True, exist_ok=True)
        except OSError as err:
            raise CopyError(f"Failed to create directory {targetDir}: {err}", packageName=packageName) from err

        for path in sorted(sourceDir.rglob("*")):
            target = targetDir / path.relative_to(sourceDir)
            try:
                if path.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                if target.is_dir() and not target.is_symlink():
                    shutil.rmtree(target)
                elif target.exists() or target.is_symlink():
                    target.unlink()
                shutil.copy2(path, target)
                copied += 1
            except OSError as err:
                raise CopyError(f"Failed to copy {path} to {target}: {err}", packageName=packageName) from err
        return copied

    def _installInPlace(self, variantDir: Path, moduleDir: Path, packageName: str | None) -> None:
        copied = self._copyTree(variantDir, moduleDir, packageName)
        logger.debug("Copied %d files into %s", copied, moduleDir)

    def _installAtomic(self, variantDir: Path, baseDir: Path, moduleName: str, packageName: str | None) -> None:
        """Stage the full module next to its target, then swap directories."""
        try:
            baseDir.mkdir(parents=True, exist_ok=True)
            stagingDir = Path(tempfile.mkdtemp(prefix=f".{moduleName}.staging-", dir=baseDir))
        except OSError as err:
            raise CopyError(f"Failed to prepare {baseDir}: {err}", packageName=packageName) from err

        moduleDir = baseDir / moduleName
        try:
            copied = self._copyTree(variantDir, stagingDir, packageName)
            backupDir: Path | None = None
            try:
                if moduleDir.exists():
                    backupDir = baseDir / f".{moduleName}.old-{shortId()}"
                    moduleDir.rename(backupDir)
                try:
                    stagingDir.rename(moduleDir)
                except OSError:
                    if backupDir is not None:
                        backupDir.rename(moduleDir)
                    raise
            except OSError as err:
                raise CopyError(f"Failed to move {moduleName} into place: {err}", packageName=packageName) from err
            if backupDir is not None:
                shutil.rmtree(backupDir, ignore_errors=True)
            logger.debug("Staged %d files and swapped into %s", copied, moduleDir)
        finally:
            if stagingDir.exists():
                shutil.rmtree(stagingDir, ignore_errors=True)

    def _announceEntryPoint(
        self,
        manifest: ModuleManifest,
        moduleName: str,
        moduleDir: Path,
        tag: str,
        moduleType: ModuleType,
    ) -> Path | None:
        declared = manifest.entryPointFor([tag, *self.variantsToTry()])
        fileName = declared or f"{moduleName}{libraryExtension()}"
        entryPoint = (moduleDir / fileName).resolve()
        if not entryPoint.is_file():
            logger.warning("Entry point %s not found after install, not announcing", entryPoint)
            return None
        self.events.emitArtifactInstalled(entryPoint, moduleType != ModuleType.UI)
        return entryPoint
