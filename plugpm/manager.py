# plugpm/manager.py
from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from plugpm.app.config import PackageManagerConfig
from plugpm.catalog.client import CatalogClient, findByName
from plugpm.catalog.models import ModuleType, PackageRecord
from plugpm.container.codec import ContainerCodec
from plugpm.install.engine import InstallEngine, InstallOutcome
from plugpm.install.events import InstallEvents
from plugpm.install.orchestrator import BatchResult, InstallOrchestrator, InstallRequest
from plugpm.resolution.dependencies import ResolutionResult, resolveDependencies

__all__ = ["PackageManager"]



class PackageManager:
    """
    Host-facing entry point. Wires one catalog client, install engine and
    orchestrator around a shared InstallEvents, so subscribers see both
    artifactInstalled and packageFinished.
    """
    def __init__(
        self,
        config: PackageManagerConfig | None = None,
        *,
        codec: ContainerCodec | None = None,
        variants: Iterable[str] | None = None,
    ):
        self.config = config or PackageManagerConfig.fromSettings()
        self.events = InstallEvents()
        self.catalog = CatalogClient(self.config)
        self.engine = InstallEngine(
            self.config,
            codec=codec,
            events=self.events,
            variants=list(variants) if variants else None,
        )
        self.orchestrator = InstallOrchestrator(
            self.config,
            catalog=self.catalog,
            engine=self.engine,
            events=self.events,
        )

    # ----- Catalog -----

    async def getPackages(self, category: str | None = None) -> list[PackageRecord]:
        return await self.catalog.getPackages(category)

    async def getCategories(self) -> list[str]:
        return await self.catalog.getCategories()

    async def searchPackages(self, query: str) -> list[PackageRecord]:
        return await self.catalog.searchPackages(query)

    async def findPackage(self, name: str) -> PackageRecord | None:
        """Record for `name` with install status, or None (also on catalog errors)."""
        return findByName(await self.getPackages(), name)

    async def resolveDependencies(self, names: Iterable[str]) -> ResolutionResult:
        """Raises CatalogFetchError / CatalogParseError."""
        catalog = await self.catalog.fetchCatalog()
        return resolveDependencies(names, catalog)

    # ----- Installation -----

    def installPackagesAsync(self, names: Iterable[str], *, skipIfNotNewer: bool | None = None) -> InstallRequest:
        """Queue a batch; see InstallOrchestrator.submit."""
        return self.orchestrator.submit(names, skipIfNotNewer=skipIfNotNewer)

    async def installPackages(self, names: Iterable[str], *, skipIfNotNewer: bool | None = None) -> BatchResult:
        return await self.orchestrator.installPackages(names, skipIfNotNewer=skipIfNotNewer)

    async def installPackage(self, name: str, *, skipIfNotNewer: bool | None = None) -> BatchResult:
        return await self.installPackages([name], skipIfNotNewer=skipIfNotNewer)

    def installPluginFile(
        self,
        path: Path,
        *,
        moduleType: ModuleType | None = None,
        skipIfNotNewer: bool | None = None,
    ) -> InstallOutcome:
        """Install a local package file synchronously, outside the install queue."""
        return self.engine.installPluginFile(Path(path), moduleType=moduleType, skipIfNotNewer=skipIfNotNewer)

    @property
    def isInstalling(self) -> bool:
        return self.orchestrator.isInstalling
