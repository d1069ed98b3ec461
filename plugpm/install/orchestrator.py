# plugpm/install/orchestrator.py
from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from plugpm.app.config import PackageManagerConfig
from plugpm.catalog.client import CatalogClient, findByName
from plugpm.core.errors import InvariantError, NotFoundError, PackageManagerError
from plugpm.core.ids import shortId
from plugpm.core.logging import logContext
from plugpm.install.engine import InstallEngine, InstallOutcome
from plugpm.install.events import InstallEvents
from plugpm.resolution.dependencies import resolveDependencies

logger = logging.getLogger(__name__)

__all__ = [
    "OrchestratorState",
    "PackageResult",
    "BatchResult",
    "BatchState",
    "InstallRequest",
    "InstallOrchestrator",
]



class OrchestratorState(str, Enum):
    Idle = "Idle"
    ResolvingDependencies = "ResolvingDependencies"
    FetchingCatalog = "FetchingCatalog"
    DownloadingPackageFile = "DownloadingPackageFile"
    InstallingPackage = "InstallingPackage"
    AdvanceToNextPackage = "AdvanceToNextPackage"
    AdvanceToNextRequest = "AdvanceToNextRequest"



@dataclass(slots=True, frozen=True)
class PackageResult:
    name: str
    success: bool
    error: str = ""
    outcome: InstallOutcome | None = None



@dataclass(slots=True)
class BatchResult:
    requestId: str
    requested: tuple[str, ...]
    packages: list[PackageResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(pkg.success for pkg in self.packages)

    @property
    def failed(self) -> list[PackageResult]:
        return [pkg for pkg in self.packages if not pkg.success]



@dataclass(slots=True)
class BatchState:
    """Working state of the active request. Discarded when the batch completes."""
    packageQueue: list[str] = field(default_factory=list)
    currentPackageIndex: int = 0
    filesToDownload: list[str] = field(default_factory=list)
    downloadedFiles: list[Path] = field(default_factory=list)

    @property
    def currentPackage(self) -> str | None:
        if 0 <= self.currentPackageIndex < len(self.packageQueue):
            return self.packageQueue[self.currentPackageIndex]
        return None



@dataclass(slots=True)
class InstallRequest:
    id: str
    names: tuple[str, ...]
    future: asyncio.Future[BatchResult]
    skipIfNotNewer: bool | None = None

    async def wait(self) -> BatchResult:
        """Wait for this request's batch to finish (the batch keeps running if the waiter is cancelled)."""
        return await asyncio.shield(self.future)



class InstallOrchestrator:
    """
    Serializes install requests.

    At most one request is active. Requests submitted while busy wait in a
    FIFO and are neither merged nor deduplicated against the active one.
    Packages of a batch install one after another in resolved order; a
    failing package is reported through packageFinished and the batch
    moves on to the next one.
    """
    def __init__(
        self,
        config: PackageManagerConfig,
        *,
        catalog: CatalogClient | None = None,
        engine: InstallEngine | None = None,
        events: InstallEvents | None = None,
    ) -> None:
        self.config = config
        if events is None:
            events = engine.events if engine is not None else InstallEvents()
        self.events = events
        self.catalog = catalog or CatalogClient(config)
        self.engine = engine or InstallEngine(config, events=events)

        self._state: OrchestratorState = OrchestratorState.Idle
        self._pending: deque[InstallRequest] = deque()
        self._active: InstallRequest | None = None
        self._batch: BatchState | None = None
        self._drainTask: asyncio.Task[None] | None = None

    # ----- Introspection -----

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def isInstalling(self) -> bool:
        return self._drainTask is not None and not self._drainTask.done()

    @property
    def activeRequest(self) -> InstallRequest | None:
        return self._active

    @property
    def batch(self) -> BatchState | None:
        return self._batch

    @property
    def pendingCount(self) -> int:
        return len(self._pending)

    def _setState(self, state: OrchestratorState) -> None:
        if state != self._state:
            logger.debug("Orchestrator %s -> %s", self._state.value, state.value)
        self._state = state

    # ----- Requests -----

    def submit(self, names: Iterable[str], *, skipIfNotNewer: bool | None = None) -> InstallRequest:
        """
        Queue an install request and return without waiting.

        Must be called from inside the running event loop. The request
        starts right away when nothing is installing.
        """
        loop = asyncio.get_running_loop()
        request = InstallRequest(
            id=shortId("req_"),
            names=tuple(names),
            future=loop.create_future(),
            skipIfNotNewer=skipIfNotNewer,
        )
        self._pending.append(request)

        if self.isInstalling:
            logger.info("Install in progress, queued request %s %s (%d waiting)", request.id, list(request.names), len(self._pending))
        else:
            self._drainTask = loop.create_task(self._drain(), name=f"plugpm:install:{request.id}")
        return request

    async def installPackages(self, names: Iterable[str], *, skipIfNotNewer: bool | None = None) -> BatchResult:
        return await self.submit(names, skipIfNotNewer=skipIfNotNewer).wait()

    async def waitIdle(self) -> None:
        """Return once every queued request has been processed."""
        while self._drainTask is not None and not self._drainTask.done():
            await asyncio.shield(self._drainTask)

    # ----- Drain loop -----

    async def _drain(self) -> None:
        while self._pending:
            request = self._pending.popleft()
            self._active = request
            result = BatchResult(requestId=request.id, requested=request.names)
            try:
                await self._runRequest(request, result)
            except Exception as err:
                logger.exception("Install request %s failed unexpectedly", request.id)
                self._failUnreported(result, err)
            finally:
                if not request.future.done():
                    request.future.set_result(result)
                self._active = None
                self._batch = None
                self._setState(OrchestratorState.AdvanceToNextRequest)
        self._setState(OrchestratorState.Idle)

    async def _runRequest(self, request: InstallRequest, result: BatchResult) -> None:
        with logContext(requestId=request.id):
            logger.info("Starting install of %s", list(request.names))
            self._setState(OrchestratorState.ResolvingDependencies)

            catalogResult = await self.catalog.fetchCatalogResult()
            if not catalogResult.ok:
                for name in request.names:
                    self._finish(result, name, False, str(catalogResult.error))
                return

            resolution = resolveDependencies(request.names, catalogResult.records)
            for name in resolution.missing:
                self._finish(result, name, False, str(NotFoundError(f"Package not found: {name}", packageName=name)))

            self._batch = BatchState(packageQueue=list(resolution.packages))
            logger.info("Install order: %s", self._batch.packageQueue)

            while (name := self._batch.currentPackage) is not None:
                with logContext(packageName=name):
                    await self._installPackage(request, name, result)
                self._setState(OrchestratorState.AdvanceToNextPackage)
                self._batch.currentPackageIndex += 1

            logger.info(
                "Finished install request %s: %d ok, %d failed",
                request.id, len(result.packages) - len(result.failed), len(result.failed),
            )

    async def _installPackage(self, request: InstallRequest, name: str, result: BatchResult) -> None:
        batch = self._batch
        if batch is None:
            raise InvariantError("No active batch while installing a package")
        batch.filesToDownload = []
        batch.downloadedFiles = []

        try:
            self._setState(OrchestratorState.FetchingCatalog)
            catalog = await self.catalog.fetchCatalog()
            record = findByName(catalog, name)
            if record is None:
                raise NotFoundError(f"Package not found: {name}", packageName=name)

            self._setState(OrchestratorState.DownloadingPackageFile)
            batch.filesToDownload.append(record.containerFile)
            downloadDir = self.engine.makeDownloadDir()
            try:
                containerPath = await self.engine.downloadContainer(record, downloadDir)
                batch.downloadedFiles.append(containerPath)

                self._setState(OrchestratorState.InstallingPackage)
                outcome = self.engine.installContainer(
                    containerPath,
                    moduleType=record.moduleType,
                    packageName=record.name,
                    skipIfNotNewer=request.skipIfNotNewer,
                )
            finally:
                self.engine.cleanupDownload(downloadDir)
        except PackageManagerError as err:
            logger.error("Failed to install %s: %s", name, err)
            self._finish(result, name, False, str(err))
            return

        self._finish(result, name, True, "", outcome)

    def _failUnreported(self, result: BatchResult, err: Exception) -> None:
        """Fail every queued or requested package that has no result yet."""
        reported = {pkg.name for pkg in result.packages}
        pending = list(self._batch.packageQueue) if self._batch is not None else []
        for name in [*pending, *result.requested]:
            if name not in reported:
                reported.add(name)
                self._finish(result, name, False, f"Unexpected error: {err}")

    def _finish(
        self,
        result: BatchResult,
        name: str,
        success: bool,
        error: str,
        outcome: InstallOutcome | None = None,
    ) -> None:
        result.packages.append(PackageResult(name=name, success=success, error=error, outcome=outcome))
        self.events.emitPackageFinished(name, success, error)
