# plugpm/install/events.py
from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from plugpm.core.ids import shortId

logger = logging.getLogger(__name__)

__all__ = ["ArtifactInstalledHandler", "PackageFinishedHandler", "InstallEvents"]



# (absolute entry-point path, isCoreModule)
ArtifactInstalledHandler = Callable[[Path, bool], None]
# (packageName, success, errorMessage)
PackageFinishedHandler = Callable[[str, bool, str], None]



class InstallEvents:
    """
    Outbound notifications for the host.

    - artifactInstalled: an entry-point file is on disk and may be loaded.
    - packageFinished: one package of a batch succeeded or failed.

    Handlers run synchronously in registration order. A failing handler is
    logged and does not stop the others or the installation.
    """
    def __init__(self) -> None:
        self._artifactHandlers: dict[str, ArtifactInstalledHandler] = {}
        self._finishedHandlers: dict[str, PackageFinishedHandler] = {}

    def onArtifactInstalled(self, handler: ArtifactInstalledHandler) -> str:
        subId = shortId("artifact_")
        self._artifactHandlers[subId] = handler
        return subId

    def onPackageFinished(self, handler: PackageFinishedHandler) -> str:
        subId = shortId("finished_")
        self._finishedHandlers[subId] = handler
        return subId

    def unsubscribe(self, subscriptionId: str) -> bool:
        for handlers in (self._artifactHandlers, self._finishedHandlers):
            if subscriptionId in handlers:
                del handlers[subscriptionId]
                return True
        return False

    def emitArtifactInstalled(self, path: Path, isCoreModule: bool) -> None:
        logger.debug("artifactInstalled %s (core=%s)", path, isCoreModule)
        for subId, handler in list(self._artifactHandlers.items()):
            try:
                handler(path, isCoreModule)
            except Exception:
                logger.exception("artifactInstalled handler %s raised an exception.", subId)

    def emitPackageFinished(self, packageName: str, success: bool, error: str = "") -> None:
        logger.debug("packageFinished %s success=%s error=%r", packageName, success, error)
        for subId, handler in list(self._finishedHandlers.items()):
            try:
                handler(packageName, success, error)
            except Exception:
                logger.exception("packageFinished handler %s raised an exception.", subId)
