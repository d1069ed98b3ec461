# plugpm/core/errors.py
from __future__ import annotations

__all__ = [
    "InvariantError",
    "PackageManagerError",
    "CatalogFetchError",
    "CatalogParseError",
    "NotFoundError",
    "UnsupportedPlatformError",
    "DownloadError",
    "ExtractError",
    "CopyError",
]



class InvariantError(Exception):
    """Raised when plugpm violates one of its own internal invariants."""
    pass



class PackageManagerError(RuntimeError):
    """Base class for recoverable package manager failures."""

    def __init__(
        self,
        message: str,
        *,
        packageName: str | None = None
    ) -> None:
        super().__init__(message)
        self.packageName: str | None = packageName



class CatalogFetchError(PackageManagerError):
    """The catalog could not be retrieved (network/HTTP failure)."""



class CatalogParseError(PackageManagerError):
    """The catalog was retrieved but is not a JSON array of records."""



class NotFoundError(PackageManagerError):
    """A package name is absent from the catalog."""



class UnsupportedPlatformError(PackageManagerError):
    """The container has no variant for any tag acceptable on this platform."""

    def __init__(
        self,
        message: str,
        *,
        packageName: str | None = None,
        triedVariants: tuple[str, ...] = (),
        availableVariants: tuple[str, ...] = (),
    ) -> None:
        super().__init__(message, packageName=packageName)
        self.triedVariants = triedVariants
        self.availableVariants = availableVariants



class DownloadError(PackageManagerError):
    """Downloading a container failed; any partial file was removed."""



class ExtractError(PackageManagerError):
    """The container is malformed or the selected variant could not be extracted."""



class CopyError(PackageManagerError):
    """A filesystem operation failed while copying a module into place."""
