# plugpm/catalog/client.py
from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

import httpx
from pydantic import ValidationError

from plugpm.app.config import PackageManagerConfig
from plugpm.catalog.models import PackageRecord
from plugpm.core.errors import CatalogFetchError, CatalogParseError, PackageManagerError
from plugpm.http import client as httpClient
from plugpm.install.manifest import MANIFEST_FILE, readManifest

logger = logging.getLogger(__name__)

__all__ = [
    "CatalogResult",
    "CatalogClient",
    "parseCatalog",
    "findByName",
    "filterByQuery",
    "listInstalled",
]



@dataclass(slots=True, frozen=True)
class CatalogResult:
    """Non-raising catalog fetch outcome: records are empty whenever error is set."""
    records: tuple[PackageRecord, ...]
    error: PackageManagerError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None



def parseCatalog(text: str | bytes) -> list[PackageRecord]:
    """
    Parse the catalog body (a JSON array of package objects).

    Entries that are not objects, or lack a usable name, are skipped with a
    warning. A body that is not JSON, or not an array, raises CatalogParseError.
    """
    try:
        doc = json.loads(text)
    except ValueError as err:
        raise CatalogParseError(f"Failed to parse package list JSON: {err}") from err

    if not isinstance(doc, list):
        raise CatalogParseError("Package list JSON is not an array")

    records: list[PackageRecord] = []
    for index, entry in enumerate(doc):
        if not isinstance(entry, dict):
            logger.warning("Catalog entry #%d is not an object, skipping", index)
            continue
        try:
            record = PackageRecord.model_validate(entry)
        except ValidationError as err:
            logger.warning("Catalog entry #%d is invalid, skipping: %s", index, err)
            continue
        if not record.name:
            logger.warning("Catalog entry #%d has an empty name, skipping", index)
            continue
        records.append(record)
    return records



def findByName(catalog: Iterable[PackageRecord], name: str) -> PackageRecord | None:
    """First record whose name equals `name` exactly (case-sensitive), else None."""
    for record in catalog:
        if record.name == name:
            return record
    return None



def filterByQuery(packages: Iterable[PackageRecord], query: str) -> list[PackageRecord]:
    """Case-insensitive substring match on name or description; empty query matches all."""
    needle = query.strip().lower()
    if not needle:
        return list(packages)
    return [
        pkg for pkg in packages
        if needle in pkg.name.lower() or needle in pkg.description.lower()
    ]



def listInstalled(baseDirs: Iterable[Path]) -> set[str]:
    """
    Names declared by the manifests of immediate subdirectories of each base
    directory. Directories without a readable manifest are ignored.
    """
    names: set[str] = set()
    for base in baseDirs:
        base = Path(base)
        if not base.is_dir():
            continue
        for child in sorted(base.iterdir()):
            if not child.is_dir():
                continue
            manifest = readManifest(child / MANIFEST_FILE)
            if manifest is not None and manifest.name:
                names.add(manifest.name)
    return names



class CatalogClient:
    """
    Fetches the remote package list and answers lookups over it.
    Nothing is cached: every call fetches a fresh snapshot.
    """
    def __init__(self, config: PackageManagerConfig) -> None:
        self.config = config

    async def fetchCatalog(self) -> list[PackageRecord]:
        """
        Raises:
            CatalogFetchError (network / HTTP failure)
            CatalogParseError (malformed or non-array JSON)
        """
        url = self.config.catalogUrl()
        logger.debug("Fetching package list from %s", url)
        try:
            resp = await httpClient.request("GET", url, policy=self.config.retryPolicy())
        except (httpClient.HTTPError, httpx.HTTPError) as err:
            raise CatalogFetchError(f"Failed to fetch package list: {err}") from err

        records = parseCatalog(resp.content)
        logger.info("Fetched %d packages from %s", len(records), url)
        return records

    async def fetchCatalogResult(self) -> CatalogResult:
        try:
            return CatalogResult(records=tuple(await self.fetchCatalog()))
        except (CatalogFetchError, CatalogParseError) as err:
            logger.warning("%s", err)
            return CatalogResult(records=(), error=err)

    # ----- Installed status -----

    def annotateInstalled(self, catalog: Sequence[PackageRecord]) -> list[PackageRecord]:
        """
        Copies of the records with `installed` set by moduleName membership in
        the installed-manifest names. Records without a container file are dropped.
        """
        installed = listInstalled(self.config.candidateDirs())
        out: list[PackageRecord] = []
        for record in catalog:
            if not record.containerFile:
                logger.warning("Package %s has no package file specified", record.name)
                continue
            out.append(record.withInstalled(bool(record.moduleName) and record.moduleName in installed))
        return out

    async def listPackages(self, category: str | None = None) -> list[PackageRecord]:
        """Like getPackages, but catalog errors propagate."""
        packages = self.annotateInstalled(await self.fetchCatalog())
        if category:
            wanted = category.strip().lower()
            packages = [pkg for pkg in packages if pkg.category.strip().lower() == wanted]
        logger.debug("Found %d packages", len(packages))
        return packages

    async def getPackages(self, category: str | None = None) -> list[PackageRecord]:
        """Catalog with install status; empty on catalog errors (logged)."""
        try:
            return await self.listPackages(category)
        except (CatalogFetchError, CatalogParseError) as err:
            logger.warning("%s", err)
            return []

    async def getCategories(self) -> list[str]:
        result = await self.fetchCatalogResult()
        return sorted({rec.category for rec in result.records if rec.category})

    async def searchPackages(self, query: str) -> list[PackageRecord]:
        return filterByQuery(await self.getPackages(), query)
