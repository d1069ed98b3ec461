# plugpm/cli.py
from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, NoReturn

import click

from plugpm import __version__
from plugpm.app.config import PackageManagerConfig
from plugpm.catalog.client import filterByQuery, findByName
from plugpm.catalog.models import ModuleType, PackageRecord
from plugpm.core.errors import PackageManagerError
from plugpm.core.jsonutils import prettyJsonDumps, tryJSONify
from plugpm.core.logging import configureLogging
from plugpm.manager import PackageManager

__all__ = ["main"]



@dataclass(slots=True)
class CliState:
    manager: PackageManager
    jsonOutput: bool

    def emit(self, payload: Any, text: str | Iterable[str]) -> None:
        if self.jsonOutput:
            click.echo(prettyJsonDumps(tryJSONify(payload)))
            return
        lines = [text] if isinstance(text, str) else list(text)
        for line in lines:
            click.echo(line)



def _fail(message: str) -> NoReturn:
    click.echo(f"Error: {message}", err=True)
    raise SystemExit(1)


def _recordLine(pkg: PackageRecord) -> str:
    mark = "*" if pkg.installed else " "
    category = f"[{pkg.category}]" if pkg.category else ""
    return f" {mark} {pkg.name:28s} {category:14s} {pkg.description}".rstrip()


def _recordJson(pkg: PackageRecord) -> dict[str, Any]:
    data = pkg.toCatalogJson()
    data["installed"] = pkg.installed
    return data



@click.group()
@click.version_option(version=__version__, prog_name="plugpm")
@click.option("--modules-dir", "modulesDir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Directory for core modules (default: <app>/bin/modules).")
@click.option("--ui-plugins-dir", "uiPluginsDir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Directory for UI plugins (default: sibling 'plugins' of the modules dir).")
@click.option("--release", default=None, help="Release tag to use ('latest' by default).")
@click.option("--json", "jsonOutput", is_flag=True, default=False, help="Machine-readable output.")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Debug logging on stderr.")
@click.pass_context
def main(
    ctx: click.Context,
    modulesDir: Path | None,
    uiPluginsDir: Path | None,
    release: str | None,
    jsonOutput: bool,
    verbose: bool,
) -> None:
    """plugpm - install and manage application modules."""
    configureLogging(verbose=verbose or None)
    config = PackageManagerConfig.fromSettings(
        modulesDir=modulesDir,
        uiPluginsDir=uiPluginsDir,
        release=release,
    )
    ctx.obj = CliState(manager=PackageManager(config), jsonOutput=jsonOutput)



@main.command()
@click.argument("query")
@click.pass_obj
def search(state: CliState, query: str) -> None:
    """Search packages by name or description."""
    try:
        packages = filterByQuery(asyncio.run(state.manager.catalog.listPackages()), query)
    except PackageManagerError as err:
        _fail(str(err))
    state.emit(
        [_recordJson(pkg) for pkg in packages],
        [_recordLine(pkg) for pkg in packages] or [f"No packages match {query!r}."],
    )


@main.command(name="list")
@click.option("--category", default=None, help="Only packages in this category (case-insensitive).")
@click.option("--installed", "installedOnly", is_flag=True, default=False, help="Only installed packages.")
@click.pass_obj
def listPackages(state: CliState, category: str | None, installedOnly: bool) -> None:
    """List available packages (* marks installed ones)."""
    try:
        packages = asyncio.run(state.manager.catalog.listPackages(category))
    except PackageManagerError as err:
        _fail(str(err))
    if installedOnly:
        packages = [pkg for pkg in packages if pkg.installed]
    state.emit(
        [_recordJson(pkg) for pkg in packages],
        [_recordLine(pkg) for pkg in packages] or ["No packages found."],
    )


@main.command()
@click.pass_obj
def categories(state: CliState) -> None:
    """List package categories."""
    try:
        catalog = asyncio.run(state.manager.catalog.fetchCatalog())
    except PackageManagerError as err:
        _fail(str(err))
    names = sorted({rec.category for rec in catalog if rec.category})
    state.emit(names, names or ["No categories found."])


@main.command()
@click.argument("name")
@click.pass_obj
def info(state: CliState, name: str) -> None:
    """Show details of one package."""
    try:
        pkg = findByName(asyncio.run(state.manager.catalog.listPackages()), name)
    except PackageManagerError as err:
        _fail(str(err))
    if pkg is None:
        _fail(f"Package not found: {name}")
    state.emit(_recordJson(pkg), [
        f"Name:         {pkg.name}",
        f"Module:       {pkg.moduleName}",
        f"Type:         {pkg.moduleType.value}",
        f"Category:     {pkg.category}",
        f"Author:       {pkg.author}",
        f"Description:  {pkg.description}",
        f"Dependencies: {', '.join(pkg.dependencies) or '-'}",
        f"Package file: {pkg.containerFile}",
        f"Installed:    {'yes' if pkg.installed else 'no'}",
    ])


@main.command()
@click.argument("names", nargs=-1)
@click.option("--file", "containerFile", type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None,
              help="Install a local package file instead of catalog packages.")
@click.option("--type", "moduleType", type=click.Choice(["core", "ui"]), default=None,
              help="Module type for --file (default: from the package manifest).")
@click.option("--skip-if-not-newer", "skipIfNotNewer", is_flag=True, default=False,
              help="Skip packages whose installed version is the same or newer.")
@click.pass_obj
def install(
    state: CliState,
    names: tuple[str, ...],
    containerFile: Path | None,
    moduleType: str | None,
    skipIfNotNewer: bool,
) -> None:
    """Install packages (with their dependencies) or a local package file."""
    # Without the flag the configured default applies
    skipPolicy = True if skipIfNotNewer else None
    if containerFile is None and not names:
        raise click.UsageError("Give at least one package name or --file.")
    if containerFile is not None and names:
        raise click.UsageError("Package names and --file cannot be combined.")

    if containerFile is not None:
        try:
            outcome = state.manager.installPluginFile(
                containerFile,
                moduleType=ModuleType.fromRaw(moduleType) if moduleType else None,
                skipIfNotNewer=skipPolicy,
            )
        except PackageManagerError as err:
            _fail(str(err))
        if outcome.skipped:
            text = f"Skipped {outcome.moduleName}: installed {outcome.installedVersion} is not older than {outcome.version}"
        else:
            text = f"Installed {outcome.moduleName} to {outcome.moduleDir}"
        state.emit(outcome, text)
        return

    result = asyncio.run(state.manager.installPackages(names, skipIfNotNewer=skipPolicy))
    lines: list[str] = []
    for pkg in result.packages:
        if not pkg.success:
            lines.append(f"  FAILED     {pkg.name}: {pkg.error}")
        elif pkg.outcome is not None and pkg.outcome.skipped:
            lines.append(f"  skipped    {pkg.name} (installed {pkg.outcome.installedVersion})")
        else:
            lines.append(f"  installed  {pkg.name}")
    state.emit(
        {"success": result.success, "packages": result.packages},
        lines or ["Nothing to install."],
    )
    if not result.success:
        raise SystemExit(1)
