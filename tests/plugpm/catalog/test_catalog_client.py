import json

import httpx
import pytest

from plugpm.catalog.client import (
    CatalogClient,
    filterByQuery,
    findByName,
    listInstalled,
    parseCatalog,
)
from plugpm.catalog.models import ModuleType, PackageRecord
from plugpm.core.errors import CatalogFetchError, CatalogParseError
from plugpm.install.manifest import writeManifest


def test_parse_catalog_maps_wire_fields():
    body = json.dumps([
        {
            "name": "Chat",
            "description": "Chat module",
            "category": "Social",
            "type": "ui",
            "moduleName": "chat_ui",
            "author": "Team",
            "dependencies": ["Waku", "Storage"],
            "package": "chat-ui.lgx",
        }
    ])

    [record] = parseCatalog(body)

    assert record.name == "Chat"
    assert record.moduleType is ModuleType.UI
    assert record.moduleName == "chat_ui"
    assert record.dependencies == ("Waku", "Storage")
    assert record.containerFile == "chat-ui.lgx"
    assert record.installed is False
    assert record.isCoreModule is False


def test_parse_catalog_unknown_type_is_core():
    [record] = parseCatalog(json.dumps([{"name": "X", "type": "library"}]))
    assert record.moduleType is ModuleType.CORE
    assert record.isCoreModule is True


def test_parse_catalog_skips_bad_entries():
    body = json.dumps([
        "not-an-object",
        {"description": "no name"},
        {"name": ""},
        {"name": "Good", "dependencies": None, "author": None},
        {"name": "AlsoGood", "dependencies": 7},
    ])
    records = parseCatalog(body)
    assert [r.name for r in records] == ["Good", "AlsoGood"]
    assert records[0].dependencies == ()
    assert records[0].author == ""
    assert records[1].dependencies == ()


def test_parse_catalog_rejects_malformed_json():
    with pytest.raises(CatalogParseError):
        parseCatalog("{not json")


def test_parse_catalog_rejects_non_array():
    with pytest.raises(CatalogParseError):
        parseCatalog(json.dumps({"name": "Chat"}))


def test_find_by_name_first_exact_match():
    catalog = [
        PackageRecord(name="chat", description="lower"),
        PackageRecord(name="Chat", description="first"),
        PackageRecord(name="Chat", description="second"),
    ]
    assert findByName(catalog, "Chat").description == "first"
    assert findByName(catalog, "CHAT") is None


def test_filter_by_query_matches_name_or_description():
    catalog = [
        PackageRecord(name="Wallet", description="Keeps keys"),
        PackageRecord(name="Chat", description="Talk to your wallet"),
        PackageRecord(name="Storage", description="Files"),
    ]
    assert [r.name for r in filterByQuery(catalog, "WALLET")] == ["Wallet", "Chat"]
    assert len(filterByQuery(catalog, "  ")) == 3


def test_list_installed_reads_manifest_names(tmp_path):
    modules = tmp_path / "modules"
    plugins = tmp_path / "plugins"
    writeManifest(modules / "dir_a", {"name": "alpha", "version": "1.0"})
    writeManifest(plugins / "dir_b", {"name": "beta"})
    (modules / "no_manifest").mkdir()
    (modules / "stray_file.txt").write_text("x")
    broken = modules / "broken"
    broken.mkdir()
    (broken / "manifest.json").write_text("{ nope")

    assert listInstalled([modules, plugins, tmp_path / "missing"]) == {"alpha", "beta"}


@pytest.mark.asyncio
async def test_fetch_catalog_uses_release_url(config, release, entry):
    release.catalog = [entry("Waku"), entry("Chat", deps=["Waku"])]

    records = await CatalogClient(config).fetchCatalog()

    assert [r.name for r in records] == ["Waku", "Chat"]
    assert release.requests == [
        "https://example.com/modules/releases/latest/download/list.json",
    ]


@pytest.mark.asyncio
async def test_fetch_catalog_http_failure(config, release):
    release.catalogStatus = 500

    with pytest.raises(CatalogFetchError):
        await CatalogClient(config).fetchCatalog()

    result = await CatalogClient(config).fetchCatalogResult()
    assert result.ok is False
    assert result.records == ()
    assert isinstance(result.error, CatalogFetchError)


@pytest.mark.asyncio
async def test_fetch_catalog_with_release_tag(config, mockHttp):
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, content=b"[]")

    mockHttp(handler)
    records = await CatalogClient(config.withOverrides(release="v0.2.0")).fetchCatalog()

    assert records == []
    assert seen == ["https://example.com/modules/releases/download/v0.2.0/list.json"]


@pytest.mark.asyncio
async def test_get_packages_marks_installed_and_drops_fileless(config, release, entry):
    release.catalog = [
        entry("Waku", moduleName="waku_module"),
        entry("Chat", moduleName="chat_ui", moduleType="ui", category="Social"),
        entry("Ghost", package=""),
    ]
    writeManifest(config.resolvedUiPluginsDir() / "whatever_dir", {"name": "chat_ui"})

    packages = await CatalogClient(config).getPackages()

    assert [(p.name, p.installed) for p in packages] == [("Waku", False), ("Chat", True)]


@pytest.mark.asyncio
async def test_get_packages_category_filter_is_case_insensitive(config, release, entry):
    release.catalog = [
        entry("Waku", category="Network"),
        entry("Chat", category="Social"),
    ]

    packages = await CatalogClient(config).getPackages("social")

    assert [p.name for p in packages] == ["Chat"]


@pytest.mark.asyncio
async def test_get_packages_returns_empty_on_errors(config, release):
    release.catalogStatus = 503
    assert await CatalogClient(config).getPackages() == []


@pytest.mark.asyncio
async def test_get_categories_sorted_unique(config, release, entry):
    release.catalog = [
        entry("A", category="Social"),
        entry("B", category="Network"),
        entry("C", category="Social"),
        entry("D", category=""),
    ]
    assert await CatalogClient(config).getCategories() == ["Network", "Social"]


@pytest.mark.asyncio
async def test_each_call_fetches_a_fresh_snapshot(config, release, entry):
    client = CatalogClient(config)
    release.catalog = [entry("A")]
    assert [r.name for r in await client.fetchCatalog()] == ["A"]

    release.catalog = [entry("A"), entry("B")]
    assert [r.name for r in await client.fetchCatalog()] == ["A", "B"]
    assert len(release.requests) == 2
