import json
from collections.abc import Callable, Mapping
from pathlib import Path

import httpx
import pytest

from plugpm.app.config import PackageManagerConfig
from plugpm.container.codec import buildContainer
from plugpm.http import client as http_client

BASE_URL = "https://example.com/modules"
RELEASE_URL = f"{BASE_URL}/releases/latest/download"
LINUX = "linux-x86_64"



@pytest.fixture
def config(tmp_path: Path) -> PackageManagerConfig:
    appDir = tmp_path / "app"
    tempDir = tmp_path / "tmp"
    tempDir.mkdir()
    return PackageManagerConfig(
        applicationDir=appDir,
        modulesDir=appDir / "bin" / "modules",
        tempDir=tempDir,
        baseUrl=BASE_URL,
        retries=0,
        backoffBaseMs=0,
        backoffMaxMs=0,
    )



@pytest.fixture
def makeContainer(tmp_path: Path) -> Callable[..., Path]:
    """
    Build a container file from in-memory variant trees:
        makeContainer("foo", "1.0.0", {"linux-x86_64": {"foo.so": b"..."}})
    """
    counter = {"n": 0}

    def _make(
        name: str | None,
        version: str | None = "1.0.0",
        variants: Mapping[str, Mapping[str, bytes]] | None = None,
        *,
        main: Mapping[str, str] | str | None = None,
        moduleType: str | None = None,
        fileName: str | None = None,
        extraManifest: Mapping[str, object] | None = None,
    ) -> Path:
        counter["n"] += 1
        workDir = tmp_path / "src" / f"c{counter['n']}"
        if variants is None:
            variants = {LINUX: {f"{name}.so": b"\x7fELF"}}

        variantDirs: dict[str, Path] = {}
        for tag, files in variants.items():
            variantDir = workDir / tag
            variantDir.mkdir(parents=True)
            for rel, data in files.items():
                target = variantDir / rel
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(data)
            variantDirs[tag] = variantDir

        manifest: dict[str, object] = {}
        if name is not None:
            manifest["name"] = name
        if version is not None:
            manifest["version"] = version
        if main is not None:
            manifest["main"] = main
        if moduleType is not None:
            manifest["type"] = moduleType
        manifest.update(extraManifest or {})

        out = tmp_path / "containers" / (fileName or f"{name or 'unnamed'}-{counter['n']}.lgx")
        return buildContainer(out, manifest, variantDirs)

    return _make



def installTransport(monkeypatch: pytest.MonkeyPatch, handler) -> httpx.MockTransport:
    transport = httpx.MockTransport(handler)
    original_async_client = http_client.httpx.AsyncClient

    class _PatchedAsyncClient:
        """Wrap httpx.AsyncClient so the transport can be injected."""

        def __init__(self, *args, **kwargs):
            kwargs = dict(kwargs)
            kwargs["transport"] = transport
            self._client = original_async_client(*args, **kwargs)

        async def __aenter__(self):
            client = await self._client.__aenter__()
            return client

        async def __aexit__(self, exc_type, exc, tb):
            return await self._client.__aexit__(exc_type, exc, tb)

    monkeypatch.setattr(http_client.httpx, "AsyncClient", _PatchedAsyncClient)
    return transport



@pytest.fixture
def mockHttp(monkeypatch: pytest.MonkeyPatch):
    """Install a MockTransport handler for every outbound request."""
    def _install(handler) -> httpx.MockTransport:
        return installTransport(monkeypatch, handler)
    return _install



class FakeRelease:
    """
    Serves `<release>/list.json` and container files from memory, and
    records every requested path.
    """
    def __init__(self, catalog: list[dict] | None = None, files: Mapping[str, bytes] | None = None):
        self.catalog = catalog or []
        self.files: dict[str, bytes] = dict(files or {})
        self.requests: list[str] = []
        self.catalogStatus = 200

    def addContainer(self, path: Path, fileName: str | None = None) -> str:
        fileName = fileName or path.name
        self.files[fileName] = path.read_bytes()
        return fileName

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        if not url.startswith(RELEASE_URL + "/"):
            return httpx.Response(404, text="unknown release")
        fileName = url[len(RELEASE_URL) + 1:]
        if fileName == "list.json":
            if self.catalogStatus != 200:
                return httpx.Response(self.catalogStatus, text="catalog unavailable")
            return httpx.Response(
                200,
                content=json.dumps(self.catalog).encode("utf-8"),
                headers={"Content-Type": "application/json"},
            )
        if fileName in self.files:
            return httpx.Response(200, content=self.files[fileName])
        return httpx.Response(404, text="not found")

    def containerRequests(self) -> list[str]:
        return [url.rsplit("/", 1)[-1] for url in self.requests if not url.endswith("/list.json")]



def catalogEntry(name: str, *, deps=(), moduleType: str = "core", moduleName: str | None = None,
                 package: str | None = None, category: str = "Core", description: str = "") -> dict:
    return {
        "name": name,
        "description": description or f"{name} module",
        "category": category,
        "type": moduleType,
        "moduleName": moduleName or name,
        "author": "Test",
        "dependencies": list(deps),
        "package": package if package is not None else f"{name}.lgx",
    }



@pytest.fixture
def release(monkeypatch: pytest.MonkeyPatch) -> FakeRelease:
    """A FakeRelease already wired in as the HTTP transport."""
    fake = FakeRelease()
    installTransport(monkeypatch, fake)
    return fake



@pytest.fixture
def entry():
    return catalogEntry
