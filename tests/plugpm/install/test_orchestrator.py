import pytest

from plugpm.install.engine import InstallEngine
from plugpm.install.events import InstallEvents
from plugpm.install.orchestrator import InstallOrchestrator, OrchestratorState

LINUX = "linux-x86_64"


def _orchestrator(config):
    events = InstallEvents()
    finished: list[tuple[str, bool, str]] = []
    events.onPackageFinished(lambda name, ok, err: finished.append((name, ok, err)))
    engine = InstallEngine(config, events=events, variants=[LINUX])
    return InstallOrchestrator(config, engine=engine), finished


def _publish(release, makeContainer, entry, name, deps=(), version="1.0.0"):
    moduleName = name.lower()
    path = makeContainer(moduleName, version, {LINUX: {f"{moduleName}.so": b"x"}})
    fileName = release.addContainer(path, f"{moduleName}.lgx")
    release.catalog.append(entry(name, deps=deps, moduleName=moduleName, package=fileName))


@pytest.mark.asyncio
async def test_batch_installs_dependencies_first(config, release, makeContainer, entry):
    _publish(release, makeContainer, entry, "App", deps=["Net", "Store"])
    _publish(release, makeContainer, entry, "Net", deps=["Store"])
    _publish(release, makeContainer, entry, "Store")
    orchestrator, finished = _orchestrator(config)

    result = await orchestrator.installPackages(["App"])

    assert result.success
    assert [pkg.name for pkg in result.packages] == ["Store", "Net", "App"]
    assert finished == [("Store", True, ""), ("Net", True, ""), ("App", True, "")]
    assert release.containerRequests() == ["store.lgx", "net.lgx", "app.lgx"]
    for moduleName in ("store", "net", "app"):
        assert (config.resolvedModulesDir() / moduleName / f"{moduleName}.so").exists()


@pytest.mark.asyncio
async def test_catalog_is_refetched_for_every_package(config, release, makeContainer, entry):
    _publish(release, makeContainer, entry, "App", deps=["Lib"])
    _publish(release, makeContainer, entry, "Lib")
    orchestrator, _ = _orchestrator(config)

    await orchestrator.installPackages(["App"])

    catalogFetches = [url for url in release.requests if url.endswith("/list.json")]
    # One fetch to resolve, one per package
    assert len(catalogFetches) == 3


@pytest.mark.asyncio
async def test_request_submitted_while_busy_waits_for_whole_batch(config, release, makeContainer, entry):
    _publish(release, makeContainer, entry, "A", deps=["A1"])
    _publish(release, makeContainer, entry, "A1")
    _publish(release, makeContainer, entry, "B")
    orchestrator, finished = _orchestrator(config)

    queued: dict[str, object] = {}

    def submitWhileBusy(path, isCore):
        if "second" not in queued:
            queued["busy"] = orchestrator.isInstalling
            queued["second"] = orchestrator.submit(["B"])
            queued["pending"] = orchestrator.pendingCount

    orchestrator.events.onArtifactInstalled(submitWhileBusy)

    first = orchestrator.submit(["A"])
    firstResult = await first.wait()
    secondResult = await queued["second"].wait()
    await orchestrator.waitIdle()

    assert queued["busy"] is True
    assert queued["pending"] == 1
    assert [pkg.name for pkg in firstResult.packages] == ["A1", "A"]
    assert [pkg.name for pkg in secondResult.packages] == ["B"]
    assert [name for name, _, _ in finished] == ["A1", "A", "B"]
    assert release.containerRequests() == ["a1.lgx", "a.lgx", "b.lgx"]
    assert orchestrator.state is OrchestratorState.Idle
    assert orchestrator.isInstalling is False


@pytest.mark.asyncio
async def test_queue_drains_in_submission_order(config, release, makeContainer, entry):
    for name in ("One", "Two", "Three"):
        _publish(release, makeContainer, entry, name)
    orchestrator, finished = _orchestrator(config)

    requests = [orchestrator.submit([name]) for name in ("Three", "One", "Two")]
    await requests[-1].wait()
    await orchestrator.waitIdle()

    assert [name for name, _, _ in finished] == ["Three", "One", "Two"]
    assert all(req.future.done() for req in requests)
    assert orchestrator.pendingCount == 0


@pytest.mark.asyncio
async def test_queued_requests_are_not_merged(config, release, makeContainer, entry):
    _publish(release, makeContainer, entry, "Dup")
    orchestrator, finished = _orchestrator(config)

    first = orchestrator.submit(["Dup"])
    second = orchestrator.submit(["Dup"])
    await first.wait()
    await second.wait()

    assert [name for name, _, _ in finished] == ["Dup", "Dup"]
    assert release.containerRequests() == ["dup.lgx", "dup.lgx"]


@pytest.mark.asyncio
async def test_failed_package_does_not_abort_siblings(config, release, makeContainer, entry):
    _publish(release, makeContainer, entry, "Good")
    release.catalog.append(entry("Broken", package="broken.lgx"))  # container missing upstream
    orchestrator, finished = _orchestrator(config)

    result = await orchestrator.installPackages(["Broken", "Good"])

    assert result.success is False
    assert [pkg.name for pkg in result.failed] == ["Broken"]
    assert finished[0][0] == "Broken" and finished[0][1] is False
    assert "broken.lgx" in finished[0][2]
    assert finished[1] == ("Good", True, "")
    assert (config.resolvedModulesDir() / "good").exists()


@pytest.mark.asyncio
async def test_unsupported_platform_is_reported_per_package(config, release, makeContainer, entry):
    macOnly = makeContainer("maconly", variants={"darwin-arm64": {"maconly.dylib": b"m"}})
    release.catalog.append(entry("MacOnly", package=release.addContainer(macOnly, "maconly.lgx")))
    orchestrator, finished = _orchestrator(config)

    result = await orchestrator.installPackages(["MacOnly"])

    assert result.success is False
    assert finished[0][0] == "MacOnly"
    assert LINUX in finished[0][2]


@pytest.mark.asyncio
async def test_missing_package_reports_not_found(config, release, makeContainer, entry):
    _publish(release, makeContainer, entry, "Real")
    orchestrator, finished = _orchestrator(config)

    result = await orchestrator.installPackages(["Nope", "Real"])

    assert ("Nope", False) == finished[0][:2]
    assert "not found" in finished[0][2].lower()
    assert finished[1] == ("Real", True, "")
    assert [pkg.name for pkg in result.packages] == ["Nope", "Real"]


@pytest.mark.asyncio
async def test_catalog_failure_fails_request_and_queue_continues(config, release, makeContainer, entry):
    _publish(release, makeContainer, entry, "Later")
    orchestrator, finished = _orchestrator(config)
    release.catalogStatus = 500

    def restoreCatalog(name, ok, err):
        release.catalogStatus = 200

    orchestrator.events.onPackageFinished(restoreCatalog)

    first = orchestrator.submit(["Later"])
    second = orchestrator.submit(["Later"])
    firstResult = await first.wait()
    secondResult = await second.wait()

    assert firstResult.success is False
    assert secondResult.success is True
    assert [(name, ok) for name, ok, _ in finished] == [("Later", False), ("Later", True)]


@pytest.mark.asyncio
async def test_skip_policy_travels_with_request(config, release, makeContainer, entry):
    _publish(release, makeContainer, entry, "Same", version="1.0.0")
    orchestrator, finished = _orchestrator(config)

    await orchestrator.installPackages(["Same"])
    result = await orchestrator.installPackages(["Same"], skipIfNotNewer=True)

    assert result.success
    assert result.packages[0].outcome.skipped
    assert finished[-1] == ("Same", True, "")


@pytest.mark.asyncio
async def test_state_walks_through_install_phases(config, release, makeContainer, entry, monkeypatch):
    _publish(release, makeContainer, entry, "Solo")
    orchestrator, _ = _orchestrator(config)
    seen: list[OrchestratorState] = []
    original = orchestrator._setState

    def recordState(state):
        seen.append(state)
        original(state)

    monkeypatch.setattr(orchestrator, "_setState", recordState)

    await orchestrator.installPackages(["Solo"])
    await orchestrator.waitIdle()

    assert seen == [
        OrchestratorState.ResolvingDependencies,
        OrchestratorState.FetchingCatalog,
        OrchestratorState.DownloadingPackageFile,
        OrchestratorState.InstallingPackage,
        OrchestratorState.AdvanceToNextPackage,
        OrchestratorState.AdvanceToNextRequest,
        OrchestratorState.Idle,
    ]
    assert orchestrator.batch is None
    assert orchestrator.activeRequest is None


@pytest.mark.asyncio
async def test_unexpected_error_resolves_request_with_failures(config, release, makeContainer, entry, monkeypatch):
    _publish(release, makeContainer, entry, "App", deps=["Lib"])
    _publish(release, makeContainer, entry, "Lib")
    orchestrator, finished = _orchestrator(config)

    def explode(*args, **kwargs):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(orchestrator.engine, "installContainer", explode)

    request = orchestrator.submit(["App"])
    await orchestrator.waitIdle()

    assert request.future.done()
    result = request.future.result()
    assert not result.success
    assert [(pkg.name, pkg.error) for pkg in result.packages] == [
        ("Lib", "Unexpected error: disk on fire"),
        ("App", "Unexpected error: disk on fire"),
    ]
    assert [name for name, ok, _ in finished] == ["Lib", "App"]
    assert orchestrator.state is OrchestratorState.Idle
    assert list(config.resolvedTempDir().iterdir()) == []
