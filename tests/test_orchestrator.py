import asyncio

import pytest

from mediashelf.config import DataSource, SourceConfig
from mediashelf.services.orchestrator import ScanOrchestrator, ScanStatus
from mediashelf.services.storage import LibraryTransaction

from .conftest import FakeBackend


TREE = {
    "/": ["Movies/", "TV/"],
    "/Movies": ["The.Matrix.1999.mkv", "The.Matrix.1999.Directors.Cut.mkv", "Mystery.Clip.mp4"],
    "/TV": ["Show.Name.S01E01.mkv", "Show.Name.S01E02.mkv"],
}


@pytest.fixture
def catalog(gateway):
    gateway.add_movie(603, "The Matrix", 1999)
    gateway.add_show(1, "Show Name", 2010, seasons={1: {1: "Pilot", 2: "Two"}})
    return gateway


def make_orchestrator(store, gateway, sources, backends):
    return ScanOrchestrator(
        store,
        gateway,
        sources_provider=lambda: sources,
        backend_factory=lambda source: backends[source.id],
    )


async def test_scan_persists_library(store, catalog, webdav_source):
    orchestrator = make_orchestrator(store, catalog, [webdav_source], {"nas": FakeBackend(TREE)})
    events = []

    result = await orchestrator.start_scan(on_progress=events.append)

    snapshot = store.snapshot()
    assert len(snapshot.movies[603].video_files) == 2
    assert sorted(snapshot.shows[1].seasons[1].episodes) == [1, 2]
    assert [f.name for f in store.get_unscanned_files()] == ["Mystery.Clip.mp4"]
    assert result.new_movies == 1
    assert events[0].stage == "starting"
    assert events[-1].done and events[-1].error is None
    assert not orchestrator.is_scanning()


async def test_second_scan_request_is_ignored(store, catalog, webdav_source):
    backend = FakeBackend(TREE)
    orchestrator = make_orchestrator(store, catalog, [webdav_source], {"nas": backend})

    first, second = await asyncio.gather(orchestrator.start_scan(), orchestrator.start_scan())

    assert first is not None
    assert second is None
    assert backend.listed.count("/") == 1
    assert orchestrator.status is ScanStatus.IDLE


async def test_rescan_without_changes_is_idempotent(store, catalog, webdav_source):
    orchestrator = make_orchestrator(store, catalog, [webdav_source], {"nas": FakeBackend(TREE)})
    await orchestrator.start_scan()
    before = store.snapshot()
    calls = sum(catalog.calls.values())

    result = await orchestrator.start_scan()

    assert store.snapshot() == before
    # Only the unmatched clip is looked up again
    assert sum(catalog.calls.values()) - calls == 1
    assert (result.new_movies, result.new_shows) == (0, 0)
    assert (result.updated_movies, result.updated_shows) == (0, 0)


async def test_bad_source_does_not_abort_others(store, catalog, webdav_source):
    broken = DataSource(id="old", type="smb", name="Old NAS", config=SourceConfig(share="//old/media"), paths=["/a", "/b"])
    orchestrator = make_orchestrator(
        store, catalog, [broken, webdav_source],
        {"old": FakeBackend({}), "nas": FakeBackend(TREE)},
    )

    await orchestrator.start_scan()

    assert 603 in store.snapshot().movies


async def test_removed_source_prunes_its_files(store, catalog, webdav_source):
    orchestrator = make_orchestrator(store, catalog, [webdav_source], {"nas": FakeBackend(TREE)})
    await orchestrator.start_scan()

    orchestrator.sources_provider = lambda: []
    result = await orchestrator.start_scan()

    assert result.deleted_movies == 1
    assert result.deleted_shows == 1
    assert store.snapshot().movies == {}


async def test_full_refresh_refetches_known_entities(store, catalog, webdav_source):
    orchestrator = make_orchestrator(store, catalog, [webdav_source], {"nas": FakeBackend(TREE)})
    await orchestrator.start_scan()
    catalog.movies[603].overview = "Updated overview"
    movie_calls = catalog.calls["movie_details"]

    result = await orchestrator.start_scan(force_refresh=True)

    assert catalog.calls["movie_details"] == movie_calls + 1
    assert store.get_movie(603).overview == "Updated overview"
    assert result.updated_movies == 1


async def test_failed_reconcile_reports_error_and_returns_to_idle(store, catalog, webdav_source, monkeypatch):
    def fail(self):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(LibraryTransaction, "delete_empty_movies", fail)
    orchestrator = make_orchestrator(store, catalog, [webdav_source], {"nas": FakeBackend(TREE)})
    events = []

    with pytest.raises(RuntimeError):
        await orchestrator.start_scan(on_progress=events.append)

    assert events[-1].error == "database is locked"
    assert not events[-1].done
    assert not orchestrator.is_scanning()
    assert store.snapshot().movies == {}

    monkeypatch.undo()
    assert await orchestrator.start_scan() is not None
