import pytest

from mediashelf.services.entities import LibrarySnapshot, Movie, VideoFile
from mediashelf.services.resolver import MatchResolver
from mediashelf.services.scan_state import ScanState
from mediashelf.services.scanner import ScanWalker

from .conftest import FakeBackend


def walker_for(gateway, backend, **kwargs):
    return ScanWalker(MatchResolver(gateway), backend_factory=lambda source: backend, **kwargs)


@pytest.fixture
def library_tree():
    return {
        "/": ["Movies/", "TV/", "readme.txt"],
        "/Movies": ["The.Matrix.1999.1080p.mkv", "Heat.1995.mkv", "Home.Video.mp4", "poster.jpg"],
        "/TV": ["Show Name/"],
        "/TV/Show Name": ["Show.Name.S01E01.mkv", "Show.Name.S01E02.mkv"],
    }


async def test_walk_matches_files_across_tree(gateway, webdav_source, library_tree):
    gateway.add_movie(603, "The Matrix", 1999)
    gateway.add_movie(949, "Heat", 1995)
    gateway.add_show(1, "Show Name", 2010, seasons={1: {1: "Pilot", 2: "Two"}})
    backend = FakeBackend(library_tree)
    state = ScanState()

    await walker_for(gateway, backend).walk(webdav_source, "/", state)

    assert set(state.new_movies) == {603, 949}
    assert set(state.new_shows) == {1}
    assert [f.file_path for f in state.unscanned] == ["/Movies/Home.Video.mp4"]
    assert len(state.found_files) == 5
    matrix_file = state.new_movies[603].video_files[0]
    assert matrix_file.id == "nas:/Movies/The.Matrix.1999.1080p.mkv"
    assert matrix_file.resolved_url == "http://nas.local/dav/Movies/The.Matrix.1999.1080p.mkv"


async def test_unreachable_subtree_is_skipped(gateway, webdav_source, library_tree):
    gateway.add_movie(603, "The Matrix", 1999)
    gateway.add_movie(949, "Heat", 1995)
    backend = FakeBackend(library_tree, failing={"/TV"})
    state = ScanState()

    await walker_for(gateway, backend).walk(webdav_source, "/", state)

    assert set(state.new_movies) == {603, 949}
    assert not state.new_shows


async def test_root_listing_failure_raises(gateway, webdav_source):
    backend = FakeBackend({})
    with pytest.raises(Exception):
        await walker_for(gateway, backend).walk(webdav_source, "/", ScanState())


async def test_webdav_subdirectory_retried_decoded(gateway, webdav_source):
    gateway.add_movie(1, "Amelie", 2001)
    backend = FakeBackend({
        "/": ["Caf%C3%A9/"],
        "/Café": ["Amelie.2001.mkv"],
    })
    state = ScanState()

    await walker_for(gateway, backend).walk(webdav_source, "/", state)

    assert backend.listed == ["/", "/Caf%C3%A9", "/Café"]
    assert 1 in state.new_movies


async def test_local_subdirectory_not_retried(gateway, local_source):
    gateway.add_movie(1, "Amelie", 2001)
    backend = FakeBackend({
        "/": ["Caf%C3%A9/"],
        "/Café": ["Amelie.2001.mkv"],
    })
    state = ScanState()

    await walker_for(gateway, backend).walk(local_source, "/", state)

    assert backend.listed == ["/", "/Caf%C3%A9"]
    assert not state.new_movies


def _known_movie(path, url, manually_matched=False):
    video_file = VideoFile.create("nas", path, url)
    video_file.manually_matched = manually_matched
    return Movie(id=42, title="Known", video_files=[video_file])


async def test_known_file_only_refreshes_url(gateway, webdav_source):
    movie = _known_movie("/Heat.1995.mkv", "http://old-host/dav/Heat.1995.mkv")
    state = ScanState.from_snapshot(LibrarySnapshot(movies={42: movie}))
    backend = FakeBackend({"/": ["Heat.1995.mkv"]})

    await walker_for(gateway, backend).walk(webdav_source, "/", state)

    assert sum(gateway.calls.values()) == 0
    assert movie.video_files[0].resolved_url == "http://nas.local/dav/Heat.1995.mkv"
    assert state.dirty_movie_ids == {42}


async def test_unchanged_known_file_is_not_dirty(gateway, webdav_source):
    movie = _known_movie("/Heat.1995.mkv", "http://nas.local/dav/Heat.1995.mkv")
    state = ScanState.from_snapshot(LibrarySnapshot(movies={42: movie}))
    backend = FakeBackend({"/": ["Heat.1995.mkv"]})

    await walker_for(gateway, backend).walk(webdav_source, "/", state)

    assert not state.dirty_movie_ids
    assert "nas:/Heat.1995.mkv" in state.found_files


async def test_manual_match_is_never_rematched(gateway, webdav_source):
    # The filename now matches a different catalog entry
    gateway.add_movie(949, "Heat", 1995)
    movie = _known_movie("/Heat.1995.mkv", "http://nas.local/dav/Heat.1995.mkv", manually_matched=True)
    state = ScanState.from_snapshot(LibrarySnapshot(movies={42: movie}), force_refresh=True)
    backend = FakeBackend({"/": ["Heat.1995.mkv"]})

    await walker_for(gateway, backend).walk(webdav_source, "/", state)

    assert gateway.calls["search_movie"] == 0
    assert not state.new_movies
    assert movie.video_files[0].manually_matched


async def test_overlapping_roots_count_files_once(gateway, webdav_source, library_tree):
    gateway.add_movie(603, "The Matrix", 1999)
    gateway.add_movie(949, "Heat", 1995)
    backend = FakeBackend(library_tree)
    state = ScanState()
    walker = walker_for(gateway, backend)

    await walker.walk(webdav_source, "/", state)
    await walker.walk(webdav_source, "/Movies", state)

    assert len(state.new_movies[603].video_files) == 1
    assert len(state.unscanned) == 1


async def test_listing_concurrency_is_capped(gateway, webdav_source):
    tree = {"/": [f"d{i}/" for i in range(6)]}
    for i in range(6):
        tree[f"/d{i}"] = [f"e{j}/" for j in range(3)]
        for j in range(3):
            tree[f"/d{i}/e{j}"] = []
    backend = FakeBackend(tree)

    await walker_for(gateway, backend, max_concurrent_listings=2).walk(webdav_source, "/", ScanState())

    assert len(backend.listed) == 1 + 6 + 18
    assert backend.max_in_flight == 2
