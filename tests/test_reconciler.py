import pytest

from mediashelf.services.entities import Movie, Rating, VideoFile
from mediashelf.services.reconciler import Reconciler
from mediashelf.services.scan_state import ScanState
from mediashelf.services.storage import LibraryTransaction


def file(path):
    return VideoFile.create("nas", path, f"http://nas.local/dav{path}")


class FakeRatings:
    def __init__(self, ratings=None, error=None):
        self.ratings = ratings or {}
        self.error = error
        self.requested = None

    async def bulk_refresh(self, imdb_ids, on_progress=None):
        self.requested = set(imdb_ids)
        if self.error:
            raise self.error
        if on_progress:
            on_progress("complete", "done")
        return len(self.requested)

    def lookup_many(self, imdb_ids):
        return {i: self.ratings[i] for i in imdb_ids if i in self.ratings}


def seed(store, *movies):
    with store.transaction() as tx:
        for movie in movies:
            tx.save_movie(movie)


def scan_state(store, found, force_refresh=False):
    state = ScanState.from_snapshot(store.snapshot(), force_refresh=force_refresh)
    state.found_files.update(found)
    return state


async def test_missing_file_pruned_from_movie(store):
    seed(store, Movie(id=1, title="Two Cuts", video_files=[file("/a.mkv"), file("/b.mkv")]))
    state = scan_state(store, {"nas:/a.mkv"})

    result = await Reconciler(store).reconcile(state)

    assert result.pruned_files == 1
    assert [f.file_path for f in store.get_movie(1).video_files] == ["/a.mkv"]


async def test_movie_without_found_files_is_deleted(store):
    seed(store, Movie(id=1, title="Gone", video_files=[file("/a.mkv"), file("/b.mkv")]))
    state = scan_state(store, set())

    result = await Reconciler(store).reconcile(state)

    assert result.deleted_movies == 1
    assert store.get_movie(1) is None


async def test_new_entities_and_unscanned_persisted(store):
    seed(store, Movie(id=1, title="Old", video_files=[file("/old.mkv")]))
    store_unscanned = [file("/stale.mkv")]
    with store.transaction() as tx:
        tx.set_unscanned_files(store_unscanned)

    state = scan_state(store, {"nas:/old.mkv", "nas:/new.mkv", "nas:/junk.mkv"})
    state.new_movies[2] = Movie(id=2, title="New", video_files=[file("/new.mkv")])
    state.unscanned.append(file("/junk.mkv"))

    result = await Reconciler(store).reconcile(state)

    assert (result.new_movies, result.updated_movies, result.pruned_files) == (1, 0, 0)
    assert set(store.snapshot().movies) == {1, 2}
    assert [f.file_path for f in store.get_unscanned_files()] == ["/junk.mkv"]


async def test_failed_write_leaves_library_untouched(store, monkeypatch):
    seed(store, Movie(id=1, title="Two Cuts", video_files=[file("/a.mkv"), file("/b.mkv")]))
    with store.transaction() as tx:
        tx.set_unscanned_files([file("/stale.mkv")])
    before = store.snapshot()

    state = scan_state(store, {"nas:/a.mkv"})
    state.new_movies[2] = Movie(id=2, title="New", video_files=[file("/new.mkv")])
    state.unscanned.append(file("/junk.mkv"))

    def fail(self):
        raise RuntimeError("disk I/O error")

    monkeypatch.setattr(LibraryTransaction, "delete_empty_shows", fail)

    with pytest.raises(RuntimeError):
        await Reconciler(store).reconcile(state)

    assert store.snapshot() == before
    assert [f.file_path for f in store.get_unscanned_files()] == ["/stale.mkv"]


async def test_ratings_backfilled_for_new_entities(store):
    seed(store, Movie(id=1, title="Old", imdb_id="tt0000001", video_files=[file("/old.mkv")]))
    state = scan_state(store, {"nas:/old.mkv", "nas:/new.mkv"})
    state.new_movies[2] = Movie(id=2, title="New", imdb_id="tt0000002", video_files=[file("/new.mkv")])
    ratings = FakeRatings({"tt0000001": Rating(7.0, 10), "tt0000002": Rating(8.5, 1200)})
    progress = []

    result = await Reconciler(store, ratings).reconcile(state, on_progress=lambda s, d: progress.append(s))

    assert ratings.requested == {"tt0000002"}
    assert result.ratings_updated == 1
    assert store.get_movie(2).imdb_rating == 8.5
    assert store.get_movie(2).imdb_votes == 1200
    assert store.get_movie(1).imdb_rating is None
    assert progress == ["complete"]


async def test_force_refresh_backfills_existing_entities(store):
    seed(store, Movie(id=1, title="Old", imdb_id="tt0000001", video_files=[file("/old.mkv")]))
    state = scan_state(store, {"nas:/old.mkv"}, force_refresh=True)
    ratings = FakeRatings({"tt0000001": Rating(7.0, 10)})

    await Reconciler(store, ratings).reconcile(state)

    assert ratings.requested == {"tt0000001"}
    assert store.get_movie(1).imdb_rating == 7.0


async def test_ratings_failure_keeps_committed_library(store):
    state = scan_state(store, {"nas:/new.mkv"})
    state.new_movies[2] = Movie(id=2, title="New", imdb_id="tt0000002", video_files=[file("/new.mkv")])

    result = await Reconciler(store, FakeRatings(error=RuntimeError("dataset offline"))).reconcile(state)

    assert result.ratings_error == "dataset offline"
    assert store.get_movie(2).title == "New"


async def test_garbage_collected_entities_not_backfilled(store):
    seed(store, Movie(id=1, title="Gone", imdb_id="tt0000001", video_files=[file("/gone.mkv")]))
    state = scan_state(store, set(), force_refresh=True)
    ratings = FakeRatings({"tt0000001": Rating(7.0, 10)})

    result = await Reconciler(store, ratings).reconcile(state)

    assert ratings.requested is None
    assert result.ratings_updated == 0
    assert store.get_movie(1) is None
