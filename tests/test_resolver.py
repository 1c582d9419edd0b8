import asyncio

from mediashelf.services.entities import (
    CatalogCandidate,
    Episode,
    Season,
    Show,
    VideoFile,
)
from mediashelf.services.resolver import MatchResolver, find_best_match
from mediashelf.services.scan_state import ScanState
from mediashelf.services.tmdb import CatalogNotConfiguredError


def make_file(path, source_id="nas"):
    return VideoFile.create(source_id, path, f"http://nas.local/dav{path}")


# ── find_best_match ─────────────────────────────────────────────────


def test_best_match_keeps_catalog_order():
    candidates = [CatalogCandidate(1, "A", 2015), CatalogCandidate(2, "B", 2010), CatalogCandidate(3, "C", 2021)]
    assert find_best_match(candidates, 2012).id == 2


def test_best_match_falls_back_to_first():
    candidates = [CatalogCandidate(1, "A", 2015), CatalogCandidate(2, "B", None)]
    assert find_best_match(candidates, 2000).id == 1
    assert find_best_match(candidates, None).id == 1
    assert find_best_match([], 2000) is None


# ── Movies ──────────────────────────────────────────────────────────


async def test_concurrent_files_share_one_movie_fetch(gateway):
    gateway.add_movie(603, "The Matrix", 1999)
    state = ScanState()
    resolver = MatchResolver(gateway)
    files = [
        make_file("/Movies/The.Matrix.1999.1080p.mkv"),
        make_file("/Movies/The.Matrix.1999.720p.mkv"),
        make_file("/Movies/The Matrix (1999).mkv"),
        make_file("/Other/The.Matrix.1999.x265.mkv"),
    ]

    results = await asyncio.gather(*(resolver.resolve_file(f, state) for f in files))

    assert all(results)
    assert gateway.calls["movie_details"] == 1
    assert state.pending_movie_fetch.started == 1
    assert len(state.pending_movie_fetch) == 0
    movie = state.new_movies[603]
    assert sorted(f.id for f in movie.video_files) == sorted(f.id for f in files)
    assert movie.source_id == "nas"
    assert not state.dirty_movie_ids


async def test_file_joins_existing_movie_without_fetch(gateway):
    gateway.add_movie(603, "The Matrix", 1999)
    existing = gateway.movies[603]
    state = ScanState(current_movies={603: existing})

    assert await MatchResolver(gateway).resolve_file(make_file("/The.Matrix.1999.mkv"), state)

    assert gateway.calls["movie_details"] == 0
    assert len(existing.video_files) == 1
    assert state.dirty_movie_ids == {603}
    assert not state.new_movies


async def test_movie_without_results_is_unmatched(gateway):
    state = ScanState()
    assert not await MatchResolver(gateway).resolve_file(make_file("/Unknown.Film.2001.mkv"), state)
    assert gateway.calls["search_movie"] == 1
    assert not state.new_movies


async def test_unconfigured_catalog_is_unmatched():
    class Unconfigured:
        async def search_movie(self, title, year=None):
            raise CatalogNotConfiguredError("TMDB API key not configured")

    state = ScanState()
    assert not await MatchResolver(Unconfigured()).resolve_file(make_file("/Heat.1995.mkv"), state)


# ── Shows ───────────────────────────────────────────────────────────


async def test_concurrent_episodes_share_show_and_season_fetches(gateway):
    gateway.add_show(1399, "Show Name", 2011, seasons={1: {1: "Pilot", 2: "Second", 3: "Third"}})
    state = ScanState()
    resolver = MatchResolver(gateway)
    files = [make_file(f"/TV/Show.Name.S01E0{n}.mkv") for n in (1, 2, 3)]
    files.append(make_file("/TV/Show.Name.S01E01.REPACK.mkv"))

    results = await asyncio.gather(*(resolver.resolve_file(f, state) for f in files))

    assert all(results)
    assert gateway.calls["show_details"] == 1
    assert gateway.calls["season_details"] == 1
    show = state.new_shows[1399]
    season = show.seasons[1]
    assert [e.name for e in season.ordered_episodes()] == ["Pilot", "Second", "Third"]
    assert len(season.episodes[1].video_files) == 2
    assert state.file_index[files[1].id].episode_number == 2


async def test_year_only_searched_for_first_season(gateway):
    gateway.add_show(10, "Show", 2019, seasons={1: {1: "One"}, 2: {1: "Two"}})
    state = ScanState()
    resolver = MatchResolver(gateway)

    await resolver.resolve_file(make_file("/Show.2019.S01E01.mkv"), state)
    await resolver.resolve_file(make_file("/Show.2019.S02E01.mkv"), state)

    assert gateway.show_search_years == [("Show", 2019), ("Show", None)]


async def test_lenient_year_filter_for_shows(gateway):
    gateway.add_show(1, "Show", 2015)
    gateway.add_show(2, "Show", 2010)
    gateway.add_show(3, "Show", 2021)
    state = ScanState()

    assert await MatchResolver(gateway).resolve_file(make_file("/Show.2012.S03E01.mkv"), state)
    assert list(state.new_shows) == [2]


async def test_failed_show_fetch_fails_every_waiter(gateway):
    gateway.add_show(7, "Broken", 2000)
    gateway.failing.add(("show_details", 7))
    state = ScanState()
    resolver = MatchResolver(gateway)
    files = [make_file(f"/Broken.S01E0{n}.mkv") for n in (1, 2, 3)]

    results = await asyncio.gather(*(resolver.resolve_file(f, state) for f in files))

    assert results == [False, False, False]
    assert gateway.calls["show_details"] == 1
    assert len(state.pending_show_fetch) == 0
    assert not state.new_shows


async def test_failed_season_fetch_leaves_file_unmatched(gateway):
    gateway.add_show(8, "Show", 2000, seasons={1: {1: "One"}})
    gateway.failing.add(("season_details", 8, 1))
    state = ScanState()

    assert not await MatchResolver(gateway).resolve_file(make_file("/Show.S01E01.mkv"), state)
    assert not state.file_index


def _existing_show(episode_name):
    episode = Episode(id=0, season_number=1, episode_number=3, name=episode_name)
    season = Season(season_number=1, name="Season 1", episodes={3: episode})
    return Show(id=5, name="Show", seasons={1: season})


async def test_placeholder_episode_is_upgraded(gateway):
    gateway.add_show(5, "Show", 2000, seasons={1: {3: "Real Title"}})
    show = _existing_show("Episode 3")
    state = ScanState(current_shows={5: show})

    assert await MatchResolver(gateway).resolve_file(make_file("/Show.S01E03.mkv"), state)

    episode = show.seasons[1].episodes[3]
    assert episode.name == "Real Title"
    assert episode.id == 5103
    assert state.dirty_show_ids == {5}
    assert gateway.calls["show_details"] == 0


async def test_confirmed_episode_name_is_kept(gateway):
    gateway.add_show(5, "Show", 2000, seasons={1: {3: "Renamed Upstream"}})
    show = _existing_show("Confirmed Title")
    state = ScanState(current_shows={5: show})

    assert await MatchResolver(gateway).resolve_file(make_file("/Show.S01E03.mkv"), state)
    assert show.seasons[1].episodes[3].name == "Confirmed Title"


async def test_unknown_episode_gets_placeholder(gateway):
    gateway.add_show(9, "Show", 2000, seasons={1: {1: "One"}})
    state = ScanState()

    assert await MatchResolver(gateway).resolve_file(make_file("/Show.S01E07.mkv"), state)
    assert state.new_shows[9].seasons[1].episodes[7].name == "Episode 7"
