import asyncio
import copy
import posixpath
from collections import Counter

import pytest
from mediashelf.config import DataSource, SourceConfig
from mediashelf.database import init_database, make_engine, make_session_maker
from mediashelf.services.backends import BackendError, ListingEntry
from mediashelf.services.entities import (
    CatalogCandidate,
    EpisodeDetails,
    Movie,
    SeasonDetails,
    Show,
)
from mediashelf.services.storage import LibraryStore


class FakeGateway:
    """In-memory catalog that counts every call."""

    def __init__(self, delay: float = 0.01):
        self.delay = delay
        self.movie_results: dict[str, list[CatalogCandidate]] = {}
        self.show_results: dict[str, list[CatalogCandidate]] = {}
        self.movies: dict[int, Movie] = {}
        self.shows: dict[int, Show] = {}
        self.seasons: dict[tuple[int, int], SeasonDetails] = {}
        self.failing: set = set()
        self.calls = Counter()
        self.show_search_years: list = []

    def add_movie(self, movie_id, title, year=None, imdb_id=None, query=None, **fields):
        self.movie_results.setdefault(query or title, []).append(CatalogCandidate(movie_id, title, year))
        self.movies[movie_id] = Movie(
            id=movie_id,
            title=title,
            release_date=f"{year}-01-01" if year else None,
            imdb_id=imdb_id,
            **fields,
        )

    def add_show(self, show_id, name, year=None, seasons=None, imdb_id=None, query=None, **fields):
        self.show_results.setdefault(query or name, []).append(CatalogCandidate(show_id, name, year))
        self.shows[show_id] = Show(
            id=show_id,
            name=name,
            first_air_date=f"{year}-01-01" if year else None,
            imdb_id=imdb_id,
            **fields,
        )
        for season_number, names in (seasons or {}).items():
            self.seasons[(show_id, season_number)] = SeasonDetails(
                season_number=season_number,
                name=f"Season {season_number}",
                episodes={
                    n: EpisodeDetails(id=show_id * 1000 + season_number * 100 + n, episode_number=n, name=ep_name)
                    for n, ep_name in names.items()
                },
            )

    async def _hit(self, key):
        self.calls[key[0]] += 1
        await asyncio.sleep(self.delay)
        if key in self.failing or key[0] in self.failing:
            raise RuntimeError(f"catalog failure: {key}")

    async def search_movie(self, title, year=None):
        await self._hit(("search_movie", title))
        return list(self.movie_results.get(title, []))

    async def search_show(self, title, year=None):
        self.show_search_years.append((title, year))
        await self._hit(("search_show", title))
        return list(self.show_results.get(title, []))

    async def get_movie_details(self, movie_id):
        await self._hit(("movie_details", movie_id))
        return copy.deepcopy(self.movies[movie_id])

    async def get_show_details(self, show_id):
        await self._hit(("show_details", show_id))
        return copy.deepcopy(self.shows[show_id])

    async def get_season_details(self, show_id, season_number):
        await self._hit(("season_details", show_id, season_number))
        return copy.deepcopy(
            self.seasons.get((show_id, season_number))
            or SeasonDetails(season_number=season_number, name=f"Season {season_number}")
        )


class FakeBackend:
    """Directory tree held in a dict; names ending in '/' are directories."""

    def __init__(self, tree: dict[str, list[str]], failing=()):
        self.tree = tree
        self.failing = set(failing)
        self.listed: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def list(self, path):
        self.listed.append(path)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.001)
            if path in self.failing or path not in self.tree:
                raise BackendError(f"cannot list {path}")
            entries = []
            for name in self.tree[path]:
                is_dir = name.endswith("/")
                name = name.rstrip("/")
                entries.append(ListingEntry(
                    path=posixpath.join(path, name),
                    name=name,
                    type="directory" if is_dir else "file",
                    size=0 if is_dir else 1024,
                ))
            return entries
        finally:
            self.in_flight -= 1


@pytest.fixture
def engine():
    engine = make_engine("sqlite://")
    init_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_maker(engine):
    return make_session_maker(engine)


@pytest.fixture
def store(session_maker):
    return LibraryStore(session_maker)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def webdav_source():
    return DataSource(
        id="nas",
        type="webdav",
        name="NAS",
        config=SourceConfig(url="http://nas.local/dav"),
        paths=["/"],
    )


@pytest.fixture
def local_source(tmp_path):
    return DataSource(
        id="disk",
        type="local",
        name="Disk",
        config=SourceConfig(path=str(tmp_path)),
        paths=["/"],
    )
