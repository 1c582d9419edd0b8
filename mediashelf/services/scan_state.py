"""Transient state shared by every task of one scan."""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Hashable, Literal, Optional, TypeVar

from .entities import LibrarySnapshot, Movie, SeasonDetails, Show, VideoFile

T = TypeVar("T")


class PendingFetches(Generic[T]):
    """In-flight fetches keyed by catalog id, shared by concurrent callers.

    The first caller for a key starts the fetch and registers it before
    yielding to the event loop; later callers await the same task. Entries
    are dropped as soon as the task settles, successfully or not.
    """

    def __init__(self):
        self._tasks: dict[Hashable, asyncio.Task] = {}
        self.started = 0

    def __contains__(self, key: Hashable) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def _forget(self, key: Hashable, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]

    async def get_or_start(self, key: Hashable, start: Callable[[], Awaitable[T]]) -> T:
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(start())
            self._tasks[key] = task
            self.started += 1
            task.add_done_callback(lambda t, key=key: self._forget(key, t))
        return await task


@dataclass
class FileLocation:
    """The entity a known file currently belongs to."""

    kind: Literal["movie", "episode"]
    entity_id: int
    file: VideoFile
    season_number: Optional[int] = None
    episode_number: Optional[int] = None


def season_key(show_id: int, season_number: int) -> str:
    return f"{show_id}:{season_number}"


@dataclass
class ScanState:
    """Everything one scan learns; consumed by the reconciler and discarded.

    Files are keyed by ``VideoFile.id``, which encodes both the source and the
    path. Movie and show ids live in separate namespaces, so each has its own
    dirty set.
    """

    current_movies: dict[int, Movie] = field(default_factory=dict)
    current_shows: dict[int, Show] = field(default_factory=dict)
    force_refresh: bool = False

    new_movies: dict[int, Movie] = field(default_factory=dict)
    new_shows: dict[int, Show] = field(default_factory=dict)

    pending_movie_fetch: PendingFetches = field(default_factory=PendingFetches)
    pending_show_fetch: PendingFetches = field(default_factory=PendingFetches)
    pending_season_fetch: PendingFetches = field(default_factory=PendingFetches)
    season_details: dict[str, SeasonDetails] = field(default_factory=dict)

    found_files: set[str] = field(default_factory=set)
    file_index: dict[str, FileLocation] = field(default_factory=dict)
    dirty_movie_ids: set[int] = field(default_factory=set)
    dirty_show_ids: set[int] = field(default_factory=set)
    unscanned: list[VideoFile] = field(default_factory=list)

    @classmethod
    def from_snapshot(cls, snapshot: LibrarySnapshot, force_refresh: bool = False) -> "ScanState":
        state = cls(
            current_movies=snapshot.movies,
            current_shows=snapshot.shows,
            force_refresh=force_refresh,
        )
        for movie in snapshot.movies.values():
            for video_file in movie.video_files:
                state.file_index[video_file.id] = FileLocation("movie", movie.id, video_file)
        for show in snapshot.shows.values():
            for episode in show.iter_episodes():
                for video_file in episode.video_files:
                    state.file_index[video_file.id] = FileLocation(
                        "episode", show.id, video_file,
                        season_number=episode.season_number,
                        episode_number=episode.episode_number,
                    )
        return state

    def find_movie(self, movie_id: int) -> Optional[Movie]:
        return self.current_movies.get(movie_id) or self.new_movies.get(movie_id)

    def find_show(self, show_id: int) -> Optional[Show]:
        return self.current_shows.get(show_id) or self.new_shows.get(show_id)

    def mark_movie_dirty(self, movie_id: int) -> None:
        # New entities are saved wholesale; only persisted ones need flagging
        if movie_id not in self.new_movies:
            self.dirty_movie_ids.add(movie_id)

    def mark_show_dirty(self, show_id: int) -> None:
        if show_id not in self.new_shows:
            self.dirty_show_ids.add(show_id)

    def mark_owner_dirty(self, location: FileLocation) -> None:
        if location.kind == "movie":
            self.mark_movie_dirty(location.entity_id)
        else:
            self.mark_show_dirty(location.entity_id)
