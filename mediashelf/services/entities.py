"""Library entities passed between the scan engine and its collaborators."""

import posixpath
from dataclasses import dataclass, field
from typing import Optional


PLACEHOLDER_EPISODE_NAME = "Episode {n}"


def placeholder_episode_name(episode_number: int) -> str:
    return PLACEHOLDER_EPISODE_NAME.format(n=episode_number)


def is_placeholder_name(name: Optional[str], episode_number: int) -> bool:
    return not name or name == placeholder_episode_name(episode_number)


@dataclass
class VideoFile:
    """A file on a source, owned by exactly one movie or episode."""

    id: str
    name: str
    file_path: str
    resolved_url: str
    source_id: str
    manually_matched: bool = False

    @classmethod
    def create(cls, source_id: str, file_path: str, resolved_url: str) -> "VideoFile":
        return cls(
            id=make_file_id(source_id, file_path),
            name=posixpath.basename(file_path.replace("\\", "/")),
            file_path=file_path,
            resolved_url=resolved_url,
            source_id=source_id,
        )


def make_file_id(source_id: str, file_path: str) -> str:
    """Stable identity for a file so re-scans recognise it."""
    return f"{source_id}:{file_path}"


@dataclass
class Person:
    """A credited cast or crew member."""

    name: str
    profile_path: Optional[str] = None
    character: Optional[str] = None


@dataclass
class Movie:
    id: int
    title: str
    overview: str = ""
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    logo_path: Optional[str] = None
    release_date: Optional[str] = None
    runtime: Optional[int] = None
    vote_average: Optional[float] = None
    popularity: Optional[float] = None
    status: Optional[str] = None
    tagline: Optional[str] = None
    genres: list[str] = field(default_factory=list)
    cast: list[Person] = field(default_factory=list)
    director: Optional[Person] = None
    imdb_id: Optional[str] = None
    imdb_rating: Optional[float] = None
    imdb_votes: Optional[int] = None
    source_id: Optional[str] = None
    video_files: list[VideoFile] = field(default_factory=list)


@dataclass
class Episode:
    id: int
    season_number: int
    episode_number: int
    name: str
    overview: str = ""
    still_path: Optional[str] = None
    video_files: list[VideoFile] = field(default_factory=list)


@dataclass
class Season:
    season_number: int
    name: str
    poster_path: Optional[str] = None
    episodes: dict[int, Episode] = field(default_factory=dict)

    def ordered_episodes(self) -> list[Episode]:
        return [self.episodes[n] for n in sorted(self.episodes)]


@dataclass
class Show:
    id: int
    name: str
    overview: str = ""
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    logo_path: Optional[str] = None
    first_air_date: Optional[str] = None
    vote_average: Optional[float] = None
    popularity: Optional[float] = None
    status: Optional[str] = None
    genres: list[str] = field(default_factory=list)
    cast: list[Person] = field(default_factory=list)
    created_by: list[Person] = field(default_factory=list)
    imdb_id: Optional[str] = None
    tvdb_id: Optional[int] = None
    imdb_rating: Optional[float] = None
    imdb_votes: Optional[int] = None
    source_id: Optional[str] = None
    seasons: dict[int, Season] = field(default_factory=dict)

    def ordered_seasons(self) -> list[Season]:
        return [self.seasons[n] for n in sorted(self.seasons)]

    def iter_episodes(self):
        for season in self.ordered_seasons():
            yield from season.ordered_episodes()


# ── Catalog boundary types ──────────────────────────────────────────


@dataclass
class CatalogCandidate:
    """One search result, in the order the catalog returned it."""

    id: int
    title: str
    year: Optional[int] = None


@dataclass
class EpisodeDetails:
    id: int
    episode_number: int
    name: str
    overview: str = ""
    still_path: Optional[str] = None


@dataclass
class SeasonDetails:
    season_number: int
    name: str
    poster_path: Optional[str] = None
    episodes: dict[int, EpisodeDetails] = field(default_factory=dict)


@dataclass
class Rating:
    rating: float
    votes: int


@dataclass
class LibrarySnapshot:
    movies: dict[int, Movie] = field(default_factory=dict)
    shows: dict[int, Show] = field(default_factory=dict)
