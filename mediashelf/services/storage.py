"""Library persistence: maps ORM rows to scan entities and back."""

import json
import logging
from contextlib import contextmanager
from dataclasses import asdict
from typing import Iterator, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, selectinload, sessionmaker

from .. import models
from ..config import DataSource, SourceConfig
from ..database import get_session_maker
from .entities import Episode, LibrarySnapshot, Movie, Person, Season, Show, VideoFile

logger = logging.getLogger(__name__)


# ── Row -> entity ────────────────────────────────────────────────────


def _file_entity(row: models.VideoFile) -> VideoFile:
    return VideoFile(
        id=row.id,
        name=row.name,
        file_path=row.file_path,
        resolved_url=row.resolved_url,
        source_id=row.source_id,
        manually_matched=bool(row.manually_matched),
    )


def _unscanned_entity(row: models.UnscannedFile) -> VideoFile:
    return VideoFile(
        id=row.id,
        name=row.name,
        file_path=row.file_path,
        resolved_url=row.resolved_url,
        source_id=row.source_id,
    )


def _genres(value: Optional[str]) -> list[str]:
    return json.loads(value) if value else []


def _people(value: Optional[str]) -> list[Person]:
    return [Person(**p) for p in json.loads(value)] if value else []


def _person(value: Optional[str]) -> Optional[Person]:
    return Person(**json.loads(value)) if value else None


def _people_json(people: list[Person]) -> str:
    return json.dumps([asdict(p) for p in people])


def _movie_entity(row: models.Movie) -> Movie:
    return Movie(
        id=row.id,
        title=row.title,
        overview=row.overview or "",
        poster_path=row.poster_path,
        backdrop_path=row.backdrop_path,
        logo_path=row.logo_path,
        release_date=row.release_date,
        runtime=row.runtime,
        vote_average=row.vote_average,
        popularity=row.popularity,
        status=row.status,
        tagline=row.tagline,
        genres=_genres(row.genres),
        cast=_people(row.cast),
        director=_person(row.director),
        imdb_id=row.imdb_id,
        imdb_rating=row.imdb_rating,
        imdb_votes=row.imdb_votes,
        source_id=row.source_id,
        video_files=[_file_entity(f) for f in row.video_files],
    )


def _show_entity(row: models.Show) -> Show:
    show = Show(
        id=row.id,
        name=row.name,
        overview=row.overview or "",
        poster_path=row.poster_path,
        backdrop_path=row.backdrop_path,
        logo_path=row.logo_path,
        first_air_date=row.first_air_date,
        vote_average=row.vote_average,
        popularity=row.popularity,
        status=row.status,
        genres=_genres(row.genres),
        cast=_people(row.cast),
        created_by=_people(row.created_by),
        imdb_id=row.imdb_id,
        tvdb_id=row.tvdb_id,
        imdb_rating=row.imdb_rating,
        imdb_votes=row.imdb_votes,
        source_id=row.source_id,
    )
    for season_row in row.seasons:
        season = Season(
            season_number=season_row.season_number,
            name=season_row.name or f"Season {season_row.season_number}",
            poster_path=season_row.poster_path,
        )
        for ep in season_row.episodes:
            season.episodes[ep.episode_number] = Episode(
                id=ep.tmdb_id or 0,
                season_number=ep.season_number,
                episode_number=ep.episode_number,
                name=ep.name,
                overview=ep.overview or "",
                still_path=ep.still_path,
                video_files=[_file_entity(f) for f in ep.video_files],
            )
        show.seasons[season.season_number] = season
    return show


def _source_entity(row: models.ScanSource) -> DataSource:
    return DataSource(
        id=row.id,
        type=row.source_type,
        name=row.name,
        config=SourceConfig(
            url=row.url,
            path=row.path,
            share=row.share,
            username=row.username,
            password=row.password,
            domain=row.domain,
        ),
        paths=json.loads(row.paths) if row.paths else [],
    )


def _movie_query():
    return select(models.Movie).options(selectinload(models.Movie.video_files))


def _show_query():
    return select(models.Show).options(
        selectinload(models.Show.seasons)
        .selectinload(models.Season.episodes)
        .selectinload(models.Episode.video_files)
    )


# ── Writes ───────────────────────────────────────────────────────────


class LibraryTransaction:
    """Write operations sharing one session; committed or rolled back as a unit."""

    def __init__(self, session: Session):
        self.session = session

    def _file_row(self, file: VideoFile, existing: dict) -> models.VideoFile:
        row = existing.get(file.id) or self.session.get(models.VideoFile, file.id)
        if row is None:
            row = models.VideoFile(id=file.id)
        row.name = file.name
        row.file_path = file.file_path
        row.resolved_url = file.resolved_url
        row.source_id = file.source_id
        row.manually_matched = file.manually_matched
        return row

    def _sync_files(self, owner, files: list[VideoFile]) -> None:
        """Make ``owner.video_files`` match ``files`` exactly."""
        existing = {f.id: f for f in owner.video_files}
        keep = {f.id for f in files}
        for file_id, row in existing.items():
            if file_id not in keep:
                owner.video_files.remove(row)

        for file in files:
            row = self._file_row(file, existing)
            if file.id not in existing:
                # A file can only have one owner
                row.movie = None
                row.episode = None
                owner.video_files.append(row)

    def save_movie(self, movie: Movie) -> None:
        row = self.session.get(models.Movie, movie.id)
        if row is None:
            row = models.Movie(id=movie.id)
            self.session.add(row)

        row.title = movie.title
        row.overview = movie.overview
        row.tagline = movie.tagline
        row.release_date = movie.release_date
        row.runtime = movie.runtime
        row.poster_path = movie.poster_path
        row.backdrop_path = movie.backdrop_path
        row.logo_path = movie.logo_path
        row.genres = json.dumps(movie.genres)
        row.cast = _people_json(movie.cast)
        row.director = json.dumps(asdict(movie.director)) if movie.director else None
        row.vote_average = movie.vote_average
        row.popularity = movie.popularity
        row.status = movie.status
        row.imdb_id = movie.imdb_id
        row.imdb_rating = movie.imdb_rating
        row.imdb_votes = movie.imdb_votes
        row.source_id = movie.source_id
        self._sync_files(row, movie.video_files)

    def save_show(self, show: Show) -> None:
        row = self.session.get(models.Show, show.id)
        if row is None:
            row = models.Show(id=show.id)
            self.session.add(row)

        row.name = show.name
        row.overview = show.overview
        row.poster_path = show.poster_path
        row.backdrop_path = show.backdrop_path
        row.logo_path = show.logo_path
        row.first_air_date = show.first_air_date
        row.genres = json.dumps(show.genres)
        row.cast = _people_json(show.cast)
        row.created_by = _people_json(show.created_by)
        row.vote_average = show.vote_average
        row.popularity = show.popularity
        row.status = show.status
        row.imdb_id = show.imdb_id
        row.tvdb_id = show.tvdb_id
        row.imdb_rating = show.imdb_rating
        row.imdb_votes = show.imdb_votes
        row.source_id = show.source_id

        seasons = {s.season_number: s for s in row.seasons}
        for season in show.ordered_seasons():
            season_row = seasons.get(season.season_number)
            if season_row is None:
                season_row = models.Season(season_number=season.season_number)
                row.seasons.append(season_row)
            season_row.name = season.name
            season_row.poster_path = season.poster_path

            episodes = {e.episode_number: e for e in season_row.episodes}
            for episode in season.ordered_episodes():
                ep_row = episodes.get(episode.episode_number)
                if ep_row is None:
                    ep_row = models.Episode(
                        season_number=season.season_number,
                        episode_number=episode.episode_number,
                    )
                    season_row.episodes.append(ep_row)
                ep_row.tmdb_id = episode.id or None
                ep_row.name = episode.name
                ep_row.overview = episode.overview
                ep_row.still_path = episode.still_path
                self._sync_files(ep_row, episode.video_files)

    def set_movie_rating(self, movie_id: int, rating: Optional[float], votes: Optional[int]) -> bool:
        row = self.session.get(models.Movie, movie_id)
        if row is None:
            return False
        row.imdb_rating = rating
        row.imdb_votes = votes
        return True

    def set_show_rating(self, show_id: int, rating: Optional[float], votes: Optional[int]) -> bool:
        row = self.session.get(models.Show, show_id)
        if row is None:
            return False
        row.imdb_rating = rating
        row.imdb_votes = votes
        return True

    def set_unscanned_files(self, files: list[VideoFile]) -> None:
        """Replace the unscanned list wholesale."""
        self.clear_unscanned_files()
        seen = set()
        for file in files:
            if file.id in seen:
                continue
            seen.add(file.id)
            self.session.add(models.UnscannedFile(
                id=file.id,
                name=file.name,
                file_path=file.file_path,
                resolved_url=file.resolved_url,
                source_id=file.source_id,
            ))

    def clear_unscanned_files(self) -> None:
        self.session.execute(delete(models.UnscannedFile))

    def delete_unscanned_file(self, file_id: str) -> bool:
        row = self.session.get(models.UnscannedFile, file_id)
        if row is None:
            return False
        self.session.delete(row)
        return True

    def _delete_all(self, stmt) -> int:
        rows = self.session.scalars(stmt).all()
        for row in rows:
            self.session.delete(row)
        self.session.flush()
        return len(rows)

    def delete_empty_movies(self) -> int:
        self.session.flush()
        return self._delete_all(
            select(models.Movie).where(~models.Movie.video_files.any())
        )

    def delete_empty_shows(self) -> int:
        """Drop empty episodes, then empty seasons, then empty shows."""
        self.session.flush()
        episodes = self._delete_all(
            select(models.Episode).where(~models.Episode.video_files.any())
        )
        seasons = self._delete_all(
            select(models.Season).where(~models.Season.episodes.any())
        )
        shows = self._delete_all(
            select(models.Show).where(~models.Show.seasons.any())
        )
        if episodes or seasons:
            logger.info(f"Removed {episodes} empty episodes and {seasons} empty seasons")
        return shows


class LibraryStore:
    """Storage collaborator for the scan engine."""

    def __init__(self, session_maker: Optional[sessionmaker] = None):
        self.session_maker = session_maker or get_session_maker()

    @contextmanager
    def transaction(self) -> Iterator[LibraryTransaction]:
        """Atomic write scope: commits on exit, rolls back on any exception."""
        session = self.session_maker()
        try:
            yield LibraryTransaction(session)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def snapshot(self) -> LibrarySnapshot:
        """Load the whole persisted library as detached entities."""
        with self.session_maker() as session:
            movies = session.scalars(_movie_query()).all()
            shows = session.scalars(_show_query()).all()
            return LibrarySnapshot(
                movies={row.id: _movie_entity(row) for row in movies},
                shows={row.id: _show_entity(row) for row in shows},
            )

    def get_movie(self, movie_id: int) -> Optional[Movie]:
        with self.session_maker() as session:
            row = session.scalars(_movie_query().where(models.Movie.id == movie_id)).first()
            return _movie_entity(row) if row else None

    def get_show(self, show_id: int) -> Optional[Show]:
        with self.session_maker() as session:
            row = session.scalars(_show_query().where(models.Show.id == show_id)).first()
            return _show_entity(row) if row else None

    def get_unscanned_files(self) -> list[VideoFile]:
        with self.session_maker() as session:
            rows = session.scalars(
                select(models.UnscannedFile).order_by(models.UnscannedFile.file_path)
            ).all()
            return [_unscanned_entity(row) for row in rows]

    def get_unscanned_file(self, file_id: str) -> Optional[VideoFile]:
        with self.session_maker() as session:
            row = session.get(models.UnscannedFile, file_id)
            return _unscanned_entity(row) if row else None

    def clear_unscanned_files(self) -> None:
        with self.transaction() as tx:
            tx.clear_unscanned_files()

    def get_sources(self) -> list[DataSource]:
        """Enabled sources, in creation order."""
        with self.session_maker() as session:
            rows = session.scalars(
                select(models.ScanSource)
                .where(models.ScanSource.enabled.is_(True))
                .order_by(models.ScanSource.created_at)
            ).all()
            return [_source_entity(row) for row in rows]

    def count_movies(self) -> int:
        with self.session_maker() as session:
            return session.scalar(select(func.count()).select_from(models.Movie)) or 0

    def count_shows(self) -> int:
        with self.session_maker() as session:
            return session.scalar(select(func.count()).select_from(models.Show)) or 0
