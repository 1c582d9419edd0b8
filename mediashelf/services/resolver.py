"""Match discovered files to catalog movies and episodes."""

import logging
from typing import Optional, Protocol

from .entities import (
    CatalogCandidate,
    Episode,
    Movie,
    Season,
    SeasonDetails,
    Show,
    VideoFile,
    is_placeholder_name,
    placeholder_episode_name,
)
from .parser import ParsedEpisode, clean_title, parse_episode
from .scan_state import FileLocation, ScanState, season_key

logger = logging.getLogger("scanner")


class CatalogGateway(Protocol):
    async def search_movie(self, title: str, year: Optional[int] = None) -> list[CatalogCandidate]: ...
    async def search_show(self, title: str, year: Optional[int] = None) -> list[CatalogCandidate]: ...
    async def get_movie_details(self, movie_id: int) -> Movie: ...
    async def get_show_details(self, show_id: int) -> Show: ...
    async def get_season_details(self, show_id: int, season_number: int) -> SeasonDetails: ...


def find_best_match(candidates: list[CatalogCandidate], year: Optional[int]) -> Optional[CatalogCandidate]:
    """Pick a show from search results, in catalog order.

    Release years in TV filenames often reflect the encode rather than the
    premiere, so the filter is lenient: the first candidate that premiered
    no later than ``year`` wins, else the first candidate.
    """
    if not candidates:
        return None
    if year is not None:
        for candidate in candidates:
            if candidate.year is not None and candidate.year <= year:
                return candidate
    return candidates[0]


class MatchResolver:
    """Resolves files to entities, sharing catalog fetches between tasks."""

    def __init__(self, gateway: CatalogGateway):
        self.gateway = gateway

    async def resolve_file(self, file: VideoFile, state: ScanState) -> bool:
        """Attach ``file`` to its movie or episode. Returns False if unmatched.

        Catalog and configuration failures are logged and reported as
        unmatched; they never propagate to the walker.
        """
        parsed = parse_episode(file.name)
        try:
            if parsed:
                logger.info(
                    f"Processing episode: {file.file_path} -> {parsed.show_title} "
                    f"S{parsed.season:02d}E{parsed.episode:02d}"
                )
                return await self.resolve_episode(file, parsed, state) is not None
            return await self.resolve_movie(file, state) is not None
        except Exception as e:
            logger.warning(f"Failed to match {file.file_path}: {e}")
            return False

    # ── Movies ───────────────────────────────────────────────────────

    async def resolve_movie(self, file: VideoFile, state: ScanState) -> Optional[Movie]:
        query = clean_title(file.name)
        if not query.title:
            logger.info(f"No usable title in {file.file_path}")
            return None

        logger.info(f"Processing movie: {file.file_path} -> {query.title} ({query.year})")
        results = await self.gateway.search_movie(query.title, query.year)
        if not results:
            logger.info(f"No movie results for '{query.title}'")
            return None

        # Catalog order is trusted for movies: the year already went into the query
        movie = await self._movie_entity(results[0].id, file.source_id, state)
        movie.video_files.append(file)
        state.file_index[file.id] = FileLocation("movie", movie.id, file)
        state.mark_movie_dirty(movie.id)
        return movie

    async def _movie_entity(self, movie_id: int, source_id: str, state: ScanState) -> Movie:
        movie = state.find_movie(movie_id)
        if movie is not None:
            return movie

        async def fetch() -> Movie:
            fetched = await self.gateway.get_movie_details(movie_id)
            fetched.source_id = source_id
            fetched.video_files = []
            return state.new_movies.setdefault(movie_id, fetched)

        return await state.pending_movie_fetch.get_or_start(movie_id, fetch)

    # ── Shows ────────────────────────────────────────────────────────

    async def resolve_episode(self, file: VideoFile, parsed: ParsedEpisode, state: ScanState) -> Optional[Show]:
        # Years in later seasons' filenames are unreliable as a search filter
        search_year = parsed.year if parsed.season == 1 else None
        results = await self.gateway.search_show(parsed.show_title, search_year)
        match = find_best_match(results, parsed.year)
        if match is None:
            logger.info(f"No show results for '{parsed.show_title}'")
            return None

        show = await self._show_entity(match.id, file.source_id, state)
        details = await self._season_details(show.id, parsed.season, state)

        season = show.seasons.get(parsed.season)
        if season is None:
            season = Season(
                season_number=parsed.season,
                name=details.name,
                poster_path=details.poster_path,
            )
            show.seasons[parsed.season] = season

        episode = merge_episode(season, parsed.episode, details)
        episode.video_files.append(file)
        state.file_index[file.id] = FileLocation(
            "episode", show.id, file,
            season_number=parsed.season,
            episode_number=parsed.episode,
        )
        state.mark_show_dirty(show.id)
        return show

    async def _show_entity(self, show_id: int, source_id: str, state: ScanState) -> Show:
        show = state.find_show(show_id)
        if show is not None:
            return show

        async def fetch() -> Show:
            fetched = await self.gateway.get_show_details(show_id)
            fetched.source_id = source_id
            fetched.seasons = {}
            return state.new_shows.setdefault(show_id, fetched)

        return await state.pending_show_fetch.get_or_start(show_id, fetch)

    async def _season_details(self, show_id: int, season_number: int, state: ScanState) -> SeasonDetails:
        key = season_key(show_id, season_number)
        details = state.season_details.get(key)
        if details is not None:
            return details

        async def fetch() -> SeasonDetails:
            fetched = await self.gateway.get_season_details(show_id, season_number)
            return state.season_details.setdefault(key, fetched)

        return await state.pending_season_fetch.get_or_start(key, fetch)


def merge_episode(season: Season, episode_number: int, details: SeasonDetails) -> Episode:
    """Return the season's episode, creating it or upgrading a placeholder record."""
    meta = details.episodes.get(episode_number)
    episode = season.episodes.get(episode_number)

    if episode is None:
        episode = Episode(
            id=meta.id if meta else 0,
            season_number=season.season_number,
            episode_number=episode_number,
            name=meta.name if meta else placeholder_episode_name(episode_number),
            overview=meta.overview if meta else "",
            still_path=meta.still_path if meta else None,
        )
        season.episodes[episode_number] = episode
    elif (
        meta is not None
        and is_placeholder_name(episode.name, episode_number)
        and not is_placeholder_name(meta.name, episode_number)
    ):
        # Only placeholder records are upgraded; confirmed names stay
        episode.id = meta.id
        episode.name = meta.name
        episode.overview = meta.overview
        episode.still_path = meta.still_path

    return episode
