"""Full-refresh pass: re-fetch catalog metadata for the persisted library."""

import asyncio
import logging

from .entities import Movie, SeasonDetails, Show, is_placeholder_name
from .resolver import CatalogGateway
from .scan_state import ScanState, season_key

logger = logging.getLogger("scanner")

MOVIE_FIELDS = (
    "overview", "poster_path", "backdrop_path", "logo_path",
    "vote_average", "popularity", "status", "tagline",
    "genres", "cast", "director",
)
SHOW_FIELDS = (
    "overview", "poster_path", "backdrop_path", "logo_path",
    "vote_average", "popularity", "status",
    "genres", "cast", "created_by",
)


class MetadataRefresher:
    """Overwrites volatile display fields of every entity already in the library.

    Identity and video files are never touched. For each entity every fetch
    completes before any field is written, so a failure leaves it exactly as
    it was.
    """

    def __init__(self, gateway: CatalogGateway):
        self.gateway = gateway

    async def refresh(self, state: ScanState) -> tuple[int, int]:
        """Refresh all current movies and shows. Returns (refreshed, failed)."""
        results = await asyncio.gather(
            *(self._refresh_movie(movie, state) for movie in state.current_movies.values()),
            *(self._refresh_show(show, state) for show in state.current_shows.values()),
        )
        refreshed = sum(1 for ok in results if ok)
        return refreshed, len(results) - refreshed

    async def _refresh_movie(self, movie: Movie, state: ScanState) -> bool:
        try:
            fresh = await self.gateway.get_movie_details(movie.id)
        except Exception as e:
            logger.warning(f"Failed to refresh movie {movie.id} ({movie.title}): {e}")
            return False

        for name in MOVIE_FIELDS:
            setattr(movie, name, getattr(fresh, name))
        if fresh.imdb_id:
            movie.imdb_id = fresh.imdb_id
        state.mark_movie_dirty(movie.id)
        return True

    async def _refresh_show(self, show: Show, state: ScanState) -> bool:
        try:
            fresh = await self.gateway.get_show_details(show.id)
            season_numbers = sorted(show.seasons)
            details = await asyncio.gather(
                *(self.gateway.get_season_details(show.id, n) for n in season_numbers)
            )
        except Exception as e:
            logger.warning(f"Failed to refresh show {show.id} ({show.name}): {e}")
            return False

        for name in SHOW_FIELDS:
            setattr(show, name, getattr(fresh, name))
        if fresh.imdb_id:
            show.imdb_id = fresh.imdb_id
        if fresh.tvdb_id:
            show.tvdb_id = fresh.tvdb_id

        for season_details in details:
            state.season_details[season_key(show.id, season_details.season_number)] = season_details
            self._apply_season(show, season_details)

        state.mark_show_dirty(show.id)
        return True

    @staticmethod
    def _apply_season(show: Show, details: SeasonDetails) -> None:
        season = show.seasons.get(details.season_number)
        if season is None:
            return
        season.name = details.name
        if details.poster_path:
            season.poster_path = details.poster_path
        for number, episode in season.episodes.items():
            meta = details.episodes.get(number)
            if meta is None:
                continue
            episode.id = meta.id
            if not is_placeholder_name(meta.name, number):
                episode.name = meta.name
            episode.overview = meta.overview
            episode.still_path = meta.still_path
