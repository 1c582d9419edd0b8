"""Attach an unscanned file to a catalog entity chosen by the user."""

import logging
from typing import Literal, Optional, Union

from .entities import Movie, Season, SeasonDetails, Show
from .ratings import RatingsStore
from .resolver import CatalogGateway, merge_episode
from .storage import LibraryStore

logger = logging.getLogger(__name__)


class ManualMatchError(ValueError):
    """The file, the target entity or the episode position is invalid."""

    def __init__(self, message: str, not_found: bool = False):
        super().__init__(message)
        self.not_found = not_found


def _apply_rating(entity: Union[Movie, Show], ratings: Optional[RatingsStore]) -> None:
    if ratings is None:
        return
    rating = ratings.lookup(entity.imdb_id)
    if rating is not None:
        entity.imdb_rating = rating.rating
        entity.imdb_votes = rating.votes


async def manual_match_file(
    store: LibraryStore,
    gateway: CatalogGateway,
    file_id: str,
    media_type: Literal["movie", "tv"],
    tmdb_id: int,
    season_number: Optional[int] = None,
    episode_number: Optional[int] = None,
    ratings: Optional[RatingsStore] = None,
) -> Union[Movie, Show]:
    """Match an unscanned file and remove it from the unscanned list.

    The file is flagged ``manually_matched`` so later scans only refresh its
    URL. Entities not yet in the library are fetched from the catalog.
    """
    video_file = store.get_unscanned_file(file_id)
    if video_file is None:
        raise ManualMatchError(f"Unscanned file not found: {file_id}", not_found=True)
    video_file.manually_matched = True

    if media_type == "movie":
        movie = store.get_movie(tmdb_id)
        if movie is None:
            try:
                movie = await gateway.get_movie_details(tmdb_id)
            except Exception as e:
                raise ManualMatchError(f"Movie {tmdb_id} not found: {e}", not_found=True) from e
            movie.source_id = video_file.source_id
            movie.video_files = []
        _apply_rating(movie, ratings)
        movie.video_files.append(video_file)

        with store.transaction() as tx:
            tx.save_movie(movie)
            tx.delete_unscanned_file(video_file.id)
        logger.info(f"Manually matched {video_file.file_path} to movie {movie.title}")
        return movie

    if media_type != "tv":
        raise ManualMatchError(f"Unknown media type: {media_type}")
    if season_number is None or episode_number is None:
        raise ManualMatchError("Season and episode numbers are required for TV matches")

    show = store.get_show(tmdb_id)
    if show is None:
        try:
            show = await gateway.get_show_details(tmdb_id)
        except Exception as e:
            raise ManualMatchError(f"Show {tmdb_id} not found: {e}", not_found=True) from e
        show.source_id = video_file.source_id
        show.seasons = {}
    _apply_rating(show, ratings)

    try:
        details = await gateway.get_season_details(show.id, season_number)
    except Exception as e:
        logger.warning(f"No details for {show.name} season {season_number}: {e}")
        details = SeasonDetails(season_number=season_number, name=f"Season {season_number}")

    season = show.seasons.get(season_number)
    if season is None:
        season = Season(season_number=season_number, name=details.name, poster_path=details.poster_path)
        show.seasons[season_number] = season
    merge_episode(season, episode_number, details).video_files.append(video_file)

    with store.transaction() as tx:
        tx.save_show(show)
        tx.delete_unscanned_file(video_file.id)
    logger.info(
        f"Manually matched {video_file.file_path} to {show.name} "
        f"S{season_number:02d}E{episode_number:02d}"
    )
    return show
