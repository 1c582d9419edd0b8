"""Turn a finished scan's state into persisted library changes."""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Union

from .entities import Movie, Show
from .ratings import RatingsStore
from .scan_state import ScanState
from .storage import LibraryStore

logger = logging.getLogger("scanner")


@dataclass
class ReconcileResult:
    pruned_files: int = 0
    new_movies: int = 0
    new_shows: int = 0
    updated_movies: int = 0
    updated_shows: int = 0
    unscanned_files: int = 0
    deleted_movies: int = 0
    deleted_shows: int = 0
    ratings_updated: int = 0
    ratings_error: Optional[str] = None

    def to_dict(self) -> dict:
        return dict(self.__dict__)


class Reconciler:
    """Diffs scan state against the snapshot and writes the result.

    The write-set is computed up front; pruning, saves, the unscanned list
    and garbage collection then run inside one storage transaction. The
    ratings backfill is a separate best-effort phase.
    """

    def __init__(self, store: LibraryStore, ratings: Optional[RatingsStore] = None):
        self.store = store
        self.ratings = ratings

    @staticmethod
    def prune(state: ScanState) -> int:
        """Drop files of persisted entities that were not seen this scan."""
        removed = 0
        for movie in state.current_movies.values():
            kept = [f for f in movie.video_files if f.id in state.found_files]
            if len(kept) != len(movie.video_files):
                removed += len(movie.video_files) - len(kept)
                movie.video_files = kept
                state.mark_movie_dirty(movie.id)

        for show in state.current_shows.values():
            for episode in show.iter_episodes():
                kept = [f for f in episode.video_files if f.id in state.found_files]
                if len(kept) != len(episode.video_files):
                    removed += len(episode.video_files) - len(kept)
                    episode.video_files = kept
                    state.mark_show_dirty(show.id)
        return removed

    async def reconcile(
        self,
        state: ScanState,
        on_progress: Optional[Callable[[str, str], None]] = None,
    ) -> ReconcileResult:
        result = ReconcileResult()
        result.pruned_files = self.prune(state)

        # A show fetched for a file whose season lookup then failed has nothing to save
        new_movies = [m for m in state.new_movies.values() if _has_files(m)]
        new_shows = [s for s in state.new_shows.values() if _has_files(s)]
        dirty_movies = [state.current_movies[i] for i in sorted(state.dirty_movie_ids) if i in state.current_movies]
        dirty_shows = [state.current_shows[i] for i in sorted(state.dirty_show_ids) if i in state.current_shows]

        logger.info(
            f"Reconciling: {len(new_movies)} new movies, {len(new_shows)} new shows, "
            f"{len(dirty_movies)} changed movies, {len(dirty_shows)} changed shows, "
            f"{result.pruned_files} missing files, {len(state.unscanned)} unscanned"
        )

        with self.store.transaction() as tx:
            for movie in new_movies:
                tx.save_movie(movie)
            for show in new_shows:
                tx.save_show(show)
            for movie in dirty_movies:
                tx.save_movie(movie)
            for show in dirty_shows:
                tx.save_show(show)
            tx.set_unscanned_files(state.unscanned)
            result.deleted_movies = tx.delete_empty_movies()
            result.deleted_shows = tx.delete_empty_shows()

        result.new_movies = len(new_movies)
        result.new_shows = len(new_shows)
        result.updated_movies = len(dirty_movies)
        result.updated_shows = len(dirty_shows)
        result.unscanned_files = len(state.unscanned)

        if self.ratings is not None:
            try:
                result.ratings_updated = await self.backfill_ratings(state, on_progress)
            except Exception as e:
                logger.error(f"Ratings refresh failed: {e}")
                result.ratings_error = str(e)

        logger.info(f"Reconcile complete: {result.to_dict()}")
        return result

    @staticmethod
    def _rating_targets(state: ScanState) -> list[Union[Movie, Show]]:
        targets: list[Union[Movie, Show]] = [*state.new_movies.values(), *state.new_shows.values()]
        if state.force_refresh:
            targets.extend(state.current_movies.values())
            targets.extend(state.current_shows.values())
        # Entities left without files were garbage collected
        return [t for t in targets if t.imdb_id and _has_files(t)]

    async def backfill_ratings(
        self,
        state: ScanState,
        on_progress: Optional[Callable[[str, str], None]] = None,
    ) -> int:
        """Refresh ratings for new entities and re-save those whose rating changed."""
        targets = self._rating_targets(state)
        if not targets:
            return 0

        await self.ratings.bulk_refresh({t.imdb_id for t in targets}, on_progress)
        ratings = self.ratings.lookup_many(t.imdb_id for t in targets)

        changed = []
        for target in targets:
            rating = ratings.get(target.imdb_id)
            if rating is None:
                continue
            if (target.imdb_rating, target.imdb_votes) != (rating.rating, rating.votes):
                target.imdb_rating = rating.rating
                target.imdb_votes = rating.votes
                changed.append(target)

        if changed:
            with self.store.transaction() as tx:
                for target in changed:
                    if isinstance(target, Movie):
                        tx.set_movie_rating(target.id, target.imdb_rating, target.imdb_votes)
                    else:
                        tx.set_show_rating(target.id, target.imdb_rating, target.imdb_votes)
        return len(changed)


def _has_files(entity: Union[Movie, Show]) -> bool:
    if isinstance(entity, Movie):
        return bool(entity.video_files)
    return any(episode.video_files for episode in entity.iter_episodes())
