"""Top-level scan sequencing with a single-scan guard."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..config import DataSource
from .backends import Backend, get_backend
from .ratings import RatingsStore
from .reconciler import Reconciler, ReconcileResult
from .refresh import MetadataRefresher
from .resolver import CatalogGateway, MatchResolver
from .scan_state import ScanState
from .scanner import ScanWalker
from .storage import LibraryStore

logger = logging.getLogger("scanner")


class ScanStatus(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"


@dataclass
class ScanProgress:
    """One progress event. Terminal events carry ``done`` or ``error``."""

    stage: str
    detail: str = ""
    done: bool = False
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {"stage": self.stage, "detail": self.detail, "done": self.done, "error": self.error}


ProgressCallback = Callable[[ScanProgress], None]


class ScanOrchestrator:
    """Runs at most one scan at a time across all configured sources."""

    def __init__(
        self,
        store: LibraryStore,
        gateway: CatalogGateway,
        ratings: Optional[RatingsStore] = None,
        sources_provider: Optional[Callable[[], list[DataSource]]] = None,
        backend_factory: Callable[[DataSource], Backend] = get_backend,
        max_concurrent_listings: Optional[int] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.ratings = ratings
        self.sources_provider = sources_provider or store.get_sources
        self.backend_factory = backend_factory
        self.max_concurrent_listings = max_concurrent_listings
        self.status = ScanStatus.IDLE
        self.last_result: Optional[ReconcileResult] = None

    def is_scanning(self) -> bool:
        return self.status is ScanStatus.SCANNING

    async def start_scan(
        self,
        force_refresh: bool = False,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Optional[ReconcileResult]:
        """Run a full scan. Returns None without doing anything if one is running."""
        # Check-and-set happens before the first await
        if self.status is ScanStatus.SCANNING:
            logger.info("Scan already in progress, ignoring request")
            return None
        self.status = ScanStatus.SCANNING

        def emit(progress: ScanProgress) -> None:
            if on_progress:
                on_progress(progress)

        try:
            result = await self._run(force_refresh, emit)
        except Exception as e:
            logger.error(f"Scan failed: {e}")
            emit(ScanProgress("error", str(e), error=str(e)))
            raise
        finally:
            self.status = ScanStatus.IDLE

        self.last_result = result
        emit(ScanProgress(
            "complete",
            f"{result.new_movies} new movies, {result.new_shows} new shows, "
            f"{result.unscanned_files} unscanned files",
            done=True,
        ))
        return result

    async def _run(self, force_refresh: bool, emit: Callable[[ScanProgress], None]) -> ReconcileResult:
        logger.info(f"Starting {'full' if force_refresh else 'incremental'} scan")
        emit(ScanProgress("starting", "Preparing scan"))

        self.store.clear_unscanned_files()
        state = ScanState.from_snapshot(self.store.snapshot(), force_refresh=force_refresh)

        if force_refresh:
            emit(ScanProgress("refreshing", "Refreshing library metadata"))
            refreshed, failed = await MetadataRefresher(self.gateway).refresh(state)
            logger.info(f"Metadata refresh: {refreshed} updated, {failed} failed")

        walker = ScanWalker(
            MatchResolver(self.gateway),
            backend_factory=self.backend_factory,
            max_concurrent_listings=self.max_concurrent_listings,
        )
        try:
            for source in self.sources_provider():
                for path in source.paths:
                    emit(ScanProgress("scanning", f"{source.name}: {path}"))
                    try:
                        await walker.walk(source, path, state)
                    except Exception as e:
                        logger.error(f"Failed to scan {path} in source {source.name}: {e}")
        finally:
            await walker.close()

        emit(ScanProgress("saving", f"{len(state.found_files)} files found"))
        reconciler = Reconciler(self.store, self.ratings)
        return await reconciler.reconcile(
            state,
            on_progress=lambda stage, detail: emit(ScanProgress(f"ratings:{stage}", detail)),
        )
