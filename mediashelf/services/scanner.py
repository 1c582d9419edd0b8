"""Recursive, concurrent directory walker feeding the match resolver."""

import asyncio
import logging
import os
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import unquote

from ..config import DataSource, settings
from .backends import Backend, ListingEntry, get_backend, resolve_url
from .entities import VideoFile
from .parser import is_video_file
from .resolver import MatchResolver
from .scan_state import FileLocation, ScanState

# ── Scanner logger (detailed, writes to file + console) ──────────
_log_dir = Path(__file__).resolve().parent.parent.parent / "data"
os.makedirs(_log_dir, exist_ok=True)

logger = logging.getLogger("scanner")
logger.setLevel(logging.INFO)
logger.propagate = False

if not logger.handlers:
    _fh = logging.FileHandler(str(_log_dir / "scanner.log"))
    _fh.setLevel(logging.INFO)
    _fh.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)-5s %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
    ))
    logger.addHandler(_fh)
    _sh = logging.StreamHandler()
    _sh.setLevel(logging.WARNING)
    _sh.setFormatter(logging.Formatter("%(asctime)s - scanner - %(levelname)s - %(message)s"))
    logger.addHandler(_sh)

# Backends whose servers may double-encode special characters in paths
DECODE_RETRY_TYPES = ("webdav", "smb")


class ScanWalker:
    """Walks a source's directory tree and dispatches video files.

    Every entry of one listing is processed concurrently and the walker waits
    for all of them before returning, so at most one directory's children
    are in flight per level.
    """

    def __init__(
        self,
        resolver: MatchResolver,
        backend_factory: Callable[[DataSource], Backend] = get_backend,
        max_concurrent_listings: Optional[int] = None,
    ):
        self.resolver = resolver
        self.backend_factory = backend_factory
        self._listing_slots = asyncio.Semaphore(max_concurrent_listings or settings.max_concurrent_listings)
        self._backends: dict[str, Backend] = {}

    def backend_for(self, source: DataSource) -> Backend:
        backend = self._backends.get(source.id)
        if backend is None:
            backend = self.backend_factory(source)
            self._backends[source.id] = backend
        return backend

    async def close(self):
        """Release backend connections opened during the walk."""
        for backend in self._backends.values():
            close = getattr(backend, "close", None)
            if close is not None:
                await close()
        self._backends.clear()

    async def walk(self, source: DataSource, path: str, state: ScanState) -> None:
        """List ``path`` and process every child; a failed listing raises."""
        backend = self.backend_for(source)
        logger.info(f"Scanning directory: {path} in source {source.name}")

        async with self._listing_slots:
            entries = await backend.list(path)

        await asyncio.gather(*(self._visit(source, entry, state) for entry in entries))

    async def _visit(self, source: DataSource, entry: ListingEntry, state: ScanState) -> None:
        if entry.is_dir:
            await self._walk_subdirectory(source, entry, state)
        elif is_video_file(entry.name):
            await self._visit_file(source, entry, state)

    async def _walk_subdirectory(self, source: DataSource, entry: ListingEntry, state: ScanState) -> None:
        try:
            await self.walk(source, entry.path, state)
            return
        except Exception as e:
            if source.type not in DECODE_RETRY_TYPES:
                logger.error(f"Failed to scan subdirectory {entry.path}: {e}")
                return
            error = e

        decoded = unquote(entry.path)
        if decoded == entry.path:
            logger.error(f"Failed to scan subdirectory {entry.path}: {error}")
            return

        logger.warning(f"Failed to scan subdirectory {entry.path} with raw path, retrying decoded")
        try:
            await self.walk(source, decoded, state)
        except Exception as retry_error:
            logger.error(f"Failed to scan subdirectory {entry.path}: {retry_error}")

    async def _visit_file(self, source: DataSource, entry: ListingEntry, state: ScanState) -> None:
        video_file = VideoFile.create(source.id, entry.path, resolve_url(source, entry.path))
        if video_file.id in state.found_files:
            return
        state.found_files.add(video_file.id)

        location = state.file_index.get(video_file.id)
        if location is not None:
            # Known files, manual matches included, are never re-identified
            self._refresh_known_file(location, video_file.resolved_url, state)
            return

        if not await self.resolver.resolve_file(video_file, state):
            logger.info(f"Unscanned: {video_file.file_path}")
            state.unscanned.append(video_file)

    @staticmethod
    def _refresh_known_file(location: FileLocation, resolved_url: str, state: ScanState) -> None:
        if location.file.resolved_url != resolved_url:
            location.file.resolved_url = resolved_url
            state.mark_owner_dirty(location)
