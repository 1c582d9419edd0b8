"""IMDb ratings dataset import and lookup."""

import codecs
import logging
import zlib
from typing import AsyncIterator, Callable, Iterable, Optional

import httpx
from sqlalchemy import func, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.orm import sessionmaker

from ..config import settings
from ..database import get_session_maker
from ..models import ImdbRating
from .entities import Rating

logger = logging.getLogger(__name__)

BATCH_SIZE = 10000

ProgressCallback = Callable[[str, str], None]


async def iter_dataset_lines(chunks: AsyncIterator[bytes]) -> AsyncIterator[str]:
    """Gunzip a streamed dataset and yield its text lines."""
    inflater = zlib.decompressobj(16 + zlib.MAX_WBITS)
    # Chunk boundaries can fall inside a multibyte character
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    pending = ""
    async for chunk in chunks:
        pending += decoder.decode(inflater.decompress(chunk))
        *lines, pending = pending.split("\n")
        for line in lines:
            yield line
    pending += decoder.decode(inflater.flush(), final=True)
    for line in pending.split("\n"):
        if line:
            yield line


class RatingsStore:
    """Secondary store holding ratings from the public IMDb dataset.

    Only ratings for ids the library actually references are imported; the
    full dataset has over a million rows.
    """

    def __init__(
        self,
        session_maker: Optional[sessionmaker] = None,
        url: str = "",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.session_maker = session_maker or get_session_maker()
        self.url = url or settings.imdb_ratings_url
        self._client = client

    def lookup(self, imdb_id: Optional[str]) -> Optional[Rating]:
        if not imdb_id:
            return None
        with self.session_maker() as session:
            row = session.get(ImdbRating, imdb_id)
            return Rating(rating=row.rating, votes=row.votes) if row else None

    def lookup_many(self, imdb_ids: Iterable[str]) -> dict[str, Rating]:
        ids = [i for i in set(imdb_ids) if i]
        if not ids:
            return {}
        result = {}
        with self.session_maker() as session:
            for start in range(0, len(ids), BATCH_SIZE):
                chunk = ids[start:start + BATCH_SIZE]
                rows = session.scalars(select(ImdbRating).where(ImdbRating.imdb_id.in_(chunk)))
                for row in rows:
                    result[row.imdb_id] = Rating(rating=row.rating, votes=row.votes)
        return result

    def status(self) -> dict:
        with self.session_maker() as session:
            count = session.scalar(select(func.count()).select_from(ImdbRating)) or 0
        return {"count": count}

    def _upsert(self, batch: list[dict]) -> None:
        stmt = insert(ImdbRating)
        stmt = stmt.on_conflict_do_update(
            index_elements=[ImdbRating.imdb_id],
            set_={"rating": stmt.excluded.rating, "votes": stmt.excluded.votes},
        )
        with self.session_maker() as session:
            session.execute(stmt, batch)
            session.commit()

    @staticmethod
    def _parse_line(line: str) -> Optional[dict]:
        parts = line.split("\t")
        if len(parts) < 3 or parts[0] == "tconst":
            return None
        try:
            return {"imdb_id": parts[0], "rating": float(parts[1]), "votes": int(parts[2])}
        except ValueError:
            return None

    async def bulk_refresh(self, imdb_ids: Iterable[str], on_progress: Optional[ProgressCallback] = None) -> int:
        """Download the dataset and upsert ratings for ``imdb_ids``. Returns rows imported."""
        wanted = {i for i in imdb_ids if i}
        if not wanted:
            return 0

        def report(stage: str, detail: str) -> None:
            if on_progress:
                on_progress(stage, detail)

        report("downloading", f"Downloading ratings for {len(wanted)} titles")
        client = self._client or httpx.AsyncClient(timeout=120.0, follow_redirects=True)
        batch: list[dict] = []
        imported = 0

        try:
            async with client.stream("GET", self.url) as response:
                response.raise_for_status()
                report("importing", "Importing ratings")
                async for line in iter_dataset_lines(response.aiter_bytes()):
                    row = self._parse_line(line)
                    if row is None or row["imdb_id"] not in wanted:
                        continue
                    batch.append(row)
                    if len(batch) >= BATCH_SIZE:
                        self._upsert(batch)
                        imported += len(batch)
                        batch = []
        finally:
            if self._client is None:
                await client.aclose()

        if batch:
            self._upsert(batch)
            imported += len(batch)

        logger.info(f"Imported {imported} IMDb ratings")
        report("complete", f"Imported {imported} ratings")
        return imported
