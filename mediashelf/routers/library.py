"""API endpoints for browsing the library and fixing unmatched files."""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..database import get_db, get_session_maker
from ..models import Movie, Show, UnscannedFile
from ..services.manual_match import ManualMatchError, manual_match_file
from ..services.ratings import RatingsStore
from ..services.storage import LibraryStore
from ..services.tmdb import CatalogNotConfiguredError
from .scan import get_orchestrator, sync_api_key

router = APIRouter(prefix="/api/library", tags=["library"])


class ManualMatchRequest(BaseModel):
    """Request model for matching an unscanned file by hand."""

    file_id: str
    media_type: Literal["movie", "tv"]
    tmdb_id: int
    season_number: Optional[int] = None
    episode_number: Optional[int] = None


@router.get("/movies")
async def list_movies(db: Session = Depends(get_db)):
    """List all movies, alphabetically."""
    movies = db.query(Movie).order_by(Movie.title).all()
    return [m.to_dict() for m in movies]


@router.get("/movies/{movie_id}")
async def get_movie(movie_id: int, db: Session = Depends(get_db)):
    """Get a movie with its files."""
    movie = db.query(Movie).filter(Movie.id == movie_id).first()
    if not movie:
        raise HTTPException(status_code=404, detail="Movie not found")
    return movie.to_dict()


@router.get("/shows")
async def list_shows(db: Session = Depends(get_db)):
    """List all shows, alphabetically."""
    shows = db.query(Show).order_by(Show.name).all()
    return [s.to_dict() for s in shows]


@router.get("/shows/{show_id}")
async def get_show(show_id: int, db: Session = Depends(get_db)):
    """Get a show with its seasons, episodes and files."""
    show = db.query(Show).filter(Show.id == show_id).first()
    if not show:
        raise HTTPException(status_code=404, detail="Show not found")
    return show.to_dict()


@router.get("/unscanned")
async def list_unscanned(db: Session = Depends(get_db)):
    """List files the last scan could not match."""
    files = db.query(UnscannedFile).order_by(UnscannedFile.file_path).all()
    return [f.to_dict() for f in files]


@router.delete("/unscanned")
async def delete_unscanned(file_id: str = Query(...), db: Session = Depends(get_db)):
    """Forget one unscanned file. It comes back if the next scan still cannot match it."""
    row = db.query(UnscannedFile).filter(UnscannedFile.id == file_id).first()
    if not row:
        raise HTTPException(status_code=404, detail="Unscanned file not found")
    db.delete(row)
    db.commit()
    return {"message": "Unscanned file removed"}


@router.get("/search")
async def search_catalog(
    query: str = Query(..., min_length=1),
    media_type: Literal["movie", "tv"] = "movie",
    year: Optional[int] = None,
):
    """Search the catalog for manual matching."""
    orchestrator = get_orchestrator()
    sync_api_key(orchestrator)
    gateway = orchestrator.gateway

    try:
        if media_type == "movie":
            results = await gateway.search_movie(query, year)
        else:
            results = await gateway.search_show(query, year)
    except CatalogNotConfiguredError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return [{"id": r.id, "title": r.title, "year": r.year} for r in results]


@router.post("/unscanned/match")
async def match_unscanned(data: ManualMatchRequest):
    """Attach an unscanned file to a chosen movie or episode."""
    orchestrator = get_orchestrator()
    if orchestrator.is_scanning():
        raise HTTPException(status_code=400, detail="Scan in progress, try again when it finishes")

    sync_api_key(orchestrator)
    session_maker = get_session_maker()

    try:
        entity = await manual_match_file(
            LibraryStore(session_maker),
            orchestrator.gateway,
            data.file_id,
            data.media_type,
            data.tmdb_id,
            season_number=data.season_number,
            episode_number=data.episode_number,
            ratings=RatingsStore(session_maker),
        )
    except ManualMatchError as e:
        raise HTTPException(status_code=404 if e.not_found else 400, detail=str(e))

    return {"message": "File matched", "id": entity.id, "media_type": data.media_type}
