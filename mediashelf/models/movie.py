"""Movie model for films."""

from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import String, Integer, DateTime, Text, Float
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..database import Base

if TYPE_CHECKING:
    from .video_file import VideoFile


class Movie(Base):
    """Movie model, keyed by its TMDB id."""

    __tablename__ = "movies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    imdb_id: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    overview: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tagline: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    release_date: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    runtime: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    poster_path: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    backdrop_path: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    logo_path: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    genres: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON array
    cast: Mapped[Optional[str]] = mapped_column("cast_members", Text, nullable=True)  # JSON array
    director: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON object

    vote_average: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    popularity: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    imdb_rating: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    imdb_votes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    source_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    last_updated: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    # Relationships
    video_files: Mapped[list["VideoFile"]] = relationship(
        "VideoFile",
        back_populates="movie",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="VideoFile.file_path",
    )

    def __repr__(self) -> str:
        return f"<Movie(id={self.id}, title='{self.title}')>"

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        import json
        return {
            "id": self.id,
            "imdb_id": self.imdb_id,
            "title": self.title,
            "overview": self.overview,
            "tagline": self.tagline,
            "release_date": self.release_date,
            "runtime": self.runtime,
            "poster_path": self.poster_path,
            "backdrop_path": self.backdrop_path,
            "logo_path": self.logo_path,
            "genres": json.loads(self.genres) if self.genres else [],
            "cast": json.loads(self.cast) if self.cast else [],
            "director": json.loads(self.director) if self.director else None,
            "vote_average": self.vote_average,
            "popularity": self.popularity,
            "imdb_rating": self.imdb_rating,
            "imdb_votes": self.imdb_votes,
            "status": self.status,
            "source_id": self.source_id,
            "video_files": [f.to_dict() for f in self.video_files],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }
