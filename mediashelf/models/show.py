"""Show and season models for TV series."""

from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import String, Integer, DateTime, Text, Float, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..database import Base

if TYPE_CHECKING:
    from .episode import Episode


class Show(Base):
    """TV Show model, keyed by its TMDB id."""

    __tablename__ = "shows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    tvdb_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    imdb_id: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    overview: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    poster_path: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    backdrop_path: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    logo_path: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Status
    status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    first_air_date: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    # Additional metadata
    genres: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON array
    cast: Mapped[Optional[str]] = mapped_column("cast_members", Text, nullable=True)  # JSON array
    created_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON array
    vote_average: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    popularity: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    imdb_rating: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    imdb_votes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    source_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    last_updated: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    # Relationships
    seasons: Mapped[list["Season"]] = relationship(
        "Season",
        back_populates="show",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Season.season_number",
    )

    def __repr__(self) -> str:
        return f"<Show(id={self.id}, name='{self.name}')>"

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        import json
        return {
            "id": self.id,
            "tvdb_id": self.tvdb_id,
            "imdb_id": self.imdb_id,
            "name": self.name,
            "overview": self.overview,
            "poster_path": self.poster_path,
            "backdrop_path": self.backdrop_path,
            "logo_path": self.logo_path,
            "status": self.status,
            "first_air_date": self.first_air_date,
            "genres": json.loads(self.genres) if self.genres else [],
            "cast": json.loads(self.cast) if self.cast else [],
            "created_by": json.loads(self.created_by) if self.created_by else [],
            "vote_average": self.vote_average,
            "popularity": self.popularity,
            "imdb_rating": self.imdb_rating,
            "imdb_votes": self.imdb_votes,
            "source_id": self.source_id,
            "seasons": [s.to_dict() for s in self.seasons],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


class Season(Base):
    """A numbered season of a show."""

    __tablename__ = "seasons"
    __table_args__ = (UniqueConstraint("show_id", "season_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    show_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("shows.id", ondelete="CASCADE"), nullable=False
    )
    season_number: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    poster_path: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    show: Mapped["Show"] = relationship("Show", back_populates="seasons")
    episodes: Mapped[list["Episode"]] = relationship(
        "Episode",
        back_populates="season",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Episode.episode_number",
    )

    def __repr__(self) -> str:
        return f"<Season(show_id={self.show_id}, season={self.season_number})>"

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "season_number": self.season_number,
            "name": self.name,
            "poster_path": self.poster_path,
            "episodes": [e.to_dict() for e in self.episodes],
        }
