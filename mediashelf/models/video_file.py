"""Video file and unscanned file models."""

from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import String, Integer, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..database import Base

if TYPE_CHECKING:
    from .movie import Movie
    from .episode import Episode


class VideoFile(Base):
    """A video file owned by exactly one movie or episode."""

    __tablename__ = "video_files"

    # "<source_id>:<file_path>"
    id: Mapped[str] = mapped_column(String(1100), primary_key=True)
    movie_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("movies.id", ondelete="CASCADE"), nullable=True
    )
    episode_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("episodes.id", ondelete="CASCADE"), nullable=True
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    resolved_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    source_id: Mapped[str] = mapped_column(String(64), nullable=False)
    manually_matched: Mapped[bool] = mapped_column(Boolean, default=False)

    movie: Mapped[Optional["Movie"]] = relationship("Movie", back_populates="video_files")
    episode: Mapped[Optional["Episode"]] = relationship("Episode", back_populates="video_files")

    def __repr__(self) -> str:
        return f"<VideoFile(id='{self.id}')>"

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "name": self.name,
            "file_path": self.file_path,
            "resolved_url": self.resolved_url,
            "source_id": self.source_id,
            "manually_matched": self.manually_matched,
        }


class UnscannedFile(Base):
    """A video file that could not be matched to any catalog entity."""

    __tablename__ = "unscanned_files"

    id: Mapped[str] = mapped_column(String(1100), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    resolved_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    source_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<UnscannedFile(id='{self.id}')>"

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "name": self.name,
            "file_path": self.file_path,
            "resolved_url": self.resolved_url,
            "source_id": self.source_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
