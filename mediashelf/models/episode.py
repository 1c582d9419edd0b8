"""Episode model for TV episodes."""

from typing import Optional, TYPE_CHECKING

from sqlalchemy import String, Integer, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..database import Base

if TYPE_CHECKING:
    from .show import Season
    from .video_file import VideoFile


class Episode(Base):
    """TV Episode model."""

    __tablename__ = "episodes"
    __table_args__ = (UniqueConstraint("season_id", "episode_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    season_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("seasons.id", ondelete="CASCADE"), nullable=False
    )

    # Episode info
    tmdb_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    season_number: Mapped[int] = mapped_column(Integer, nullable=False)
    episode_number: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    overview: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    still_path: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Relationships
    season: Mapped["Season"] = relationship("Season", back_populates="episodes")
    video_files: Mapped[list["VideoFile"]] = relationship(
        "VideoFile",
        back_populates="episode",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="VideoFile.file_path",
    )

    def __repr__(self) -> str:
        return f"<Episode(id={self.id}, {self.episode_code})>"

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.tmdb_id,
            "season_number": self.season_number,
            "episode_number": self.episode_number,
            "name": self.name,
            "overview": self.overview,
            "still_path": self.still_path,
            "video_files": [f.to_dict() for f in self.video_files],
        }

    @property
    def episode_code(self) -> str:
        """Get episode code like S01E01."""
        return f"S{self.season_number:02d}E{self.episode_number:02d}"
