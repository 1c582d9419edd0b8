"""Imported IMDb ratings."""

from sqlalchemy import String, Integer, Float
from sqlalchemy.orm import Mapped, mapped_column

from ..database import Base


class ImdbRating(Base):
    """One row of the public IMDb ratings dataset."""

    __tablename__ = "imdb_ratings"

    imdb_id: Mapped[str] = mapped_column(String(20), primary_key=True)
    rating: Mapped[float] = mapped_column(Float, nullable=False)
    votes: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        return f"<ImdbRating(imdb_id='{self.imdb_id}', rating={self.rating})>"
