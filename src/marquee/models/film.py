"""Film model for storing canonical film metadata."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Float, Integer, String, Text
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column, relationship

from marquee.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from marquee.models.screening import Screening


class Film(Base, TimestampMixin):
    """
    Canonical film model.

    One row per real film. ``tmdb_id`` is globally unique when present;
    ``normalized_title`` is derived and may collide between rows (collisions
    are settled by the duplicate merger, not treated as identity).
    """

    __tablename__ = "films"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    normalized_title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # TMDb metadata
    tmdb_id: Mapped[int | None] = mapped_column(Integer, nullable=True, unique=True, index=True)
    imdb_id: Mapped[str | None] = mapped_column(String(20), nullable=True)
    directors: Mapped[list[str] | None] = mapped_column(ARRAY(String), nullable=True)
    cast: Mapped[list[str] | None] = mapped_column(ARRAY(String), nullable=True)
    countries: Mapped[list[str] | None] = mapped_column(ARRAY(String), nullable=True)
    genres: Mapped[list[str] | None] = mapped_column(ARRAY(String), nullable=True)
    overview: Mapped[str | None] = mapped_column(Text, nullable=True)
    poster_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    runtime: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Match audit trail
    match_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    match_strategy: Mapped[str | None] = mapped_column(String(50), nullable=True)
    matched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    screenings: Mapped[list["Screening"]] = relationship(
        back_populates="film",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Film(id={self.id!r}, title={self.title!r}, year={self.year})>"
