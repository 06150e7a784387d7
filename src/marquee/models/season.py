"""Season (programme strand) models and their film associations."""

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from marquee.models.base import Base, TimestampMixin


class Season(Base, TimestampMixin):
    """A curated season or retrospective run by a cinema."""

    __tablename__ = "seasons"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    cinema_id: Mapped[str | None] = mapped_column(
        String(100),
        ForeignKey("cinemas.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Season(id={self.id!r}, name={self.name!r})>"


class SeasonFilm(Base):
    """Membership of a film in a season. One row per (season, film)."""

    __tablename__ = "season_films"

    season_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("seasons.id", ondelete="CASCADE"),
        primary_key=True,
    )
    film_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("films.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<SeasonFilm(season_id={self.season_id!r}, film_id={self.film_id!r})>"
