"""Screening model for film showtimes at cinemas."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from marquee.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from marquee.models.cinema import Cinema
    from marquee.models.film import Film


class Screening(Base, TimestampMixin):
    """
    Film screening model.

    (cinema_id, film_id, start_time) is the durable identity of a showing;
    re-scrapes update the other columns in place.
    """

    __tablename__ = "screenings"
    __table_args__ = (
        UniqueConstraint(
            "cinema_id",
            "film_id",
            "start_time",
            name="uq_cinema_film_time",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Foreign keys
    cinema_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("cinemas.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    film_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("films.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Screening details
    start_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    booking_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    screen_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Classification
    format: Mapped[str | None] = mapped_column(String(50), nullable=True)
    event_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    event_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_special_event: Mapped[bool] = mapped_column(default=False, nullable=False)
    is_3d: Mapped[bool] = mapped_column(default=False, nullable=False)
    has_subtitles: Mapped[bool] = mapped_column(default=False, nullable=False)
    subtitle_language: Mapped[str | None] = mapped_column(String(20), nullable=True)
    has_audio_description: Mapped[bool] = mapped_column(default=False, nullable=False)
    is_relaxed_screening: Mapped[bool] = mapped_column(default=False, nullable=False)
    season: Mapped[str | None] = mapped_column(String(200), nullable=True)

    # Provenance
    source_id: Mapped[str | None] = mapped_column(String(200), nullable=True, index=True)
    raw_title: Mapped[str | None] = mapped_column(Text, nullable=True)
    scraped_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    # Relationships
    cinema: Mapped["Cinema"] = relationship(back_populates="screenings")
    film: Mapped["Film"] = relationship(back_populates="screenings")

    def __repr__(self) -> str:
        return (
            f"<Screening(cinema_id={self.cinema_id!r}, "
            f"film_id={self.film_id!r}, "
            f"start_time={self.start_time})>"
        )
