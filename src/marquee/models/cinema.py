"""Cinema model for storing cinema venue information."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, String, Text
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column, relationship

from marquee.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from marquee.models.screening import Screening


class Cinema(Base, TimestampMixin):
    """
    Cinema venue model.

    Effectively static reference data. Rows are created or refreshed by the
    ingestion run before any screening is written for the venue.
    """

    __tablename__ = "cinemas"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    short_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    chain: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    city: Mapped[str] = mapped_column(String(100), nullable=False, default="london", index=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    postcode: Mapped[str | None] = mapped_column(String(20), nullable=True)
    website: Mapped[str | None] = mapped_column(String(500), nullable=True)
    features: Mapped[list[str] | None] = mapped_column(ARRAY(String), nullable=True)

    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    last_scraped_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    screenings: Mapped[list["Screening"]] = relationship(
        back_populates="cinema",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Cinema(id={self.id!r}, name={self.name!r}, chain={self.chain!r})>"
