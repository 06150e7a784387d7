"""Scraper run audit log and per-cinema baselines."""

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from marquee.models.base import Base, TimestampMixin


class ScraperRun(Base):
    """
    One row per venue per orchestrator invocation. Append-only.

    ``status`` is one of ``success``, ``failed`` or ``anomaly``.
    """

    __tablename__ = "scraper_runs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    cinema_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("cinemas.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    screening_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    baseline_count: Mapped[float | None] = mapped_column(Float, nullable=True)
    anomaly_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    anomaly_details: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    # "metadata" is reserved on declarative classes
    run_metadata: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ScraperRun(cinema_id={self.cinema_id!r}, status={self.status!r}, "
            f"screening_count={self.screening_count})>"
        )


class CinemaBaseline(Base, TimestampMixin):
    """Rolling expected screening counts for a cinema. Maintained elsewhere."""

    __tablename__ = "cinema_baselines"

    cinema_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("cinemas.id", ondelete="CASCADE"),
        primary_key=True,
    )
    weekday_avg: Mapped[float | None] = mapped_column(Float, nullable=True)
    weekend_avg: Mapped[float | None] = mapped_column(Float, nullable=True)
    tolerance_percent: Mapped[float] = mapped_column(Float, nullable=False, default=30.0)

    def __repr__(self) -> str:
        return (
            f"<CinemaBaseline(cinema_id={self.cinema_id!r}, weekday={self.weekday_avg}, "
            f"weekend={self.weekend_avg})>"
        )
