"""Per-user film status (watchlist, seen, not interested)."""

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from marquee.models.base import Base, TimestampMixin


class UserFilmStatus(Base, TimestampMixin):
    """A user's status for one film."""

    __tablename__ = "user_film_statuses"
    __table_args__ = (UniqueConstraint("user_id", "film_id", name="uq_user_film"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    film_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("films.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[str] = mapped_column(String(30), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<UserFilmStatus(user_id={self.user_id!r}, film_id={self.film_id!r}, "
            f"status={self.status!r})>"
        )
