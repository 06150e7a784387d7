"""SQLAlchemy ORM models."""

from marquee.models.base import Base
from marquee.models.cinema import Cinema
from marquee.models.film import Film
from marquee.models.scraper_run import CinemaBaseline, ScraperRun
from marquee.models.screening import Screening
from marquee.models.season import Season, SeasonFilm
from marquee.models.user_film_status import UserFilmStatus

__all__ = [
    "Base",
    "Cinema",
    "CinemaBaseline",
    "Film",
    "ScraperRun",
    "Screening",
    "Season",
    "SeasonFilm",
    "UserFilmStatus",
]
