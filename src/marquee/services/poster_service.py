"""Poster lookup with a fallback chain across sources."""

import logging
from dataclasses import dataclass
from urllib.parse import quote

from marquee.services.omdb_client import OMDbClient
from marquee.services.tmdb_client import TMDbClient, poster_url

logger = logging.getLogger(__name__)

PLACEHOLDER_SOURCE = "placeholder"


@dataclass(frozen=True)
class PosterResult:
    url: str
    source: str  # "tmdb", "omdb", "scraper" or "placeholder"

    @property
    def is_placeholder(self) -> bool:
        return self.source == PLACEHOLDER_SOURCE


def placeholder_url(title: str, year: int | None = None) -> str:
    """Generated placeholder poster URL. Never stored on a Film."""
    label = f"{title} ({year})" if year else title
    return f"/api/posters/placeholder?title={quote(label)}"


class PosterService:
    """
    Finds the best available poster for a film.

    Sources in order: TMDb by id, OMDb, the scraper-provided image, and
    finally a placeholder. TMDb is only consulted by id.
    """

    def __init__(
        self,
        tmdb_client: TMDbClient | None = None,
        omdb_client: OMDbClient | None = None,
    ) -> None:
        self.tmdb_client = tmdb_client or TMDbClient()
        self.omdb_client = omdb_client or OMDbClient()

    async def find_poster(
        self,
        title: str,
        year: int | None = None,
        tmdb_id: int | None = None,
        imdb_id: str | None = None,
        scraper_hint: str | None = None,
    ) -> PosterResult:
        if tmdb_id:
            details = await self.tmdb_client.get_film_details(tmdb_id)
            url = poster_url(details.get("poster_path")) if details else None
            if url:
                return PosterResult(url, "tmdb")

        if self.omdb_client.is_configured():
            url = await self.omdb_client.get_poster(imdb_id=imdb_id, title=title, year=year)
            if url:
                return PosterResult(url, "omdb")

        if scraper_hint:
            return PosterResult(scraper_hint, "scraper")

        logger.info(f"No poster found for '{title}' ({year})")
        return PosterResult(placeholder_url(title, year), PLACEHOLDER_SOURCE)
