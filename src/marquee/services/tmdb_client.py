"""TMDb API client for fetching film metadata."""

import logging
from typing import Any

import httpx

from marquee.config import settings

logger = logging.getLogger(__name__)

POSTER_BASE_URL = "https://image.tmdb.org/t/p/w500"


class TMDbClient:
    """Client for The Movie Database (TMDb) API."""

    BASE_URL = "https://api.themoviedb.org/3"

    def __init__(self, api_key: str | None = None) -> None:
        """
        Initialize TMDb client.

        Args:
            api_key: TMDb API key (uses settings if not provided)
        """
        self.api_key = api_key or settings.tmdb_api_key
        if not self.api_key:
            logger.warning("TMDb API key not configured")

    async def search_films(self, title: str, year: int | None = None) -> list[dict[str, Any]]:
        """
        Search for films by title.

        Args:
            title: Film title
            year: Release year (optional, narrows results)

        Returns:
            Search results in TMDb relevance order (empty on error)
        """
        if not self.api_key:
            logger.warning("Cannot search TMDb without API key")
            return []

        params: dict[str, Any] = {
            "api_key": self.api_key,
            "query": title,
            "language": "en-GB",
        }
        if year:
            params["year"] = year

        try:
            async with httpx.AsyncClient(timeout=settings.metadata_timeout) as client:
                response = await client.get(f"{self.BASE_URL}/search/movie", params=params)
                response.raise_for_status()
                results = response.json().get("results", [])
                if not results:
                    logger.info(f"No TMDb results for: {title}")
                return results

        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"TMDb search error for '{title}': {e}")
            return []

    async def get_film_details(self, tmdb_id: int) -> dict[str, Any] | None:
        """
        Get detailed film information including credits.

        Args:
            tmdb_id: TMDb film ID

        Returns:
            Film details including credits or None if error
        """
        if not self.api_key:
            logger.warning("Cannot fetch TMDb details without API key")
            return None

        params = {
            "api_key": self.api_key,
            "language": "en-GB",
            "append_to_response": "credits",
        }

        try:
            async with httpx.AsyncClient(timeout=settings.metadata_timeout) as client:
                response = await client.get(
                    f"{self.BASE_URL}/movie/{tmdb_id}",
                    params=params,
                )
                response.raise_for_status()
                return response.json()

        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"TMDb details error for ID {tmdb_id}: {e}")
            return None

    def extract_directors(self, credits: dict[str, Any]) -> list[str]:
        """Extract director names from TMDb credits."""
        crew = credits.get("crew", [])
        return [person["name"] for person in crew if person.get("job") == "Director"]

    def extract_countries(self, film_data: dict[str, Any]) -> list[str]:
        """Extract production country names from TMDb film data."""
        countries = film_data.get("production_countries", [])
        return [country["name"] for country in countries]

    def extract_genres(self, film_data: dict[str, Any]) -> list[str]:
        """Extract lowercase genre names from TMDb film data."""
        return [genre["name"].lower() for genre in film_data.get("genres", []) if genre.get("name")]

    def extract_cast(self, credits: dict[str, Any], n: int = 3) -> list[str]:
        """
        Extract top-billed cast member names from TMDb credits.

        Args:
            credits: TMDb credits data
            n: Maximum number of cast members to return

        Returns:
            List of actor names (up to n)
        """
        cast = credits.get("cast", [])
        return [person["name"] for person in cast[:n] if person.get("name")]


def poster_url(poster_path: str | None) -> str | None:
    """Full poster URL for a TMDb poster path."""
    if not poster_path:
        return None
    return f"{POSTER_BASE_URL}{poster_path}"


def release_year(release_date: str | None) -> int | None:
    """Extract year from a TMDb release date string."""
    if not release_date:
        return None
    try:
        return int(release_date[:4])
    except ValueError:
        return None
