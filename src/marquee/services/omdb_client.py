"""OMDb API client used as a secondary poster source."""

import logging
from typing import Any

import httpx

from marquee.config import settings

logger = logging.getLogger(__name__)


class OMDbClient:
    """Client for the Open Movie Database (OMDb) API."""

    BASE_URL = "https://www.omdbapi.com/"

    def __init__(self, api_key: str | None = None) -> None:
        self.api_key = api_key or settings.omdb_api_key

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _get(self, params: dict[str, Any]) -> dict[str, Any] | None:
        try:
            async with httpx.AsyncClient(timeout=settings.metadata_timeout) as client:
                response = await client.get(self.BASE_URL, params={"apikey": self.api_key, **params})
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"OMDb request error for {params}: {e}")
            return None

        if data.get("Response") == "False":
            return None
        return data

    async def get_poster(
        self,
        imdb_id: str | None = None,
        title: str | None = None,
        year: int | None = None,
    ) -> str | None:
        """
        Look up a poster URL by IMDb id, or by title and year.

        Returns:
            Poster URL, or None when OMDb has no poster ("N/A")
        """
        if not self.is_configured():
            return None

        if imdb_id:
            params: dict[str, Any] = {"i": imdb_id}
        elif title:
            params = {"t": title, "type": "movie"}
            if year:
                params["y"] = year
        else:
            return None

        data = await self._get(params)
        if not data:
            return None

        poster = data.get("Poster")
        if not poster or poster == "N/A":
            return None
        return poster
