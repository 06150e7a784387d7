"""Base scraper interfaces for all cinema scrapers."""

import logging
from abc import ABC, abstractmethod

import httpx

from marquee.config import settings
from marquee.scrapers.models import RawScreening

logger = logging.getLogger(__name__)


async def _probe(url: str | None) -> bool:
    """Return True if ``url`` answers with a non-error status."""
    if not url:
        return True
    try:
        async with httpx.AsyncClient(
            timeout=settings.scrape_timeout, follow_redirects=True
        ) as client:
            response = await client.get(url)
            return response.status_code < 400
    except httpx.HTTPError as e:
        logger.warning(f"Health check failed for {url}: {e}")
        return False


class BaseScraper(ABC):
    """
    Abstract base class for single-venue scrapers.

    Scrapers raise on failure; the orchestrator owns retries and logging
    of the outcome.
    """

    #: Page fetched by the default health check. None skips the probe.
    health_check_url: str | None = None

    @abstractmethod
    async def scrape(self) -> list[RawScreening]:
        """
        Fetch all upcoming screenings for the venue.

        Returns:
            List of raw screenings with timezone-aware start times
        """

    async def health_check(self) -> bool:
        """Check that the venue's website is reachable."""
        return await _probe(self.health_check_url)


class ChainScraper(ABC):
    """Abstract base class for scrapers covering many venues of one chain."""

    health_check_url: str | None = None

    @abstractmethod
    async def scrape_venues(self, venue_ids: list[str]) -> dict[str, list[RawScreening]]:
        """
        Fetch screenings for the given venues in one pass.

        Returns:
            Mapping of venue id to its raw screenings. Venues missing from
            the mapping had no screenings.
        """

    async def health_check(self) -> bool:
        """Check that the chain's website is reachable."""
        return await _probe(self.health_check_url)
