"""Pydantic schemas for API requests and responses."""

from marquee.schemas.film import DuplicateClusterResponse, FilmSummary, MergeResponse
from marquee.schemas.scraper_run import (
    ScrapeRequest,
    ScrapeResponse,
    ScraperRunResponse,
    VenueResultResponse,
)

__all__ = [
    "DuplicateClusterResponse",
    "FilmSummary",
    "MergeResponse",
    "ScrapeRequest",
    "ScrapeResponse",
    "ScraperRunResponse",
    "VenueResultResponse",
]
