"""Data models for scrapers and scraper runner configurations."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Literal, Union

if TYPE_CHECKING:
    from marquee.scrapers.base import BaseScraper, ChainScraper


@dataclass(frozen=True)
class RawScreening:
    """
    Raw screening data from a cinema scraper.

    This is the output format that all scrapers must return.
    The ingestion pipeline resolves the title to a canonical film and
    persists a deduplicated Screening.
    """

    film_title: str  # Title as it appears on the cinema website
    start_time: datetime  # Screening time (timezone-aware)
    booking_url: str  # URL to book tickets
    screen_name: str | None = None  # Screen/auditorium name
    format: str | None = None  # e.g. "35mm", "imax"
    event_type: str | None = None  # e.g. "q_and_a" when the site says so
    event_description: str | None = None
    source_id: str | None = None  # Stable per-site identifier
    poster_url: str | None = None  # Poster hint from the site
    year: int | None = None
    director: str | None = None

    def __post_init__(self) -> None:
        """Validate that start_time is timezone-aware."""
        if self.start_time.tzinfo is None:
            raise ValueError("start_time must be timezone-aware")


@dataclass
class VenueDefinition:
    """Static description of a cinema venue, used to upsert the Cinema row."""

    id: str
    name: str
    short_name: str | None = None
    website: str | None = None
    chain: str | None = None
    city: str = "london"
    address: str | None = None
    postcode: str | None = None
    features: list[str] = field(default_factory=list)


@dataclass
class SingleVenueConfig:
    """One scraper for one venue."""

    venue: VenueDefinition
    create_scraper: Callable[[], "BaseScraper"]
    type: Literal["single"] = "single"


@dataclass
class MultiVenueConfig:
    """Several venues, each with its own scraper instance built from the venue id."""

    venues: list[VenueDefinition]
    create_scraper: Callable[[str], "BaseScraper"]
    type: Literal["multi"] = "multi"


@dataclass
class ChainConfig:
    """A chain whose single scraper fetches all venues in one call."""

    chain_name: str
    venues: list[VenueDefinition]
    create_scraper: Callable[[], "ChainScraper"]
    active_venue_ids: Callable[[], list[str]] | None = None
    type: Literal["chain"] = "chain"


ScraperRunnerConfig = Union[SingleVenueConfig, MultiVenueConfig, ChainConfig]
