"""Remove future screenings that a venue no longer lists.

Scrapes the given venues once, without ingesting anything, and compares
the fresh source ids against the stored future screenings. Dry run by
default; pass --apply to delete.

Run with:
    python -m marquee.scripts.clean_stale_screenings bfi
    python -m marquee.scripts.clean_stale_screenings curzon soho --prefix curzon- --apply
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone

from marquee.database import AsyncSessionLocal
from marquee.scrapers import SCRAPER_REGISTRY, get_scraper_config
from marquee.scrapers.models import (
    ChainConfig,
    MultiVenueConfig,
    RawScreening,
    ScraperRunnerConfig,
    SingleVenueConfig,
)
from marquee.services.stale_cleaner import remove_stale_screenings, report_stale_screenings
from marquee.tasks.orchestrator import parse_venue_args
from marquee.utils.log import configure_logging

logger = logging.getLogger(__name__)


async def scrape_config(
    config: ScraperRunnerConfig,
    venue_ids: list[str],
) -> dict[str, list[RawScreening]]:
    """Fetch fresh screenings per venue id for a runner configuration."""
    if isinstance(config, SingleVenueConfig):
        return {config.venue.id: await config.create_scraper().scrape()}

    if isinstance(config, MultiVenueConfig):
        fresh: dict[str, list[RawScreening]] = {}
        for venue in config.venues:
            if venue_ids and venue.id not in venue_ids:
                continue
            fresh[venue.id] = await config.create_scraper(venue.id).scrape()
        return fresh

    if isinstance(config, ChainConfig):
        ids = venue_ids or [v.id for v in config.venues]
        by_venue = await config.create_scraper().scrape_venues(ids)
        return {venue_id: by_venue.get(venue_id, []) for venue_id in ids}

    raise TypeError(f"Unknown scraper configuration: {config!r}")


async def clean_stale(config: ScraperRunnerConfig, venue_ids: list[str], apply: bool = False) -> int:
    tag = "" if apply else "[DRY RUN] "
    started_at = datetime.now(timezone.utc)
    fresh = await scrape_config(config, venue_ids)

    total = 0
    async with AsyncSessionLocal() as session:
        for cinema_id, screenings in fresh.items():
            if apply:
                result = await remove_stale_screenings(session, cinema_id, screenings, started_at)
                deleted = result.deleted
            else:
                report = await report_stale_screenings(session, cinema_id, screenings, started_at)
                deleted = report.would_delete
                for screening_id, start_time in report.screenings:
                    logger.info(f"  {tag}DELETE  {cinema_id} #{screening_id} at {start_time}")

            logger.info(f"{tag}{cinema_id}: {deleted} stale screening(s) of {len(screenings)} scraped")
            total += deleted

        if apply:
            await session.commit()

    logger.info(f"{tag}Done: {total} stale screening(s)")
    return total


def main() -> None:
    parser = argparse.ArgumentParser(description="Remove screenings a venue no longer lists.")
    parser.add_argument("name", help="Registered scraper name")
    parser.add_argument("venues", nargs="*", help="Only clean these venue ids")
    parser.add_argument("--prefix", default=None, help="Prefix added to shorthand venue ids")
    parser.add_argument("--apply", action="store_true", help="Delete (default: dry run)")
    args = parser.parse_args()

    configure_logging()

    config = get_scraper_config(args.name)
    if config is None:
        known = ", ".join(sorted(SCRAPER_REGISTRY)) or "none"
        print(f"Unknown scraper {args.name!r} (registered: {known})", file=sys.stderr)
        sys.exit(2)

    asyncio.run(clean_stale(config, parse_venue_args(args.venues, args.prefix), args.apply))


if __name__ == "__main__":
    main()
