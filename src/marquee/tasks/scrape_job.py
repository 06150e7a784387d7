"""Scheduled scrape job that runs every registered scraper configuration."""

import logging

from sqlalchemy.exc import SQLAlchemyError

from marquee.scrapers import SCRAPER_REGISTRY, load_scrapers
from marquee.tasks.orchestrator import RunnerResult, run_scraper

logger = logging.getLogger(__name__)


async def run_scrape_all() -> dict[str, RunnerResult]:
    """Run every registered scraper configuration, one after another.

    Each configuration gets its own ingestion run and DB session so it can
    be called from the scheduler or at startup without a request context.
    A configuration that blows up is logged and skipped.
    """
    load_scrapers()
    if not SCRAPER_REGISTRY:
        logger.warning("No scrapers registered, skipping scrape")
        return {}

    logger.info(f"Starting scheduled scrape for {len(SCRAPER_REGISTRY)} scraper(s)")

    results: dict[str, RunnerResult] = {}
    for name, config in list(SCRAPER_REGISTRY.items()):
        try:
            results[name] = await run_scraper(config)
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Error running scraper {name}: {e}", exc_info=True)

    succeeded = sum(1 for r in results.values() if r.success)
    added = sum(r.screenings_added for r in results.values())
    logger.info(
        f"Scheduled scrape complete: {succeeded}/{len(SCRAPER_REGISTRY)} scrapers succeeded, "
        f"{added} new screenings created"
    )
    return results
