"""Run one registered scraper from the command line.

Run with:
    python -m marquee.scripts.run_scrapers curzon soho mayfair --prefix curzon-
    python -m marquee.scripts.run_scrapers bfi --retries 1

Exits with status 1 when any venue fails.
"""

import argparse
import asyncio
import logging
import sys

from marquee.scrapers import SCRAPER_REGISTRY, get_scraper_config
from marquee.tasks.orchestrator import RunnerOptions, RunnerResult, parse_venue_args, run_scraper
from marquee.utils.log import configure_logging

logger = logging.getLogger(__name__)


def print_summary(name: str, result: RunnerResult) -> None:
    print(f"\n{name}: {result.venues_succeeded} succeeded, {result.venues_failed} failed "
          f"in {result.duration_ms / 1000:.1f}s")
    for venue in result.venue_results:
        marker = "OK  " if venue.success else "FAIL"
        line = (
            f"  {marker} {venue.venue_id:<30} {venue.status.value:<10} "
            f"found={venue.screenings_found} added={venue.added} updated={venue.updated} "
            f"retries={venue.retry_count}"
        )
        if venue.error:
            line += f"  ({venue.error})"
        print(line)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run a registered scraper.")
    parser.add_argument("name", help="Registered scraper name")
    parser.add_argument("venues", nargs="*", help="Only run these venue ids")
    parser.add_argument("--retries", type=int, default=None, metavar="N", help="Retry attempts per venue")
    parser.add_argument("--prefix", default=None, help="Prefix added to shorthand venue ids")
    args = parser.parse_args()

    configure_logging()

    config = get_scraper_config(args.name)
    if config is None:
        known = ", ".join(sorted(SCRAPER_REGISTRY)) or "none"
        print(f"Unknown scraper {args.name!r} (registered: {known})", file=sys.stderr)
        sys.exit(2)

    options = RunnerOptions(venue_ids=parse_venue_args(args.venues, args.prefix))
    if args.retries is not None:
        options.retry_attempts = args.retries

    result = asyncio.run(run_scraper(config, options))
    print_summary(args.name, result)
    sys.exit(0 if result.success else 1)


if __name__ == "__main__":
    main()
