"""Find and merge duplicate Film records.

Dry run by default; pass --execute to apply the merges.

Run with:
    python -m marquee.scripts.merge_duplicate_films
    python -m marquee.scripts.merge_duplicate_films --execute
"""

import argparse
import asyncio
import logging

from marquee.database import AsyncSessionLocal
from marquee.services.film_merger import DuplicateFilmMerger, MergeReport
from marquee.utils.log import configure_logging

logger = logging.getLogger(__name__)


async def merge_duplicates(execute: bool = False, threshold: float | None = None) -> MergeReport:
    tag = "" if execute else "[DRY RUN] "

    async with AsyncSessionLocal() as session:
        merger = DuplicateFilmMerger(session, threshold=threshold)
        report = await merger.run(dry_run=not execute)

    for cluster in report.clusters:
        logger.info(
            f"  {tag}MERGE ({cluster.reason}) "
            f"{[d.id for d in cluster.duplicates]!r} → {cluster.primary.id!r}"
        )

    logger.info(
        f"{tag}Done: {len(report.clusters)} cluster(s), {report.merged} merged, "
        f"{report.films_deleted} film(s) deleted, {report.failed} failed"
    )
    return report


def main() -> None:
    parser = argparse.ArgumentParser(description="Merge duplicate films.")
    parser.add_argument("--execute", action="store_true", help="Apply merges (default: dry run)")
    parser.add_argument("--threshold", type=float, default=None, help="Title similarity threshold")
    args = parser.parse_args()

    configure_logging()
    asyncio.run(merge_duplicates(args.execute, args.threshold))


if __name__ == "__main__":
    main()
