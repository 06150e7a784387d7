"""Remove future screenings that a fresh scrape no longer lists."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from marquee.models.screening import Screening
from marquee.scrapers.models import RawScreening

logger = logging.getLogger(__name__)

DELETE_BATCH_SIZE = 100


@dataclass
class CleanupResult:
    deleted: int = 0
    preserved: int = 0


@dataclass
class StaleReport:
    would_delete: int = 0
    screenings: list[tuple[int, datetime]] = field(default_factory=list)


def _fresh_source_ids(fresh_screenings: Iterable[RawScreening]) -> set[str]:
    return {s.source_id for s in fresh_screenings if s.source_id}


def _stale_query(cinema_id: str, source_ids: set[str], scrape_started_at: datetime):
    # Rows without a source_id are never selected
    return select(Screening.id, Screening.start_time).where(
        Screening.cinema_id == cinema_id,
        Screening.start_time >= datetime.now(timezone.utc),
        Screening.source_id.is_not(None),
        Screening.source_id.not_in(source_ids),
        Screening.scraped_at < scrape_started_at,
    )


async def remove_stale_screenings(
    db: AsyncSession,
    cinema_id: str,
    fresh_screenings: Iterable[RawScreening],
    scrape_started_at: datetime,
) -> CleanupResult:
    """
    Delete future screenings for a cinema that the latest scrape did not reconfirm.

    A screening is stale when it is at the same cinema, in the future, has a
    source_id missing from the fresh scrape, and was last scraped before the
    scrape started. If the fresh scrape carries no source ids at all nothing
    is deleted, so an empty or broken scrape cannot wipe the listings.

    Does not commit; the caller owns the transaction.
    """
    source_ids = _fresh_source_ids(fresh_screenings)
    if not source_ids:
        logger.info(f"{cinema_id}: no fresh source ids, skipping stale cleanup")
        return CleanupResult()

    result = await db.execute(_stale_query(cinema_id, source_ids, scrape_started_at))
    stale_ids = [row.id for row in result.all()]
    if not stale_ids:
        return CleanupResult(deleted=0, preserved=len(source_ids))

    for i in range(0, len(stale_ids), DELETE_BATCH_SIZE):
        batch = stale_ids[i : i + DELETE_BATCH_SIZE]
        await db.execute(delete(Screening).where(Screening.id.in_(batch)))

    logger.info(
        f"{cinema_id}: deleted {len(stale_ids)} stale screenings, "
        f"preserved {len(source_ids)} fresh"
    )
    return CleanupResult(deleted=len(stale_ids), preserved=len(source_ids))


async def report_stale_screenings(
    db: AsyncSession,
    cinema_id: str,
    fresh_screenings: Iterable[RawScreening],
    scrape_started_at: datetime,
) -> StaleReport:
    """Dry-run twin of remove_stale_screenings: report what would be deleted."""
    source_ids = _fresh_source_ids(fresh_screenings)
    if not source_ids:
        return StaleReport()

    result = await db.execute(_stale_query(cinema_id, source_ids, scrape_started_at))
    rows = [(row.id, row.start_time) for row in result.all()]
    return StaleReport(would_delete=len(rows), screenings=rows)
