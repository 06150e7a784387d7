"""Two-layer duplicate detection for screenings."""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marquee.models.film import Film
from marquee.models.screening import Screening
from marquee.utils.text import normalise_title

logger = logging.getLogger(__name__)


@dataclass
class DuplicateCheckResult:
    duplicate: Screening | None = None  # Exact match to update in place
    should_skip: bool = False  # Same showing already stored under another film


class ScreeningDeduplicator:
    """
    Decides whether a candidate screening is new, an update, or a duplicate.

    Layer 1 looks up the exact (film, cinema, start time) key. Layer 2
    looks for a screening at the same cinema and time under a different
    film whose title normalizes identically: that is the same showing
    reached through a second Film record, so the candidate is skipped.
    Different normalized titles at the same slot (double features, split
    screens) are genuine and inserted.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def check(self, film_id: str, cinema_id: str, start_time: datetime) -> DuplicateCheckResult:
        result = await self.db.execute(
            select(Screening).where(
                Screening.film_id == film_id,
                Screening.cinema_id == cinema_id,
                Screening.start_time == start_time,
            )
        )
        duplicate = result.scalar_one_or_none()
        if duplicate:
            return DuplicateCheckResult(duplicate=duplicate)

        result = await self.db.execute(
            select(Film.title)
            .join(Screening, Screening.film_id == Film.id)
            .where(
                Screening.cinema_id == cinema_id,
                Screening.start_time == start_time,
                Screening.film_id != film_id,
            )
        )
        other_titles = result.scalars().all()
        if not other_titles:
            return DuplicateCheckResult()

        new_title = await self.db.scalar(select(Film.title).where(Film.id == film_id))
        if new_title is None:
            return DuplicateCheckResult()

        new_norm = normalise_title(new_title)
        for title in other_titles:
            if normalise_title(title) == new_norm:
                logger.warning(
                    f"Skipping duplicate screening: '{new_title}' at {cinema_id} "
                    f"{start_time.isoformat()} (already stored as '{title}')"
                )
                return DuplicateCheckResult(should_skip=True)

        return DuplicateCheckResult()
