"""Server-side trigram similarity search over film titles (PostgreSQL pg_trgm)."""

import logging
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from marquee.config import settings
from marquee.models.film import Film
from marquee.utils.text import normalise_title

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimilarityMatch:
    film_id: str
    title: str
    confidence: float


class SimilarityBackend(Protocol):
    async def find_similar(self, title: str, year: int | None = None) -> SimilarityMatch | None: ...


class TrigramSimilarityBackend:
    """
    Finds the closest existing Film by ``similarity(normalized_title, :title)``.

    Requires the ``pg_trgm`` extension (created by the initial migration).
    Films whose year differs from the requested one are excluded; a missing
    year on either side matches.
    """

    def __init__(self, db: AsyncSession, threshold: float | None = None) -> None:
        self.db = db
        self.threshold = threshold if threshold is not None else settings.similarity_threshold

    async def find_similar(self, title: str, year: int | None = None) -> SimilarityMatch | None:
        normalized = normalise_title(title)
        if not normalized:
            return None

        score = func.similarity(Film.normalized_title, normalized).label("score")
        query = select(Film.id, Film.title, score).where(score >= self.threshold)
        if year is not None:
            query = query.where(or_(Film.year.is_(None), Film.year == year))
        query = query.order_by(score.desc()).limit(1)

        result = await self.db.execute(query)
        row = result.first()
        if row is None:
            return None

        logger.debug(f"Similarity match: '{title}' -> '{row.title}' ({row.score:.2f})")
        return SimilarityMatch(film_id=row.id, title=row.title, confidence=float(row.score))


def get_similarity_backend(db: AsyncSession) -> SimilarityBackend | None:
    """Return the configured similarity backend, or None when disabled."""
    if not settings.similarity_enabled:
        return None
    return TrigramSimilarityBackend(db)
