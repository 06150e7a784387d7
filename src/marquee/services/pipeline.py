"""Ingestion pipeline: classify, resolve, deduplicate and persist raw screenings."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marquee.config import settings
from marquee.models.cinema import Cinema
from marquee.models.screening import Screening
from marquee.scrapers.models import RawScreening, VenueDefinition
from marquee.services.event_classifier import (
    EventClassifier,
    ScreeningMetadata,
    classify_screening,
    get_event_classifier,
)
from marquee.services.film_cache import FilmCache
from marquee.services.film_resolver import FilmResolver
from marquee.services.screening_dedup import ScreeningDeduplicator
from marquee.services.similarity import get_similarity_backend
from marquee.services.stale_cleaner import remove_stale_screenings
from marquee.services.title_extractor import TitleExtraction, extract_film_title
from marquee.utils.text import normalise_title

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    cinema_id: str
    scraped_at: datetime
    added: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    stale_deleted: int = 0
    blocked: bool = False
    blocked_reason: str | None = None


@dataclass
class _FilmGroup:
    extraction: TitleExtraction
    screenings: list[RawScreening] = field(default_factory=list)


class IngestionRun:
    """
    One ingestion pass over one database session.

    Owns the film cache, so every venue processed by the same run shares
    it and no two runs ever do. Call ``start()`` before processing.
    """

    def __init__(
        self,
        db: AsyncSession,
        resolver: FilmResolver | None = None,
        classifier: EventClassifier | None = None,
        deduplicator: ScreeningDeduplicator | None = None,
        cache: FilmCache | None = None,
    ) -> None:
        self.db = db
        self.cache = cache or FilmCache()
        self.resolver = resolver or FilmResolver(
            db,
            self.cache,
            similarity=get_similarity_backend(db),
        )
        self.classifier = classifier or get_event_classifier()
        self.deduplicator = deduplicator or ScreeningDeduplicator(db)

    async def start(self) -> None:
        if not self.cache.loaded:
            await self.cache.load(self.db)

    async def finish(self) -> None:
        self.cache.log_stats()
        if self.resolver.stats:
            logger.info(f"Film resolution: {dict(self.resolver.stats)}")

    async def ensure_cinema_exists(self, venue: VenueDefinition, chain: str | None = None) -> Cinema:
        """Create the Cinema row for a venue, or refresh its details. Idempotent."""
        cinema = await self.db.get(Cinema, venue.id)
        values = {
            "name": venue.name,
            "short_name": venue.short_name,
            "chain": chain or venue.chain,
            "city": venue.city,
            "address": venue.address,
            "postcode": venue.postcode,
            "website": venue.website,
            "features": venue.features or None,
        }

        if cinema is None:
            cinema = Cinema(id=venue.id, is_active=True, **values)
            self.db.add(cinema)
            logger.info(f"Created cinema: {venue.name}")
        else:
            for key, value in values.items():
                setattr(cinema, key, value)

        await self.db.commit()
        return cinema

    async def process_screenings(
        self,
        cinema_id: str,
        raw_screenings: list[RawScreening],
        scrape_started_at: datetime,
    ) -> PipelineResult:
        """
        Persist a venue's scrape.

        Screenings are grouped by extracted film title so each film is
        resolved once. Per-film errors are logged and counted as failed;
        database errors outside a film group roll back and propagate.

        Returns a blocked result, writing nothing, when the diff check
        decides the scrape collapsed against what is stored.
        """
        result = PipelineResult(cinema_id=cinema_id, scraped_at=datetime.now(timezone.utc))
        logger.info(f"Processing {len(raw_screenings)} screenings for {cinema_id}")

        self.cache.checkpoint()
        try:
            blocked_reason = await self._diff_check(cinema_id, raw_screenings)
            if blocked_reason:
                logger.warning(f"Blocked scrape for {cinema_id}: {blocked_reason}")
                result.blocked = True
                result.blocked_reason = blocked_reason
                return result

            for key, group in self._group_by_film(raw_screenings).items():
                try:
                    # New films are flushed in their own savepoints and commit
                    # with the venue below
                    film_id = await self._resolve_group(group)
                    async with self.db.begin_nested():
                        added, updated, skipped = await self._write_group(cinema_id, film_id, group)
                    result.added += added
                    result.updated += updated
                    result.skipped += skipped
                except Exception as e:
                    logger.error(
                        f"Error processing film '{key}' at {cinema_id}: {e}",
                        exc_info=True,
                    )
                    result.failed += len(group.screenings)

            cleanup = await remove_stale_screenings(
                self.db, cinema_id, raw_screenings, scrape_started_at
            )
            result.stale_deleted = cleanup.deleted

            await self.db.execute(
                update(Cinema)
                .where(Cinema.id == cinema_id)
                .values(last_scraped_at=result.scraped_at)
            )
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            evicted = self.cache.restore()
            if evicted:
                logger.warning(f"Rolled back {cinema_id}; dropped {evicted} cache entries for uncommitted films")
            raise

        self.cache.checkpoint()

        logger.info(
            f"Processed {cinema_id}: {result.added} added, {result.updated} updated, "
            f"{result.skipped} skipped, {result.failed} failed, "
            f"{result.stale_deleted} stale removed"
        )
        return result

    async def _diff_check(self, cinema_id: str, raw_screenings: list[RawScreening]) -> str | None:
        """Return a reason when the fresh future count dropped too far below the stored one."""
        now = datetime.now(timezone.utc)
        existing = await self.db.scalar(
            select(func.count(Screening.id)).where(
                Screening.cinema_id == cinema_id,
                Screening.start_time >= now,
            )
        )
        existing = existing or 0
        if existing < settings.diff_check_min_existing:
            return None

        fresh = sum(1 for s in raw_screenings if s.start_time >= now)
        floor = existing * (1 - settings.diff_check_max_drop)
        if fresh < floor:
            return f"fresh future screenings {fresh} below {floor:.0f} (stored {existing})"
        return None

    def _group_by_film(self, raw_screenings: list[RawScreening]) -> dict[str, _FilmGroup]:
        groups: dict[str, _FilmGroup] = {}
        extractions: dict[str, TitleExtraction] = {}

        for raw in raw_screenings:
            extraction = extractions.get(raw.film_title)
            if extraction is None:
                extraction = extract_film_title(raw.film_title)
                extractions[raw.film_title] = extraction
                if extraction.method != "none":
                    logger.debug(
                        f"Extracted '{raw.film_title}' -> '{extraction.film_title}' "
                        f"({extraction.method}, {extraction.confidence:.2f})"
                    )

            key = normalise_title(extraction.film_title) or raw.film_title
            groups.setdefault(key, _FilmGroup(extraction=extraction)).screenings.append(raw)

        return groups

    async def _resolve_group(self, group: _FilmGroup) -> str:
        screenings = group.screenings
        return await self.resolver.resolve(
            group.extraction.film_title,
            year=next((s.year for s in screenings if s.year), None),
            director=next((s.director for s in screenings if s.director), None),
            poster_hint=next((s.poster_url for s in screenings if s.poster_url), None),
            skip_metadata=not group.extraction.should_match_metadata,
        )

    async def _write_group(self, cinema_id: str, film_id: str, group: _FilmGroup) -> tuple[int, int, int]:
        """Upsert one film's screenings. Returns (added, updated, skipped)."""
        added = updated = skipped = 0

        for raw in group.screenings:
            metadata = await classify_screening(raw, self.classifier)
            check = await self.deduplicator.check(film_id, cinema_id, raw.start_time)

            if check.should_skip:
                skipped += 1
            elif check.duplicate is not None:
                self._apply(check.duplicate, raw, metadata)
                updated += 1
            else:
                screening = Screening(cinema_id=cinema_id, film_id=film_id, start_time=raw.start_time)
                self._apply(screening, raw, metadata)
                self.db.add(screening)
                # Visible to the next duplicate check in this batch
                await self.db.flush()
                added += 1

        await self.db.flush()
        return added, updated, skipped

    @staticmethod
    def _apply(screening: Screening, raw: RawScreening, metadata: ScreeningMetadata) -> None:
        """Copy everything except the identity triple onto a screening row."""
        screening.booking_url = raw.booking_url
        screening.screen_name = raw.screen_name
        screening.format = metadata.format
        screening.event_type = metadata.event_type
        screening.event_description = metadata.event_description
        screening.is_special_event = metadata.is_special_event
        screening.is_3d = metadata.is_3d
        screening.has_subtitles = metadata.has_subtitles
        screening.subtitle_language = metadata.subtitle_language
        screening.has_audio_description = metadata.has_audio_description
        screening.is_relaxed_screening = metadata.is_relaxed_screening
        screening.season = metadata.season
        screening.source_id = raw.source_id
        screening.raw_title = raw.film_title
        screening.scraped_at = datetime.now(timezone.utc)
