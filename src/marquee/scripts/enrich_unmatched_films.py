"""Retry TMDb matching for films stored without metadata.

Films created by the fallback stage carry ``match_strategy == "unmatched"``.
This re-runs the metadata matcher on each one; a confident match fills in
the TMDb fields and marks the film ``enriched``. A match whose TMDb id is
already held by another film is skipped and left for the duplicate merger.

Dry run by default; pass --apply to write.

Run with:
    python -m marquee.scripts.enrich_unmatched_films
    python -m marquee.scripts.enrich_unmatched_films --apply
"""

import argparse
import asyncio
import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marquee.database import AsyncSessionLocal
from marquee.models.film import Film
from marquee.services.metadata_matcher import MetadataMatcher
from marquee.services.tmdb_client import TMDbClient, poster_url, release_year
from marquee.utils.log import configure_logging

logger = logging.getLogger(__name__)


async def enrich_film(
    session: AsyncSession,
    film: Film,
    matcher: MetadataMatcher,
    tmdb: TMDbClient,
    apply: bool = False,
) -> bool:
    """Match one film and copy TMDb metadata onto it. Returns True when enriched."""
    director = film.directors[0] if film.directors else None
    match = await matcher.match(film.title, year=film.year, director=director)
    if match is None:
        logger.info(f"  no match   {film.id!r}")
        return False

    holder = await session.scalar(select(Film.id).where(Film.tmdb_id == match.tmdb_id))
    if holder is not None:
        logger.info(f"  skip       {film.id!r}: TMDb {match.tmdb_id} already on {holder!r}")
        return False

    details = await tmdb.get_film_details(match.tmdb_id)
    if not details:
        logger.warning(f"  no details {film.id!r}: TMDb {match.tmdb_id}")
        return False

    if not apply:
        logger.info(f"  [DRY RUN] would enrich {film.id!r} → TMDb {match.tmdb_id} ({match.confidence:.2f})")
        return True

    credits = details.get("credits", {})
    film.tmdb_id = match.tmdb_id
    film.imdb_id = details.get("imdb_id") or film.imdb_id
    film.year = film.year or release_year(details.get("release_date"))
    film.directors = tmdb.extract_directors(credits) or film.directors
    film.cast = tmdb.extract_cast(credits) or film.cast
    film.countries = tmdb.extract_countries(details) or film.countries
    film.genres = tmdb.extract_genres(details) or film.genres
    film.overview = film.overview or details.get("overview") or None
    film.runtime = film.runtime or details.get("runtime") or None
    film.poster_url = film.poster_url or poster_url(details.get("poster_path"))
    film.match_confidence = match.confidence
    film.match_strategy = "enriched"
    film.matched_at = datetime.now(timezone.utc)

    logger.info(f"  enriched   {film.id!r} → TMDb {match.tmdb_id} ({match.confidence:.2f})")
    return True


async def enrich_unmatched(apply: bool = False) -> int:
    tag = "" if apply else "[DRY RUN] "
    tmdb = TMDbClient()
    if not tmdb.api_key:
        logger.error("TMDB_API_KEY not set, cannot enrich")
        return 0

    matcher = MetadataMatcher(tmdb)
    enriched = 0

    async with AsyncSessionLocal() as session:
        result = await session.execute(select(Film).where(Film.match_strategy == "unmatched"))
        films: list[Film] = list(result.scalars().all())
        logger.info(f"{tag}Found {len(films)} unmatched film(s)")

        for film in films:
            try:
                async with session.begin_nested():
                    if await enrich_film(session, film, matcher, tmdb, apply):
                        enriched += 1
                        await session.flush()
            except SQLAlchemyError as e:
                logger.warning(f"Could not update {film.title!r}: {e}")

        if apply:
            await session.commit()

    logger.info(f"{tag}Done: {enriched} of {len(films)} film(s) enriched")
    return enriched


def main() -> None:
    parser = argparse.ArgumentParser(description="Retry TMDb matching for unmatched films.")
    parser.add_argument("--apply", action="store_true", help="Write changes (default: dry run)")
    args = parser.parse_args()

    configure_logging()
    asyncio.run(enrich_unmatched(args.apply))


if __name__ == "__main__":
    main()
