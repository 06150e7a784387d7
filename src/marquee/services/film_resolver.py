"""Film identity resolution: map scraped titles to canonical Film ids."""

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Any

import httpx
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marquee.models.film import Film
from marquee.services.film_cache import CachedFilm, FilmCache
from marquee.services.metadata_matcher import MetadataMatch, MetadataMatcher
from marquee.services.poster_service import PosterService
from marquee.services.similarity import SimilarityBackend
from marquee.services.tmdb_client import TMDbClient, poster_url, release_year
from marquee.utils.text import normalise_title, slugify

logger = logging.getLogger(__name__)


class FilmResolver:
    """
    Resolves a (title, year, director, poster hint) tuple to a Film id.

    Stages, in order, stopping at the first hit:
    1. Run cache lookup by normalized title
    2. Trigram similarity search (when a backend is configured)
    3. TMDb match, reusing an existing Film with the same TMDb id
    4. Fallback creation from the scraper's fields

    Every Film created here is added to the cache straight away so later
    lookups in the same run resolve to it.
    """

    MAX_ID_ATTEMPTS = 5

    def __init__(
        self,
        db: AsyncSession,
        cache: FilmCache,
        matcher: MetadataMatcher | None = None,
        poster_service: PosterService | None = None,
        similarity: SimilarityBackend | None = None,
        tmdb_client: TMDbClient | None = None,
    ) -> None:
        self.db = db
        self.cache = cache
        self.tmdb_client = tmdb_client or TMDbClient()
        self.matcher = matcher or MetadataMatcher(self.tmdb_client)
        self.poster_service = poster_service or PosterService(self.tmdb_client)
        self.similarity = similarity
        self.stats: Counter[str] = Counter()

    async def resolve(
        self,
        title: str,
        year: int | None = None,
        director: str | None = None,
        poster_hint: str | None = None,
        skip_metadata: bool = False,
    ) -> str:
        """
        Resolve a film title to a canonical Film id, creating a Film if needed.

        Args:
            title: Cleaned film title
            year: Release year hint from the scraper
            director: Director hint from the scraper
            poster_hint: Poster URL found on the cinema website
            skip_metadata: Skip TMDb matching (non-film events, compilations)

        Returns:
            Film id
        """
        cached = self.cache.lookup(title)
        if cached:
            self.stats["cache"] += 1
            return cached.id

        if self.similarity is not None:
            film_id = await self._similarity_lookup(title, year)
            if film_id:
                self.stats["similarity"] += 1
                return film_id

        if not skip_metadata:
            film_id = await self._metadata_lookup(title, year, director, poster_hint)
            if film_id:
                self.stats["tmdb"] += 1
                # TMDb titles can differ from the scraped one; index both
                self.cache.add(CachedFilm(id=film_id, title=title, year=year, tmdb_id=None))
                return film_id

        film = await self._create_unmatched(title, year, director, poster_hint)
        self.stats["unmatched"] += 1
        return film.id

    async def _similarity_lookup(self, title: str, year: int | None) -> str | None:
        try:
            async with self.db.begin_nested():
                match = await self.similarity.find_similar(title, year)
        except SQLAlchemyError as e:
            logger.warning(f"Similarity search failed for '{title}': {e}")
            return None

        if match is None:
            return None

        logger.info(f"Found via similarity: '{title}' -> '{match.title}' ({match.confidence:.2f})")
        self.cache.add(CachedFilm(id=match.film_id, title=title, year=year, tmdb_id=None))
        return match.film_id

    async def _metadata_lookup(
        self,
        title: str,
        year: int | None,
        director: str | None,
        poster_hint: str | None,
    ) -> str | None:
        try:
            match = await self.matcher.match(title, year=year, director=director)
        except httpx.HTTPError as e:
            logger.warning(f"TMDb match failed for '{title}': {e}")
            return None

        if match is None:
            return None

        cached = self.cache.lookup_external_id(match.tmdb_id)
        if cached:
            return cached.id

        existing = await self._find_by_tmdb_id(match.tmdb_id)
        if existing:
            self._remember(existing)
            return existing.id

        details = await self.tmdb_client.get_film_details(match.tmdb_id)
        if not details:
            logger.warning(f"No TMDb details for {match.tmdb_id}, falling back for '{title}'")
            return None

        film = await self._create_from_tmdb(match, details, poster_hint)
        logger.info(f"Created from TMDb: {film.title} ({film.year})")
        return film.id

    async def _create_from_tmdb(
        self,
        match: MetadataMatch,
        details: dict[str, Any],
        poster_hint: str | None,
    ) -> Film:
        title = details.get("title") or match.title
        year = release_year(details.get("release_date")) or match.year
        credits = details.get("credits", {})
        imdb_id = details.get("imdb_id")

        poster = poster_url(details.get("poster_path"))
        if not poster:
            result = await self.poster_service.find_poster(
                title,
                year=year,
                tmdb_id=match.tmdb_id,
                imdb_id=imdb_id,
                scraper_hint=poster_hint,
            )
            # Placeholders are left null for later enrichment
            if not result.is_placeholder:
                poster = result.url
                logger.info(f"Found poster for '{title}' from {result.source}")

        return await self._insert_film(
            title,
            year,
            tmdb_id=match.tmdb_id,
            imdb_id=imdb_id,
            directors=self.tmdb_client.extract_directors(credits) or None,
            cast=self.tmdb_client.extract_cast(credits) or None,
            countries=self.tmdb_client.extract_countries(details) or None,
            genres=self.tmdb_client.extract_genres(details) or None,
            overview=details.get("overview") or None,
            runtime=details.get("runtime") or None,
            poster_url=poster,
            match_confidence=match.confidence,
            match_strategy="tmdb",
        )

    async def _create_unmatched(
        self,
        title: str,
        year: int | None,
        director: str | None,
        poster_hint: str | None,
    ) -> Film:
        # Scraper image only, never a title search
        film = await self._insert_film(
            title,
            year,
            directors=[director] if director else None,
            poster_url=poster_hint,
            match_strategy="unmatched",
        )
        logger.info(f"Created unmatched film: {film.title}")
        return film

    async def _insert_film(self, title: str, year: int | None, **fields: Any) -> Film:
        """
        Insert a Film inside a savepoint.

        A primary-key collision is retried with a numeric suffix; a TMDb id
        collision returns the Film that already holds that id.
        """
        base_id = self._generate_film_id(title, year)
        tmdb_id = fields.get("tmdb_id")

        for attempt in range(1, self.MAX_ID_ATTEMPTS + 1):
            film_id = base_id if attempt == 1 else f"{base_id}-{attempt}"
            film = Film(
                id=film_id,
                title=title,
                normalized_title=normalise_title(title),
                year=year,
                matched_at=datetime.now(timezone.utc),
                **fields,
            )
            try:
                async with self.db.begin_nested():
                    self.db.add(film)
                    await self.db.flush()
            except IntegrityError:
                if tmdb_id is not None:
                    existing = await self._find_by_tmdb_id(tmdb_id)
                    if existing:
                        logger.debug(f"TMDb id {tmdb_id} already stored as {existing.id!r}, reusing.")
                        self._remember(existing)
                        return existing
                logger.debug(f"Film id {film_id!r} already exists, trying another.")
                continue

            self._remember(film)
            return film

        raise RuntimeError(f"Could not allocate a film id for '{title}' after {self.MAX_ID_ATTEMPTS} attempts")

    async def _find_by_tmdb_id(self, tmdb_id: int) -> Film | None:
        result = await self.db.execute(select(Film).where(Film.tmdb_id == tmdb_id))
        return result.scalar_one_or_none()

    def _remember(self, film: Film) -> None:
        self.cache.add(
            CachedFilm(
                id=film.id,
                title=film.title,
                year=film.year,
                tmdb_id=film.tmdb_id,
                poster_url=film.poster_url,
            )
        )

    def _generate_film_id(self, title: str, year: int | None) -> str:
        """Generate a film ID from title and year."""
        slug = slugify(title) or "film"
        if year:
            return f"{slug}-{year}"
        return slug
