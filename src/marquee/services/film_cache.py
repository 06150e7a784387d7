"""Run-scoped in-memory index of existing films."""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marquee.models.film import Film
from marquee.utils.text import normalise_title

logger = logging.getLogger(__name__)


@dataclass
class CachedFilm:
    id: str
    title: str
    year: int | None
    tmdb_id: int | None
    poster_url: str | None = None


class FilmCache:
    """
    Film lookup index owned by a single ingestion run.

    Keyed by ``normalise_title``; a second index maps TMDb ids to films.
    When two stored films share a normalized title the one carrying a
    TMDb id wins. Not safe for concurrent writers.

    Entries added after ``checkpoint`` can be undone with ``restore``, for
    when the transaction that created those films is rolled back.
    """

    def __init__(self) -> None:
        self._by_title: dict[str, CachedFilm] = {}
        self._by_tmdb_id: dict[int, CachedFilm] = {}
        self.loaded = False
        self._journal: list[tuple[dict, Any, CachedFilm | None]] | None = None
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._by_title)

    async def load(self, db: AsyncSession) -> None:
        """Build both indexes from every Film row."""
        result = await db.execute(
            select(Film.id, Film.title, Film.year, Film.tmdb_id, Film.poster_url)
        )
        for row in result.all():
            self.add(
                CachedFilm(
                    id=row.id,
                    title=row.title,
                    year=row.year,
                    tmdb_id=row.tmdb_id,
                    poster_url=row.poster_url,
                )
            )
        self.loaded = True
        logger.info(f"Film cache loaded: {len(self._by_title)} titles, {len(self._by_tmdb_id)} TMDb ids")

    def add(self, film: CachedFilm) -> None:
        """Index a film; an existing entry with a TMDb id is never displaced by one without."""
        key = normalise_title(film.title)
        if key:
            existing = self._by_title.get(key)
            if existing is None or (film.tmdb_id is not None and existing.tmdb_id is None):
                self._record(self._by_title, key)
                self._by_title[key] = film
        if film.tmdb_id is not None and film.tmdb_id not in self._by_tmdb_id:
            self._record(self._by_tmdb_id, film.tmdb_id)
            self._by_tmdb_id[film.tmdb_id] = film

    def checkpoint(self) -> None:
        """Start journaling additions; ``restore`` undoes everything added since."""
        self._journal = []

    def restore(self) -> int:
        """Undo additions since the last checkpoint. Returns the number of entries undone."""
        journal, self._journal = self._journal or [], []
        for index, key, previous in reversed(journal):
            if previous is None:
                index.pop(key, None)
            else:
                index[key] = previous
        return len(journal)

    def _record(self, index: dict, key: Any) -> None:
        if self._journal is not None:
            self._journal.append((index, key, index.get(key)))

    def lookup(self, title: str) -> CachedFilm | None:
        film = self._by_title.get(normalise_title(title))
        if film is None:
            self.misses += 1
        else:
            self.hits += 1
        return film

    def lookup_external_id(self, tmdb_id: int) -> CachedFilm | None:
        return self._by_tmdb_id.get(tmdb_id)

    def log_stats(self) -> None:
        total = self.hits + self.misses
        rate = (self.hits / total * 100) if total else 0.0
        logger.info(f"Film cache: {self.hits} hits, {self.misses} misses ({rate:.0f}% hit rate)")
