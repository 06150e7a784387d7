"""Unit tests for the run-scoped film cache."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from marquee.services.film_cache import CachedFilm, FilmCache


def make_row(id: str, title: str, year: int | None = None, tmdb_id: int | None = None) -> SimpleNamespace:
    return SimpleNamespace(id=id, title=title, year=year, tmdb_id=tmdb_id, poster_url=None)


class TestLoad:
    async def test_indexes_every_row(self) -> None:
        result = MagicMock()
        result.all.return_value = [
            make_row("alien-1979", "Alien", 1979, 348),
            make_row("heat-1995", "Heat", 1995, None),
        ]
        db = AsyncMock()
        db.execute = AsyncMock(return_value=result)

        cache = FilmCache()
        await cache.load(db)

        assert cache.loaded is True
        assert len(cache) == 2
        assert cache.lookup("ALIEN").id == "alien-1979"
        assert cache.lookup_external_id(348).id == "alien-1979"
        assert cache.lookup_external_id(999) is None


class TestAddAndLookup:
    def setup_method(self) -> None:
        self.cache = FilmCache()

    def test_lookup_uses_normalized_title(self) -> None:
        self.cache.add(CachedFilm(id="godfather-1972", title="The Godfather", year=1972, tmdb_id=238))
        assert self.cache.lookup("godfather!").id == "godfather-1972"

    def test_entry_with_external_id_wins_collision(self) -> None:
        self.cache.add(CachedFilm(id="amelie", title="Amelie", year=None, tmdb_id=None))
        self.cache.add(CachedFilm(id="amelie-2001", title="Amelie!", year=2001, tmdb_id=194))
        self.cache.add(CachedFilm(id="amelie-2", title="amelie", year=None, tmdb_id=None))

        assert self.cache.lookup("Amelie").id == "amelie-2001"

    def test_first_entry_with_external_id_is_kept(self) -> None:
        self.cache.add(CachedFilm(id="heat-1995", title="Heat", year=1995, tmdb_id=949))
        self.cache.add(CachedFilm(id="heat-1986", title="Heat", year=1986, tmdb_id=12345))

        assert self.cache.lookup("Heat").id == "heat-1995"
        assert self.cache.lookup_external_id(12345).id == "heat-1986"

    def test_empty_normalized_title_is_not_indexed(self) -> None:
        self.cache.add(CachedFilm(id="film", title="???", year=None, tmdb_id=None))
        assert len(self.cache) == 0

    def test_counts_hits_and_misses(self) -> None:
        self.cache.add(CachedFilm(id="alien-1979", title="Alien", year=1979, tmdb_id=348))
        self.cache.lookup("Alien")
        self.cache.lookup("Aliens")
        self.cache.lookup("Alien")

        assert self.cache.hits == 2
        assert self.cache.misses == 1

    def test_added_film_is_visible_to_later_lookups(self) -> None:
        assert self.cache.lookup("Nosferatu") is None
        self.cache.add(CachedFilm(id="nosferatu-2024", title="Nosferatu", year=2024, tmdb_id=None))
        assert self.cache.lookup("Nosferatu").id == "nosferatu-2024"


class TestCheckpoint:
    def test_restore_removes_entries_added_since_checkpoint(self) -> None:
        cache = FilmCache()
        cache.add(CachedFilm(id="heat-1995", title="Heat", year=1995, tmdb_id=949))
        cache.checkpoint()
        cache.add(CachedFilm(id="alien-1979", title="Alien", year=1979, tmdb_id=348))

        assert cache.restore() == 2
        assert cache.lookup("Alien") is None
        assert cache.lookup_external_id(348) is None
        assert cache.lookup("Heat").id == "heat-1995"

    def test_restore_brings_back_displaced_entry(self) -> None:
        cache = FilmCache()
        cache.add(CachedFilm(id="vertigo", title="Vertigo", year=None, tmdb_id=None))
        cache.checkpoint()
        cache.add(CachedFilm(id="vertigo-1958", title="Vertigo", year=1958, tmdb_id=426))

        cache.restore()

        assert cache.lookup("Vertigo").id == "vertigo"
        assert cache.lookup_external_id(426) is None

    def test_restore_without_checkpoint_is_a_no_op(self) -> None:
        cache = FilmCache()
        cache.add(CachedFilm(id="heat-1995", title="Heat", year=1995, tmdb_id=949))

        assert cache.restore() == 0
        assert cache.lookup("Heat").id == "heat-1995"
