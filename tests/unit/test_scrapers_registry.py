"""Unit tests for scraper registration and discovery."""

from unittest.mock import MagicMock, patch

import pytest

import marquee.scrapers as scrapers
from marquee.scrapers import (
    ENTRY_POINT_GROUP,
    SCRAPER_REGISTRY,
    SingleVenueConfig,
    VenueDefinition,
    get_scraper_config,
    load_scrapers,
    register_scraper,
)


def make_config(venue_id: str = "rio") -> SingleVenueConfig:
    return SingleVenueConfig(
        venue=VenueDefinition(id=venue_id, name=venue_id.title()),
        create_scraper=MagicMock(),
    )


def make_entry_point(name: str, target=None, error: Exception | None = None) -> MagicMock:
    ep = MagicMock()
    ep.name = name
    if error is not None:
        ep.load.side_effect = error
    else:
        ep.load.return_value = target
    return ep


@pytest.fixture(autouse=True)
def fresh_registry():
    with (
        patch.dict(SCRAPER_REGISTRY, {}, clear=True),
        patch.object(scrapers, "_loaded", False),
        patch.object(scrapers.settings, "scraper_modules", []),
    ):
        yield


# ---------------------------------------------------------------------------
# register_scraper / get_scraper_config
# ---------------------------------------------------------------------------


class TestRegistry:
    def test_register_replaces_existing(self) -> None:
        first, second = make_config(), make_config()
        register_scraper("rio", first)
        register_scraper("rio", second)
        assert SCRAPER_REGISTRY == {"rio": second}

    def test_get_unknown_returns_none(self) -> None:
        with patch("marquee.scrapers.entry_points", return_value=[]):
            assert get_scraper_config("nowhere") is None

    def test_get_loads_plugins_first(self) -> None:
        config = make_config()
        with patch("marquee.scrapers.entry_points", return_value=[make_entry_point("rio", config)]):
            assert get_scraper_config("rio") is config


# ---------------------------------------------------------------------------
# load_scrapers
# ---------------------------------------------------------------------------


class TestLoadScrapers:
    def test_registers_entry_point_configs(self) -> None:
        rio, prince = make_config("rio"), make_config("prince-charles")
        points = [make_entry_point("rio", rio), make_entry_point("prince-charles", lambda: prince)]

        with patch("marquee.scrapers.entry_points", return_value=points) as mock_eps:
            registry = load_scrapers()

        mock_eps.assert_called_once_with(group=ENTRY_POINT_GROUP)
        assert registry == {"rio": rio, "prince-charles": prince}

    def test_broken_entry_point_is_skipped(self) -> None:
        rio = make_config()
        points = [
            make_entry_point("broken", error=ImportError("no module named broken_scraper")),
            make_entry_point("rio", rio),
        ]

        with patch("marquee.scrapers.entry_points", return_value=points):
            registry = load_scrapers()

        assert registry == {"rio": rio}

    def test_imports_configured_modules(self) -> None:
        config = make_config("genesis")

        def import_module(name: str) -> None:
            if name == "venues.missing":
                raise ImportError(name)
            register_scraper("genesis", config)

        with (
            patch("marquee.scrapers.entry_points", return_value=[]),
            patch.object(scrapers.settings, "scraper_modules", ["venues.genesis", "venues.missing"]),
            patch("marquee.scrapers.import_module", side_effect=import_module) as mock_import,
        ):
            registry = load_scrapers()

        assert [c.args[0] for c in mock_import.call_args_list] == ["venues.genesis", "venues.missing"]
        assert registry == {"genesis": config}

    def test_loads_only_once(self) -> None:
        with patch("marquee.scrapers.entry_points", return_value=[]) as mock_eps:
            load_scrapers()
            load_scrapers()
        mock_eps.assert_called_once()
