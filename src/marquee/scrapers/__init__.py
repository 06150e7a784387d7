"""Scraper registry mapping scraper names to runner configurations.

Site scrapers live outside this package. They are found two ways by
``load_scrapers``: installed distributions advertise them under the
``marquee.scrapers`` entry point group, and modules named in
``settings.scraper_modules`` are imported and call ``register_scraper``
themselves. The orchestrator only depends on the contracts in
``marquee.scrapers.base`` and ``marquee.scrapers.models``.
"""

import logging
from importlib import import_module
from importlib.metadata import entry_points

from marquee.config import settings
from marquee.scrapers.base import BaseScraper, ChainScraper
from marquee.scrapers.models import (
    ChainConfig,
    MultiVenueConfig,
    RawScreening,
    ScraperRunnerConfig,
    SingleVenueConfig,
    VenueDefinition,
)

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "marquee.scrapers"

# Registry mapping scraper names to runner configurations
SCRAPER_REGISTRY: dict[str, ScraperRunnerConfig] = {}

_loaded = False


def register_scraper(name: str, config: ScraperRunnerConfig) -> None:
    """Register a runner configuration under ``name``, replacing any previous one."""
    SCRAPER_REGISTRY[name] = config


def load_scrapers() -> dict[str, ScraperRunnerConfig]:
    """
    Populate the registry from entry points and configured modules, once.

    An entry point may resolve to a runner configuration or to a callable
    returning one; it is registered under the entry point's name. A plugin
    that fails to import is logged and skipped.

    Returns:
        The registry
    """
    global _loaded
    if _loaded:
        return SCRAPER_REGISTRY
    _loaded = True

    for ep in entry_points(group=ENTRY_POINT_GROUP):
        try:
            target = ep.load()
            config = target() if callable(target) else target
        except (ImportError, AttributeError) as e:
            logger.error(f"Failed to load scraper entry point {ep.name}: {e}", exc_info=True)
            continue
        register_scraper(ep.name, config)

    for module_name in settings.scraper_modules:
        try:
            import_module(module_name)
        except ImportError as e:
            logger.error(f"Failed to import scraper module {module_name}: {e}", exc_info=True)

    logger.info(f"Loaded {len(SCRAPER_REGISTRY)} scraper(s): {sorted(SCRAPER_REGISTRY)}")
    return SCRAPER_REGISTRY


def get_scraper_config(name: str) -> ScraperRunnerConfig | None:
    """
    Get a registered runner configuration by name.

    Args:
        name: The scraper name (e.g., "bfi", "curzon")

    Returns:
        Runner configuration or None if the name is not registered
    """
    load_scrapers()
    return SCRAPER_REGISTRY.get(name)


__all__ = [
    "ENTRY_POINT_GROUP",
    "SCRAPER_REGISTRY",
    "BaseScraper",
    "ChainConfig",
    "ChainScraper",
    "MultiVenueConfig",
    "RawScreening",
    "ScraperRunnerConfig",
    "SingleVenueConfig",
    "VenueDefinition",
    "get_scraper_config",
    "load_scrapers",
    "register_scraper",
]
