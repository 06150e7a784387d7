"""Unit tests for the scheduled scrape job."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from sqlalchemy.exc import OperationalError

from marquee.tasks.orchestrator import RunnerResult
from marquee.tasks.scrape_job import run_scrape_all

NOW = datetime(2026, 10, 14, 3, 0, tzinfo=timezone.utc)


async def test_empty_registry_does_nothing() -> None:
    run_scraper = AsyncMock()
    with (
        patch.dict("marquee.tasks.scrape_job.SCRAPER_REGISTRY", {}, clear=True),
        patch("marquee.tasks.scrape_job.run_scraper", run_scraper),
        patch("marquee.tasks.scrape_job.load_scrapers"),
    ):
        assert await run_scrape_all() == {}
    run_scraper.assert_not_awaited()


async def test_failing_scraper_does_not_stop_the_rest() -> None:
    ok = RunnerResult(started_at=NOW, completed_at=NOW)
    registry = {"broken": MagicMock(), "rio": MagicMock()}
    run_scraper = AsyncMock(side_effect=[OperationalError("select", {}, Exception()), ok])

    with (
        patch.dict("marquee.tasks.scrape_job.SCRAPER_REGISTRY", registry, clear=True),
        patch("marquee.tasks.scrape_job.run_scraper", run_scraper),
        patch("marquee.tasks.scrape_job.load_scrapers"),
    ):
        results = await run_scrape_all()

    assert results == {"rio": ok}
    assert run_scraper.await_count == 2


async def test_loads_scrapers_before_running() -> None:
    ok = RunnerResult(started_at=NOW, completed_at=NOW)
    config = MagicMock()
    run_scraper = AsyncMock(return_value=ok)

    def load() -> None:
        from marquee.tasks import scrape_job

        scrape_job.SCRAPER_REGISTRY["rio"] = config

    with (
        patch.dict("marquee.tasks.scrape_job.SCRAPER_REGISTRY", {}, clear=True),
        patch("marquee.tasks.scrape_job.run_scraper", run_scraper),
        patch("marquee.tasks.scrape_job.load_scrapers", side_effect=load),
    ):
        results = await run_scrape_all()

    assert results == {"rio": ok}
    run_scraper.assert_awaited_once_with(config)
