"""Unit tests for the scraper orchestrator, run recorder and anomaly detection."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from marquee.models.scraper_run import CinemaBaseline, ScraperRun
from marquee.scrapers.models import (
    ChainConfig,
    MultiVenueConfig,
    RawScreening,
    SingleVenueConfig,
    VenueDefinition,
)
from marquee.services.pipeline import PipelineResult
from marquee.tasks.orchestrator import (
    BLOCKED_REASON,
    Baseline,
    RunnerOptions,
    RunnerResult,
    RunRecorder,
    ScraperOrchestrator,
    VenueStatus,
    detect_anomaly,
    get_baseline,
    parse_venue_args,
    run_scraper,
)

NOW = datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def raw(title: str = "Vertigo") -> RawScreening:
    return RawScreening(film_title=title, start_time=NOW, booking_url="https://cinema.test/book")


def make_scraper(screenings=None, healthy: bool = True, error: Exception | None = None) -> MagicMock:
    scraper = MagicMock()
    scraper.health_check = AsyncMock(return_value=healthy)
    scraper.scrape = AsyncMock(return_value=screenings or [], side_effect=error)
    return scraper


def make_ingestion(result: PipelineResult | None = None) -> MagicMock:
    ingestion = MagicMock()
    ingestion.ensure_cinema_exists = AsyncMock()
    ingestion.process_screenings = AsyncMock(
        return_value=result or PipelineResult(cinema_id="venue", scraped_at=NOW, added=1)
    )
    return ingestion


def make_recorder() -> MagicMock:
    recorder = MagicMock()
    recorder.record = MagicMock()
    recorder.flush = AsyncMock()
    return recorder


def options(**kwargs) -> RunnerOptions:
    defaults = {"retry_attempts": 2, "retry_base_delay": 0, "inter_venue_delay": 0, "timeout": 5}
    return RunnerOptions(**{**defaults, **kwargs})


def single(scraper: MagicMock, venue_id: str = "rio") -> SingleVenueConfig:
    return SingleVenueConfig(venue=VenueDefinition(id=venue_id, name=venue_id.title()), create_scraper=lambda: scraper)


def make_session_factory(session: AsyncMock) -> MagicMock:
    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=session)
    ctx.__aexit__ = AsyncMock(return_value=False)
    return MagicMock(return_value=ctx)


def baseline_result(baseline: CinemaBaseline | None) -> MagicMock:
    r = MagicMock()
    r.scalar_one_or_none.return_value = baseline
    return r


# ---------------------------------------------------------------------------
# Single venue runs
# ---------------------------------------------------------------------------


class TestSingleVenue:
    def setup_method(self) -> None:
        self.recorder = make_recorder()

    async def test_success(self) -> None:
        ingestion = make_ingestion(PipelineResult(cinema_id="rio", scraped_at=NOW, added=3, updated=1))
        scraper = make_scraper([raw(), raw("Heat")])

        result = await ScraperOrchestrator(ingestion, self.recorder, options()).run(single(scraper))

        assert result.success
        assert result.screenings_found == 2
        assert result.screenings_added == 3
        assert result.screenings_updated == 1
        venue = result.venue_results[0]
        assert venue.status == VenueStatus.SUCCEEDED
        assert venue.retry_count == 0
        ingestion.ensure_cinema_exists.assert_awaited_once()
        assert self.recorder.record.call_args.args[2] == "success"
        self.recorder.flush.assert_awaited_once()

    async def test_always_failing_scraper_is_attempted_retry_attempts_plus_one_times(self) -> None:
        scraper = make_scraper(error=RuntimeError("boom"))

        result = await ScraperOrchestrator(make_ingestion(), self.recorder, options(retry_attempts=2)).run(
            single(scraper)
        )

        assert scraper.scrape.await_count == 3
        venue = result.venue_results[0]
        assert venue.status == VenueStatus.FAILED
        assert venue.retry_count == 2
        assert venue.error == "boom"
        assert not result.success
        self.recorder.record.assert_called_once()
        assert self.recorder.record.call_args.args[2] == "failed"
        assert self.recorder.record.call_args.kwargs["error"] == "boom"

    async def test_flaky_scraper_succeeds_on_retry(self) -> None:
        scraper = make_scraper()
        scraper.scrape = AsyncMock(side_effect=[TimeoutError(), [raw()]])

        result = await ScraperOrchestrator(make_ingestion(), self.recorder, options()).run(single(scraper))

        venue = result.venue_results[0]
        assert venue.success
        assert venue.retry_count == 1

    async def test_failed_health_check_is_retried_without_scraping(self) -> None:
        scraper = make_scraper(healthy=False)

        result = await ScraperOrchestrator(make_ingestion(), self.recorder, options(retry_attempts=1)).run(
            single(scraper)
        )

        assert scraper.health_check.await_count == 2
        scraper.scrape.assert_not_awaited()
        assert "Health check failed" in result.venue_results[0].error

    async def test_blocked_ingestion_is_not_retried(self) -> None:
        ingestion = make_ingestion(PipelineResult(cinema_id="rio", scraped_at=NOW, blocked=True))
        scraper = make_scraper([raw()])

        result = await ScraperOrchestrator(ingestion, self.recorder, options()).run(single(scraper))

        assert scraper.scrape.await_count == 1
        venue = result.venue_results[0]
        assert venue.status == VenueStatus.BLOCKED
        assert venue.error == BLOCKED_REASON
        assert not result.success
        assert self.recorder.record.call_args.kwargs["error"] == BLOCKED_REASON

    async def test_empty_scrape_succeeds_without_ingestion(self) -> None:
        ingestion = make_ingestion()

        result = await ScraperOrchestrator(ingestion, self.recorder, options()).run(single(make_scraper([])))

        assert result.venue_results[0].success
        ingestion.process_screenings.assert_not_awaited()

    async def test_cinema_setup_failure_fails_venue(self) -> None:
        ingestion = make_ingestion()
        ingestion.ensure_cinema_exists = AsyncMock(side_effect=OperationalError("insert", {}, Exception()))
        scraper = make_scraper([raw()])

        result = await ScraperOrchestrator(ingestion, self.recorder, options()).run(single(scraper))

        assert result.venue_results[0].status == VenueStatus.FAILED
        scraper.health_check.assert_not_awaited()


# ---------------------------------------------------------------------------
# Multi-venue and chain runs
# ---------------------------------------------------------------------------


class TestMultiVenue:
    def setup_method(self) -> None:
        self.venues = [VenueDefinition(id="curzon-soho", name="Soho"), VenueDefinition(id="curzon-aldgate", name="Aldgate")]
        self.scrapers = {
            "curzon-soho": make_scraper(error=RuntimeError("down")),
            "curzon-aldgate": make_scraper([raw()]),
        }
        self.config = MultiVenueConfig(venues=self.venues, create_scraper=lambda vid: self.scrapers[vid])

    async def test_failure_does_not_stop_siblings(self) -> None:
        result = await ScraperOrchestrator(make_ingestion(), make_recorder(), options(retry_attempts=0)).run(
            self.config
        )

        assert [v.status for v in result.venue_results] == [VenueStatus.FAILED, VenueStatus.SUCCEEDED]
        assert result.venues_succeeded == 1
        assert result.venues_failed == 1

    async def test_stop_on_first_failure(self) -> None:
        result = await ScraperOrchestrator(
            make_ingestion(), make_recorder(), options(retry_attempts=0, continue_on_error=False)
        ).run(self.config)

        assert len(result.venue_results) == 1
        self.scrapers["curzon-aldgate"].scrape.assert_not_awaited()

    async def test_venue_selection(self) -> None:
        result = await ScraperOrchestrator(
            make_ingestion(), make_recorder(), options(venue_ids=["curzon-aldgate"])
        ).run(self.config)

        assert [v.venue_id for v in result.venue_results] == ["curzon-aldgate"]


class TestChain:
    def setup_method(self) -> None:
        self.venues = [
            VenueDefinition(id="pcc-a", name="A", chain="pcc"),
            VenueDefinition(id="pcc-b", name="B", chain="pcc"),
        ]
        self.scraper = MagicMock()
        self.scraper.health_check = AsyncMock(return_value=True)
        self.scraper.scrape_venues = AsyncMock(return_value={"pcc-a": [raw(), raw("Heat")]})
        self.config = ChainConfig(chain_name="pcc", venues=self.venues, create_scraper=lambda: self.scraper)

    async def test_one_fetch_processed_per_venue(self) -> None:
        ingestion = make_ingestion()

        result = await ScraperOrchestrator(ingestion, make_recorder(), options()).run(self.config)

        self.scraper.scrape_venues.assert_awaited_once_with(["pcc-a", "pcc-b"])
        assert [v.screenings_found for v in result.venue_results] == [2, 0]
        assert result.success
        ingestion.process_screenings.assert_awaited_once()
        for venue in self.venues:
            ingestion.ensure_cinema_exists.assert_any_await(venue, "pcc")

    async def test_fetch_failure_fails_every_venue(self) -> None:
        self.scraper.scrape_venues = AsyncMock(side_effect=RuntimeError("api down"))

        result = await ScraperOrchestrator(make_ingestion(), make_recorder(), options(retry_attempts=1)).run(
            self.config
        )

        assert self.scraper.scrape_venues.await_count == 2
        assert all(v.status == VenueStatus.FAILED for v in result.venue_results)
        assert all(v.retry_count == 1 for v in result.venue_results)
        assert len(result.venue_results) == 2

    async def test_active_venue_ids(self) -> None:
        self.config.active_venue_ids = lambda: ["pcc-b"]

        result = await ScraperOrchestrator(make_ingestion(), make_recorder(), options()).run(self.config)

        assert [v.venue_id for v in result.venue_results] == ["pcc-b"]

    async def test_processing_error_fails_only_that_venue(self) -> None:
        self.scraper.scrape_venues = AsyncMock(return_value={"pcc-a": [raw()], "pcc-b": [raw()]})
        ingestion = make_ingestion()
        ingestion.process_screenings = AsyncMock(
            side_effect=[OperationalError("insert", {}, Exception()), PipelineResult(cinema_id="pcc-b", scraped_at=NOW)]
        )

        result = await ScraperOrchestrator(ingestion, make_recorder(), options()).run(self.config)

        assert [v.status for v in result.venue_results] == [VenueStatus.FAILED, VenueStatus.SUCCEEDED]


# ---------------------------------------------------------------------------
# Backoff and CLI helpers
# ---------------------------------------------------------------------------


class TestBackoff:
    def test_exponential_with_jitter_bounds(self) -> None:
        orchestrator = ScraperOrchestrator(make_ingestion(), make_recorder(), options(retry_base_delay=1.0))

        with patch("marquee.tasks.orchestrator.random.random", return_value=0.0):
            assert orchestrator.backoff_delay(1) == pytest.approx(0.5)
            assert orchestrator.backoff_delay(3) == pytest.approx(2.0)
        with patch("marquee.tasks.orchestrator.random.random", return_value=1.0):
            assert orchestrator.backoff_delay(1) == pytest.approx(1.5)
            assert orchestrator.backoff_delay(3) == pytest.approx(6.0)


class TestParseVenueArgs:
    def test_prefix_added_to_shorthand(self) -> None:
        assert parse_venue_args(["soho", "curzon-aldgate"], "curzon-") == ["curzon-soho", "curzon-aldgate"]

    def test_no_prefix(self) -> None:
        assert parse_venue_args(["soho"]) == ["soho"]


# ---------------------------------------------------------------------------
# Anomalies and baselines
# ---------------------------------------------------------------------------


class TestDetectAnomaly:
    def test_no_baseline(self) -> None:
        assert detect_anomaly(10, None) is None
        assert detect_anomaly(10, Baseline(count=0, tolerance_percent=30)) is None

    def test_within_tolerance(self) -> None:
        assert detect_anomaly(125, Baseline(count=100, tolerance_percent=30)) is None

    def test_zero_results(self) -> None:
        anomaly = detect_anomaly(0, Baseline(count=100, tolerance_percent=30))
        assert anomaly.anomaly_type == "zero_results"
        assert anomaly.details == {"expected_range": {"min": 70, "max": 130}, "percent_change": 100}

    def test_low_count(self) -> None:
        anomaly = detect_anomaly(50, Baseline(count=100, tolerance_percent=30))
        assert anomaly.anomaly_type == "low_count"
        assert anomaly.details["percent_change"] == 50

    def test_high_count(self) -> None:
        anomaly = detect_anomaly(200, Baseline(count=100, tolerance_percent=30))
        assert anomaly.anomaly_type == "high_count"


class TestGetBaseline:
    def setup_method(self) -> None:
        self.row = CinemaBaseline(cinema_id="rio", weekday_avg=40, weekend_avg=90, tolerance_percent=25)

    async def test_weekday(self, db: AsyncMock) -> None:
        db.execute = AsyncMock(return_value=baseline_result(self.row))
        baseline = await get_baseline(db, "rio", datetime(2026, 10, 14, tzinfo=timezone.utc))
        assert baseline == Baseline(count=40, tolerance_percent=25)

    async def test_weekend(self, db: AsyncMock) -> None:
        db.execute = AsyncMock(return_value=baseline_result(self.row))
        baseline = await get_baseline(db, "rio", datetime(2026, 10, 17, tzinfo=timezone.utc))
        assert baseline.count == 90

    async def test_missing(self, db: AsyncMock) -> None:
        db.execute = AsyncMock(return_value=baseline_result(None))
        assert await get_baseline(db, "rio", NOW) is None


# ---------------------------------------------------------------------------
# RunRecorder
# ---------------------------------------------------------------------------


class TestRunRecorder:
    async def test_anomalous_success_is_stored_as_anomaly(self, db: AsyncMock) -> None:
        db.execute = AsyncMock(
            return_value=baseline_result(
                CinemaBaseline(cinema_id="rio", weekday_avg=100, weekend_avg=100, tolerance_percent=30)
            )
        )
        recorder = RunRecorder(make_session_factory(db), flush_timeout=1)

        recorder.record("rio", NOW, "success", 10, duration_ms=1200, retry_count=1)
        await recorder.flush()

        run = db.add.call_args.args[0]
        assert isinstance(run, ScraperRun)
        assert run.status == "anomaly"
        assert run.anomaly_type == "low_count"
        assert run.baseline_count == 100
        assert run.run_metadata == {"duration_ms": 1200, "retry_count": 1}
        db.commit.assert_awaited_once()
        assert recorder.pending == 0

    async def test_failure_records_error(self, db: AsyncMock) -> None:
        db.execute = AsyncMock(return_value=baseline_result(None))
        recorder = RunRecorder(make_session_factory(db), flush_timeout=1)

        recorder.record("rio", NOW, "failed", 0, duration_ms=10, error="boom")
        await recorder.flush()

        run = db.add.call_args.args[0]
        assert run.status == "failed"
        assert run.anomaly_type == "error"
        assert run.anomaly_details == {"error_message": "boom"}

    async def test_write_errors_are_swallowed(self, db: AsyncMock) -> None:
        db.execute = AsyncMock(return_value=baseline_result(None))
        db.commit = AsyncMock(side_effect=OperationalError("insert", {}, Exception()))
        recorder = RunRecorder(make_session_factory(db), flush_timeout=1)

        recorder.record("rio", NOW, "success", 5, duration_ms=10)
        await recorder.flush()

        assert recorder.pending == 0

    async def test_flush_without_writes(self) -> None:
        recorder = RunRecorder(MagicMock(), flush_timeout=1)
        await recorder.flush()
        assert recorder.pending == 0


# ---------------------------------------------------------------------------
# run_scraper
# ---------------------------------------------------------------------------


class TestRunScraper:
    async def test_finishes_ingestion_even_when_run_fails(self, db: AsyncMock) -> None:
        ingestion = MagicMock()
        ingestion.start = AsyncMock()
        ingestion.finish = AsyncMock()
        orchestrator = MagicMock()
        orchestrator.run = AsyncMock(side_effect=RuntimeError("boom"))

        with (
            patch("marquee.tasks.orchestrator.IngestionRun", return_value=ingestion),
            patch("marquee.tasks.orchestrator.ScraperOrchestrator", return_value=orchestrator),
        ):
            with pytest.raises(RuntimeError):
                await run_scraper(single(make_scraper()), session_factory=make_session_factory(db))

        ingestion.start.assert_awaited_once()
        ingestion.finish.assert_awaited_once()

    async def test_returns_runner_result(self, db: AsyncMock) -> None:
        expected = RunnerResult(started_at=NOW, completed_at=NOW)
        ingestion = MagicMock()
        ingestion.start = AsyncMock()
        ingestion.finish = AsyncMock()
        orchestrator = MagicMock()
        orchestrator.run = AsyncMock(return_value=expected)

        with (
            patch("marquee.tasks.orchestrator.IngestionRun", return_value=ingestion),
            patch("marquee.tasks.orchestrator.ScraperOrchestrator", return_value=orchestrator),
        ):
            result = await run_scraper(single(make_scraper()), session_factory=make_session_factory(db))

        assert result is expected
        assert result.duration_ms == 0
